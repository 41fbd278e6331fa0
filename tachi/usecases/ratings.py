from __future__ import annotations

from collections.abc import Iterable

import tachi.settings
from tachi.constants.games import get_game_pt_config
from tachi.logging import ContextLogger
from tachi.repositories import personal_bests as pbs_repo


def best_n_mean(values: Iterable[float | None], n: int) -> float | None:
    """The mean of the `n` largest values, or None if there are fewer than `n`."""
    present = sorted((v for v in values if v is not None), reverse=True)

    if len(present) < n:
        return None

    return sum(present[:n]) / n


async def calculate_ratings(
    game: str,
    playtype: str,
    user_id: int,
    logger: ContextLogger,
    limit: int | None = None,
) -> dict[str, float | None]:
    config = get_game_pt_config(game, playtype)
    limit = limit or tachi.settings.BEST_N_RATING_LIMIT

    pbs = await pbs_repo.fetch_for_user(user_id, game, playtype)

    ratings: dict[str, float | None] = {}
    for algorithm in config.rating_algorithms:
        ratings[algorithm] = best_n_mean(
            (pb["calculatedData"].get(algorithm) for pb in pbs),
            limit,
        )

    logger.verbose(f"Calculated ratings {ratings} from {len(pbs)} PBs.")
    return ratings
