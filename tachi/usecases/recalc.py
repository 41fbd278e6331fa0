from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Iterator
from dataclasses import dataclass
from dataclasses import field
from typing import Any
from typing import TypeVar

from tachi.logging import ContextLogger
from tachi.logging import create_log_ctx
from tachi.repositories import charts as charts_repo
from tachi.repositories import scores as scores_repo
from tachi.repositories.charts import Chart
from tachi.repositories.scores import Score
from tachi.usecases.calculated_data import calculate_data_for_game_pt
from tachi.usecases.game_stats import update_users_game_playtype_stats
from tachi.usecases.personal_bests import process_pbs
from tachi.usecases.score_import import hold_import_lock

T = TypeVar("T")

CHUNK_SIZE = 100


def divide_chunks(values: list[T], n: int) -> Iterator[list[T]]:
    for i in range(0, len(values), n):
        yield values[i : i + n]


@dataclass
class RecalcResult:
    scores: int = 0
    changed: int = 0
    users: set[int] = field(default_factory=set)
    # scores whose chart no longer exists
    missing_charts: int = 0


async def recalculate_score(
    score: Score,
    charts: dict[str, Chart | None],
    result: RecalcResult,
    logger: ContextLogger,
) -> None:
    chart_id = score["chartID"]
    chart = charts.get(chart_id)
    if chart is None:
        logger.severe(f"Score {score['scoreID']} belongs to chart {chart_id}, which does not exist.")
        result.missing_charts += 1
        return

    calculated_data = await calculate_data_for_game_pt(
        score["game"],
        score["playtype"],
        chart,
        score,
        None,
        logger,
    )

    if calculated_data != score["calculatedData"]:
        await scores_repo.set_calculated_data(score["scoreID"], calculated_data)
        result.changed += 1


async def recalc_scores(query: dict[str, Any] | None = None) -> RecalcResult:
    """\
    Recompute calculated data for every score matching `query`, then rebuild
    the PBs, rankings and profile stats of everyone affected.
    """
    logger = create_log_ctx(__name__, "Recalc")
    result = RecalcResult()

    scores = await scores_repo.fetch_by_query(query or {})
    result.scores = len(scores)
    logger.info(f"Recalculating {len(scores)} scores.")

    charts: dict[str, Chart | None] = {}
    for chunk in divide_chunks(scores, CHUNK_SIZE):
        # prefetched so the gathered tasks never fetch the same chart twice
        for chart_id in {s["chartID"] for s in chunk} - charts.keys():
            charts[chart_id] = await charts_repo.fetch_one(chart_id)

        await asyncio.gather(
            *(recalculate_score(score, charts, result, logger) for score in chunk),
        )

    user_charts: dict[int, set[str]] = defaultdict(set)
    user_game_pts: dict[int, set[tuple[str, str]]] = defaultdict(set)
    for score in scores:
        user_charts[score["userID"]].add(score["chartID"])
        user_game_pts[score["userID"]].add((score["game"], score["playtype"]))

    for user_id, chart_ids in sorted(user_charts.items()):
        user_logger = logger.child(f"User {user_id}")

        async with hold_import_lock(user_id):
            await process_pbs(user_id, chart_ids, user_logger)

            for game, playtype in sorted(user_game_pts[user_id]):
                await update_users_game_playtype_stats(game, playtype, user_id, None, user_logger)

        result.users.add(user_id)

    logger.info(
        f"Recalculated {result.scores} scores ({result.changed} changed) "
        f"for {len(result.users)} users.",
    )
    return result
