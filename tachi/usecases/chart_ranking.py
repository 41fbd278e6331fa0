from __future__ import annotations

from typing import Any

from tachi.constants.games import get_game_pt_config
from tachi.logging import create_log_ctx
from tachi.repositories import charts as charts_repo
from tachi.repositories import personal_bests as pbs_repo
from tachi.repositories.personal_bests import PersonalBest
from tachi.repositories.personal_bests import RankingData

logger = create_log_ctx(__name__)


def dense_rankings(pbs: list[PersonalBest], metric: str) -> dict[int, RankingData]:
    """\
    Rank PBs by `metric`, best first. Equal values share a rank and the next
    distinct value takes the following rank (1, 1, 2).
    """

    def value(pb: PersonalBest) -> Any:
        return pb["scoreData"].get(metric) or 0

    ordered = sorted(pbs, key=value, reverse=True)
    out_of = len(ordered)

    rankings: dict[int, RankingData] = {}
    rank = 0
    previous: Any = None

    for pb in ordered:
        current = value(pb)
        if rank == 0 or current != previous:
            rank += 1
            previous = current

        rankings[pb["userID"]] = {"rank": rank, "outOf": out_of}

    return rankings


async def update_chart_ranking(chart_id: str) -> None:
    chart = await charts_repo.fetch_one(chart_id)
    if chart is None:
        logger.warning(f"Tried to update rankings for unknown chart {chart_id}.")
        return

    config = get_game_pt_config(chart["game"], chart["playtype"])
    pbs = await pbs_repo.fetch_for_chart(chart_id)

    if not pbs:
        return

    result = await pbs_repo.set_rankings(chart_id, dense_rankings(pbs, config.default_metric))

    for idx, exc in result.errors:
        logger.error(f"Failed to write ranking #{idx} on {chart_id}: {exc}")
