from __future__ import annotations

from typing import Any
from typing import NotRequired
from typing import TypedDict

import tachi.state
from tachi.adapters.document_store import BulkWriteResult
from tachi.adapters.document_store import UpdateOne

COLLECTION = "personal-bests"


class RankingData(TypedDict):
    rank: int
    outOf: int


class ComposedFrom(TypedDict):
    scorePB: str
    lampPB: str
    other: list[dict[str, str]]


class PersonalBest(TypedDict):
    userID: int
    chartID: str
    songID: int
    game: str
    playtype: str
    isPrimary: bool
    timeAchieved: int | None
    scoreData: dict[str, Any]
    calculatedData: dict[str, float | None]
    composedFrom: ComposedFrom
    # absent until the chart's rankings have been refreshed
    rankingData: NotRequired[RankingData]


async def fetch_one(user_id: int, chart_id: str) -> PersonalBest | None:
    pb = await tachi.state.services.store[COLLECTION].find_one(
        {"userID": user_id, "chartID": chart_id},
    )
    return pb  # type: ignore[return-value]


async def fetch_for_chart(chart_id: str) -> list[PersonalBest]:
    pbs = await tachi.state.services.store[COLLECTION].find({"chartID": chart_id})
    return pbs  # type: ignore[return-value]


async def fetch_for_user(user_id: int, game: str, playtype: str) -> list[PersonalBest]:
    pbs = await tachi.state.services.store[COLLECTION].find(
        {"userID": user_id, "game": game, "playtype": playtype},
    )
    return pbs  # type: ignore[return-value]


async def bulk_upsert(pbs: list[PersonalBest]) -> BulkWriteResult:
    """Upsert many PBs keyed on (userID, chartID). Failing writes do not stop the rest."""
    return await tachi.state.services.store[COLLECTION].bulk_write(
        [
            UpdateOne(
                {"userID": pb["userID"], "chartID": pb["chartID"]},
                {"$set": dict(pb)},
                upsert=True,
            )
            for pb in pbs
        ],
        ordered=False,
    )


async def set_rankings(chart_id: str, rankings: dict[int, RankingData]) -> BulkWriteResult:
    return await tachi.state.services.store[COLLECTION].bulk_write(
        [
            UpdateOne(
                {"userID": user_id, "chartID": chart_id},
                {"$set": {"rankingData": dict(ranking)}},
            )
            for user_id, ranking in rankings.items()
        ],
        ordered=False,
    )


async def delete(user_id: int, chart_id: str) -> int:
    return await tachi.state.services.store[COLLECTION].delete_one(
        {"userID": user_id, "chartID": chart_id},
    )


async def delete_for_chart(chart_id: str) -> int:
    return await tachi.state.services.store[COLLECTION].delete_many({"chartID": chart_id})
