from __future__ import annotations

from typing import Any
from typing import TypedDict

import tachi.state

COLLECTION = "scores"


class ScoreData(TypedDict):
    score: float
    percent: float
    grade: str
    gradeIndex: int
    lamp: str
    lampIndex: int
    judgements: dict[str, int | None]
    hitMeta: dict[str, Any]


class Score(TypedDict):
    scoreID: str
    userID: int
    chartID: str
    songID: int
    game: str
    playtype: str
    isPrimary: bool
    service: str
    importType: str | None
    comment: str | None
    timeAdded: int
    timeAchieved: int | None
    scoreData: ScoreData
    scoreMeta: dict[str, Any]
    calculatedData: dict[str, float | None]


async def create(score: Score) -> None:
    """Insert a score. Raises DuplicateKeyError if its scoreID already exists."""
    await tachi.state.services.store[COLLECTION].insert_one(dict(score))


async def fetch_one(score_id: str) -> Score | None:
    score = await tachi.state.services.store[COLLECTION].find_one({"scoreID": score_id})
    return score  # type: ignore[return-value]


async def fetch_many(
    user_id: int | None = None,
    chart_id: str | None = None,
    game: str | None = None,
    playtype: str | None = None,
    score_ids: list[str] | None = None,
) -> list[Score]:
    query: dict[str, Any] = {}
    if user_id is not None:
        query["userID"] = user_id
    if chart_id is not None:
        query["chartID"] = chart_id
    if game is not None:
        query["game"] = game
    if playtype is not None:
        query["playtype"] = playtype
    if score_ids is not None:
        query["scoreID"] = {"$in": score_ids}

    scores = await tachi.state.services.store[COLLECTION].find(query)
    return scores  # type: ignore[return-value]


async def fetch_by_query(query: dict[str, Any]) -> list[Score]:
    scores = await tachi.state.services.store[COLLECTION].find(query)
    return scores  # type: ignore[return-value]


async def replace(score_id: str, score: Score) -> None:
    """Overwrite the score stored under `score_id`, which may change its scoreID."""
    await tachi.state.services.store[COLLECTION].update_one(
        {"scoreID": score_id},
        {"$set": dict(score)},
    )


async def set_calculated_data(score_id: str, calculated_data: dict[str, Any]) -> None:
    await tachi.state.services.store[COLLECTION].update_one(
        {"scoreID": score_id},
        {"$set": {"calculatedData": calculated_data}},
    )


async def delete(score_id: str) -> int:
    return await tachi.state.services.store[COLLECTION].delete_one({"scoreID": score_id})


async def delete_many(score_ids: list[str]) -> int:
    if not score_ids:
        return 0

    return await tachi.state.services.store[COLLECTION].delete_many(
        {"scoreID": {"$in": score_ids}},
    )


async def delete_for_chart(chart_id: str) -> int:
    return await tachi.state.services.store[COLLECTION].delete_many({"chartID": chart_id})
