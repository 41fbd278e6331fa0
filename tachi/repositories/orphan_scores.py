from __future__ import annotations

from typing import Any
from typing import TypedDict

import tachi.state

COLLECTION = "orphan-scores"


class OrphanScore(TypedDict):
    orphanID: str
    importType: str
    userID: int
    game: str
    data: Any
    context: dict[str, Any]
    errMsg: str | None
    timeInserted: int


async def upsert(orphan_score: OrphanScore) -> bool:
    """Store an orphan score. Returns False if an identical one was already queued."""
    result = await tachi.state.services.store[COLLECTION].update_one(
        {"orphanID": orphan_score["orphanID"]},
        {"$setOnInsert": dict(orphan_score)},
        upsert=True,
    )
    return result.upserted


async def fetch_many(query: dict[str, Any]) -> list[OrphanScore]:
    orphans = await tachi.state.services.store[COLLECTION].find(
        query,
        sort=[("timeInserted", 1)],
    )
    return orphans  # type: ignore[return-value]


async def delete(orphan_id: str) -> int:
    return await tachi.state.services.store[COLLECTION].delete_one({"orphanID": orphan_id})
