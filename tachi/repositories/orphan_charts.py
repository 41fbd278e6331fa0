from __future__ import annotations

from typing import Any
from typing import TypedDict

import tachi.state

COLLECTION = "orphan-charts"


class OrphanChart(TypedDict):
    orphanID: str
    idString: str
    match: dict[str, Any]
    game: str
    chartDoc: dict[str, Any]
    songDoc: dict[str, Any]
    userIDs: list[int]
    humanisedName: str
    promoted: bool
    timeInserted: int


async def record_submission(
    orphan_id: str,
    user_id: int,
    defaults: dict[str, Any],
) -> OrphanChart:
    """\
    Atomically register `user_id` as a submitter of this orphan, creating
    the orphan from `defaults` if this is its first sighting.
    """
    orphan = await tachi.state.services.store[COLLECTION].find_one_and_update(
        {"orphanID": orphan_id},
        {
            "$addToSet": {"userIDs": user_id},
            "$setOnInsert": {**defaults, "promoted": False},
        },
        upsert=True,
    )
    if orphan is None:
        raise RuntimeError(f"Upserting orphan {orphan_id} returned nothing.")
    return orphan  # type: ignore[return-value]


async def claim_promotion(orphan_id: str) -> bool:
    """Flip `promoted` to true. Only one caller ever sees True for a given orphan."""
    claimed = await tachi.state.services.store[COLLECTION].find_one_and_update(
        {"orphanID": orphan_id, "promoted": False},
        {"$set": {"promoted": True}},
    )
    return claimed is not None


async def fetch_one(orphan_id: str) -> OrphanChart | None:
    orphan = await tachi.state.services.store[COLLECTION].find_one({"orphanID": orphan_id})
    return orphan  # type: ignore[return-value]
