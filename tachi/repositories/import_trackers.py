from __future__ import annotations

from typing import Any
from typing import Literal
from typing import TypedDict

import tachi.state

COLLECTION = "import-trackers"

ImportPhase = Literal["PENDING", "PARSING", "CONVERTING", "PERSISTING", "AGGREGATING"]


class ImportTracker(TypedDict):
    importID: str
    userID: int
    importType: str
    userIntent: bool
    type: Literal["ONGOING", "FAILED"]
    phase: ImportPhase | None
    timeStarted: int
    error: dict[str, Any] | None


async def create(
    import_id: str,
    user_id: int,
    import_type: str,
    user_intent: bool,
    time_started: int,
) -> None:
    await tachi.state.services.store[COLLECTION].update_one(
        {"importID": import_id},
        {
            "$set": {
                "userID": user_id,
                "importType": import_type,
                "userIntent": user_intent,
                "type": "ONGOING",
                "phase": "PENDING",
                "timeStarted": time_started,
                "error": None,
            },
        },
        upsert=True,
    )


async def set_phase(import_id: str, phase: ImportPhase) -> None:
    await tachi.state.services.store[COLLECTION].update_one(
        {"importID": import_id},
        {"$set": {"phase": phase}},
    )


async def mark_failed(import_id: str, status_code: int, description: str) -> None:
    await tachi.state.services.store[COLLECTION].update_one(
        {"importID": import_id},
        {
            "$set": {
                "type": "FAILED",
                "error": {"statusCode": status_code, "description": description},
            },
        },
    )


async def fetch_one(import_id: str) -> ImportTracker | None:
    tracker = await tachi.state.services.store[COLLECTION].find_one({"importID": import_id})
    return tracker  # type: ignore[return-value]


async def delete(import_id: str) -> int:
    return await tachi.state.services.store[COLLECTION].delete_one({"importID": import_id})
