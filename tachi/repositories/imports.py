from __future__ import annotations

from typing import Any
from typing import TypedDict

import tachi.state

COLLECTION = "imports"


class ImportErrorInfo(TypedDict):
    type: str
    message: str
    index: int
    data: Any


class ImportDocument(TypedDict):
    importID: str
    userID: int
    userIntent: bool
    importType: str
    game: str | None
    playtypes: list[str]
    timeStarted: int
    timeFinished: int
    scoreIDs: list[str]
    errors: list[ImportErrorInfo]
    classDeltas: list[dict[str, Any]]


async def create(import_doc: ImportDocument) -> None:
    await tachi.state.services.store[COLLECTION].insert_one(dict(import_doc))


async def fetch_one(import_id: str) -> ImportDocument | None:
    import_doc = await tachi.state.services.store[COLLECTION].find_one(
        {"importID": import_id},
    )
    return import_doc  # type: ignore[return-value]


async def fetch_containing_score(score_id: str) -> list[ImportDocument]:
    import_docs = await tachi.state.services.store[COLLECTION].find({"scoreIDs": score_id})
    return import_docs  # type: ignore[return-value]


async def set_score_ids(import_id: str, score_ids: list[str]) -> None:
    await tachi.state.services.store[COLLECTION].update_one(
        {"importID": import_id},
        {"$set": {"scoreIDs": score_ids}},
    )
