from __future__ import annotations

from typing import Any
from typing import Literal

from . import BaseModel


class ImportFailure(BaseModel):
    type: str
    message: str
    index: int
    data: Any


class ImportDocument(BaseModel):
    importID: str
    userID: int
    userIntent: bool
    importType: str
    game: str | None
    playtypes: list[str]
    timeStarted: int
    timeFinished: int
    scoreIDs: list[str]
    errors: list[ImportFailure]
    classDeltas: list[dict[str, Any]]


class APIImport(BaseModel):
    importType: Literal["api/flo-sdvx", "api/eag-sdvx", "api/min-sdvx"]
    # the user's token for the remote service
    token: str
