from __future__ import annotations

from typing import Any
from typing import TypedDict

import tachi.state
from tachi.adapters.document_store import DuplicateKeyError

COLLECTION = "game-settings"


class GameSettings(TypedDict):
    userID: int
    game: str
    playtype: str
    preferences: dict[str, Any]


def default_settings(user_id: int, game: str, playtype: str) -> GameSettings:
    return {
        "userID": user_id,
        "game": game,
        "playtype": playtype,
        "preferences": {
            "preferredScoreAlg": None,
            "preferredProfileAlg": None,
            "stats": [],
        },
    }


async def create_default(user_id: int, game: str, playtype: str) -> GameSettings:
    settings = default_settings(user_id, game, playtype)

    try:
        await tachi.state.services.store[COLLECTION].insert_one(dict(settings))
    except DuplicateKeyError:
        pass  # already created by an earlier import

    return settings


async def fetch_one(user_id: int, game: str, playtype: str) -> GameSettings | None:
    settings = await tachi.state.services.store[COLLECTION].find_one(
        {"userID": user_id, "game": game, "playtype": playtype},
    )
    return settings  # type: ignore[return-value]
