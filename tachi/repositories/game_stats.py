from __future__ import annotations

from typing import TypedDict

import tachi.state

COLLECTION = "game-stats"


class UserGameStats(TypedDict):
    userID: int
    game: str
    playtype: str
    ratings: dict[str, float | None]
    classes: dict[str, int]


async def fetch_one(user_id: int, game: str, playtype: str) -> UserGameStats | None:
    ugs = await tachi.state.services.store[COLLECTION].find_one(
        {"userID": user_id, "game": game, "playtype": playtype},
    )
    return ugs  # type: ignore[return-value]


async def upsert(
    user_id: int,
    game: str,
    playtype: str,
    ratings: dict[str, float | None],
    classes: dict[str, int],
) -> None:
    await tachi.state.services.store[COLLECTION].update_one(
        {"userID": user_id, "game": game, "playtype": playtype},
        {"$set": {"ratings": ratings, "classes": classes}},
        upsert=True,
    )


async def fetch_user_ids(game: str | None = None) -> list[int]:
    query = {"game": game} if game is not None else {}
    docs = await tachi.state.services.store[COLLECTION].find(query)
    return sorted({doc["userID"] for doc in docs})
