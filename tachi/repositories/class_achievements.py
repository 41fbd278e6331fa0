from __future__ import annotations

from typing import TypedDict

import tachi.state

COLLECTION = "class-achievements"


class ClassAchievement(TypedDict):
    userID: int
    game: str
    playtype: str
    classSet: str
    classOldValue: int | None
    classValue: int
    timeAchieved: int


async def create_many(achievements: list[ClassAchievement]) -> None:
    if not achievements:
        return

    await tachi.state.services.store[COLLECTION].insert_many(
        [dict(achievement) for achievement in achievements],
    )


async def fetch_many(user_id: int, game: str, playtype: str) -> list[ClassAchievement]:
    achievements = await tachi.state.services.store[COLLECTION].find(
        {"userID": user_id, "game": game, "playtype": playtype},
        sort=[("timeAchieved", 1)],
    )
    return achievements  # type: ignore[return-value]
