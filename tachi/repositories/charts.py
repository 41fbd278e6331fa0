from __future__ import annotations

from typing import Any
from typing import TypedDict

import tachi.state

COLLECTION = "charts"


class Chart(TypedDict):
    chartID: str
    songID: int
    game: str
    playtype: str
    difficulty: str
    level: str
    levelNum: float
    isPrimary: bool
    versions: list[str]
    data: dict[str, Any]
    tierlistInfo: dict[str, Any]


async def create(chart: Chart) -> None:
    await tachi.state.services.store[COLLECTION].insert_one(dict(chart))


async def fetch_one(chart_id: str) -> Chart | None:
    chart = await tachi.state.services.store[COLLECTION].find_one({"chartID": chart_id})
    return chart  # type: ignore[return-value]


async def fetch_by_query(game: str, query: dict[str, Any]) -> Chart | None:
    """Find a chart in `game` matching an arbitrary query, e.g. on `data.hashSHA1`."""
    chart = await tachi.state.services.store[COLLECTION].find_one({"game": game, **query})
    return chart  # type: ignore[return-value]


async def fetch_for_song(
    game: str,
    song_id: int,
    playtype: str,
    difficulty: str,
) -> Chart | None:
    chart = await tachi.state.services.store[COLLECTION].find_one(
        {
            "game": game,
            "songID": song_id,
            "playtype": playtype,
            "difficulty": difficulty,
            "isPrimary": True,
        },
    )
    return chart  # type: ignore[return-value]


async def delete(chart_id: str) -> int:
    return await tachi.state.services.store[COLLECTION].delete_one({"chartID": chart_id})
