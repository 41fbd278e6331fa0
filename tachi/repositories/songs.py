from __future__ import annotations

from typing import Any
from typing import TypedDict

import tachi.state

COLLECTION = "songs"


class Song(TypedDict):
    id: int
    game: str
    title: str
    artist: str
    searchTerms: list[str]
    altTitles: list[str]
    data: dict[str, Any]


async def create(song: Song) -> None:
    await tachi.state.services.store[COLLECTION].insert_one(dict(song))


async def fetch_one(game: str, song_id: int) -> Song | None:
    song = await tachi.state.services.store[COLLECTION].find_one(
        {"game": game, "id": song_id},
    )
    return song  # type: ignore[return-value]


async def fetch_by_title(game: str, title: str) -> Song | None:
    """Match a song on its title or any of its alternate titles."""
    songs = tachi.state.services.store[COLLECTION]

    song = await songs.find_one({"game": game, "title": title})
    if song is None:
        song = await songs.find_one({"game": game, "altTitles": title})

    return song  # type: ignore[return-value]


async def next_song_id(game: str) -> int:
    songs = await tachi.state.services.store[COLLECTION].find(
        {"game": game},
        sort=[("id", -1)],
        limit=1,
    )
    return songs[0]["id"] + 1 if songs else 1
