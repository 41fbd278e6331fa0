from __future__ import annotations

from typing import Any

from . import BaseModel


class Score(BaseModel):
    """A stored score."""

    scoreID: str
    userID: int
    chartID: str
    songID: int
    game: str
    playtype: str
    isPrimary: bool
    service: str
    importType: str | None
    comment: str | None
    timeAdded: int
    timeAchieved: int | None
    scoreData: dict[str, Any]
    scoreMeta: dict[str, Any]
    calculatedData: dict[str, float | None]


class RankingData(BaseModel):
    rank: int
    outOf: int


class PersonalBest(BaseModel):
    userID: int
    chartID: str
    game: str
    playtype: str
    timeAchieved: int | None
    scoreData: dict[str, Any]
    calculatedData: dict[str, float | None]
    composedFrom: dict[str, Any]
    # absent until the chart's rankings have been refreshed
    rankingData: RankingData | None = None


class ScoreWithPB(BaseModel):
    score: Score
    pb: PersonalBest | None
