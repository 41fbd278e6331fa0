from __future__ import annotations

import time
from collections.abc import AsyncIterable
from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Iterable
from dataclasses import dataclass
from dataclasses import field
from typing import Any
from typing import TypedDict
from typing import TypeVar

from pydantic import BaseModel
from pydantic import ValidationError

from tachi.constants.games import GamePTConfig
from tachi.constants.games import get_game_pt_config
from tachi.importers.failures import InternalFailure
from tachi.importers.failures import InvalidScoreFailure
from tachi.logging import ContextLogger
from tachi.repositories import songs as songs_repo
from tachi.repositories.charts import Chart
from tachi.repositories.songs import Song
from tachi.usecases.classes import ClassHandler

M = TypeVar("M", bound=BaseModel)


class DryScoreData(TypedDict):
    score: float
    percent: float
    grade: str
    lamp: str
    judgements: dict[str, int | None]
    hitMeta: dict[str, Any]


class DryScore(TypedDict):
    """A converted score, before it has an ID or calculated data."""

    game: str
    service: str
    importType: str
    comment: str | None
    timeAchieved: int | None
    scoreData: DryScoreData
    scoreMeta: dict[str, Any]


@dataclass
class ConverterSuccess:
    dry_score: DryScore
    chart: Chart
    song: Song


@dataclass
class ParsedImport:
    iterable: Iterable[Any] | AsyncIterable[Any]
    game: str
    context: dict[str, Any] = field(default_factory=dict)
    class_handler: ClassHandler | None = None


# (raw record, context, import type, logger) -> converted score
Converter = Callable[[Any, dict[str, Any], str, ContextLogger], Awaitable[ConverterSuccess]]

# logger -> parsed import. Raises ScoreImportFatalError if the input is unusable.
InputParser = Callable[[ContextLogger], Awaitable[ParsedImport]]


def now_ms() -> int:
    return int(time.time() * 1000)


def format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(loc) for loc in error["loc"]) or "(root)"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)


def validate_record(model: type[M], data: Any) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise InvalidScoreFailure(format_validation_error(exc))


def calculate_percent(config: GamePTConfig, score: float, chart: Chart) -> float:
    if config.game in ("iidx", "bms"):
        return score / (chart["data"]["notecount"] * 2) * 100
    if config.game == "chunithm":
        return score / 10_000
    if config.game == "gitadora":
        return score

    if config.max_score is None:
        raise InternalFailure(f"Cannot derive a percent for {config.game} {config.playtype} without a maximum score.")
    return score / config.max_score * 100


def max_percent(config: GamePTConfig) -> float:
    return 101.0 if config.game == "chunithm" else 100.0


def grade_from_percent(config: GamePTConfig, percent: float) -> str:
    grade = config.grades[0][0]
    for name, minimum in config.grades:
        # rounding so exact boundaries like 8/9 survive float error
        if round(percent, 8) >= round(minimum, 8):
            grade = name
    return grade


def get_grade_and_percent(
    game: str,
    playtype: str,
    score: float,
    chart: Chart,
) -> tuple[str, float]:
    config = get_game_pt_config(game, playtype)
    percent = calculate_percent(config, score, chart)

    if percent < 0 or percent > max_percent(config):
        raise InvalidScoreFailure(
            f"Invalid percent of {percent:.2f} - score {score} is out of range for this chart.",
        )

    return grade_from_percent(config, percent), percent


def validate_lamp(game: str, playtype: str, lamp: str) -> str:
    config = get_game_pt_config(game, playtype)
    if lamp not in config.lamps:
        raise InvalidScoreFailure(
            f"Invalid lamp {lamp!r}, expected one of {', '.join(config.lamps)}.",
        )
    return lamp


async def find_song_for_chart(game: str, chart: Chart, logger: ContextLogger) -> Song:
    song = await songs_repo.fetch_one(game, chart["songID"])

    if song is None:
        logger.severe(f"Song-Chart desync with song ID {chart['songID']} ({game}).")
        raise InternalFailure(f"Song-Chart desync with song ID {chart['songID']} ({game}).")

    return song
