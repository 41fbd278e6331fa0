"""\
BATCH-MANUAL: a generic JSON format any tool can emit.

    {
        "meta": {"game": "iidx", "playtype": "SP", "service": "my-exporter"},
        "scores": [{"score": 1234, "lamp": "HARD CLEAR", "matchType": "songTitle",
                    "identifier": "5.1.1.", "difficulty": "ANOTHER"}],
        "classes": {"dan": "KAIDEN"}
    }

Used both for file uploads (file/batch-manual) and direct JSON submissions
(ir/direct-manual).
"""

from __future__ import annotations

import json
from typing import Any
from typing import Literal

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import ValidationError

from tachi.constants.classes import get_class_enum
from tachi.constants.games import get_game_pt_config
from tachi.constants.games import is_valid_game_pt
from tachi.importers.common import ConverterSuccess
from tachi.importers.common import InputParser
from tachi.importers.common import ParsedImport
from tachi.importers.common import find_song_for_chart
from tachi.importers.common import format_validation_error
from tachi.importers.common import get_grade_and_percent
from tachi.importers.common import validate_lamp
from tachi.importers.common import validate_record
from tachi.importers.failures import InvalidScoreFailure
from tachi.importers.failures import KTDataNotFoundFailure
from tachi.importers.failures import ScoreImportFatalError
from tachi.logging import ContextLogger
from tachi.repositories import charts as charts_repo
from tachi.repositories import songs as songs_repo
from tachi.repositories.charts import Chart
from tachi.usecases.classes import ClassHandler


class BatchManualMeta(BaseModel):
    game: str
    playtype: str
    service: str = Field(min_length=3, max_length=15)
    version: str | None = None


class BatchManualScore(BaseModel):
    model_config = ConfigDict(extra="forbid")

    score: float = Field(ge=0)
    lamp: str
    matchType: Literal["songTitle", "tachiSongID", "inGameID", "bmsChartHash"]
    identifier: str
    difficulty: str | None = None
    timeAchieved: int | None = None
    comment: str | None = Field(default=None, max_length=240)
    judgements: dict[str, int] = Field(default_factory=dict)
    hitMeta: dict[str, Any] = Field(default_factory=dict)
    scoreMeta: dict[str, Any] = Field(default_factory=dict)


class BatchManual(BaseModel):
    meta: BatchManualMeta
    # validated one at a time by the converter, so one bad score can't sink the batch
    scores: list[Any]
    classes: dict[str, str] | None = None


def create_class_handler(classes: dict[str, int]) -> ClassHandler:
    async def class_handler(
        game: str,
        playtype: str,
        user_id: int,
        ratings: Any,
        logger: ContextLogger,
    ) -> dict[str, int]:
        return dict(classes)

    return class_handler


def parse_classes(game: str, playtype: str, classes: dict[str, str]) -> dict[str, int]:
    config = get_game_pt_config(game, playtype)
    parsed: dict[str, int] = {}

    for class_set, value in classes.items():
        class_enum = get_class_enum(game, class_set)
        if class_set not in config.class_sets or class_enum is None:
            raise ScoreImportFatalError(400, f"Invalid class set {class_set} for {game}:{playtype}.")

        try:
            parsed[class_set] = int(class_enum[value])
        except KeyError:
            raise ScoreImportFatalError(400, f"Invalid value {value} for class {class_set}.")

    return parsed


def parse_batch_manual_object(data: Any, logger: ContextLogger) -> ParsedImport:
    try:
        batch = BatchManual.model_validate(data)
    except ValidationError as exc:
        raise ScoreImportFatalError(400, f"Invalid BATCH-MANUAL: {format_validation_error(exc)}")

    meta = batch.meta
    if not is_valid_game_pt(meta.game, meta.playtype):
        raise ScoreImportFatalError(400, f"Invalid game/playtype {meta.game}:{meta.playtype}.")

    class_handler = None
    if batch.classes:
        class_handler = create_class_handler(
            parse_classes(meta.game, meta.playtype, batch.classes),
        )

    logger.verbose(f"Parsed BATCH-MANUAL with {len(batch.scores)} scores.")

    return ParsedImport(
        iterable=batch.scores,
        game=meta.game,
        context={
            "game": meta.game,
            "playtype": meta.playtype,
            "service": meta.service,
            "version": meta.version,
        },
        class_handler=class_handler,
    )


def create_file_parser(file_data: bytes) -> InputParser:
    async def parse(logger: ContextLogger) -> ParsedImport:
        try:
            data = json.loads(file_data)
        except (ValueError, UnicodeDecodeError) as exc:
            raise ScoreImportFatalError(400, f"Invalid JSON. ({exc})")

        return parse_batch_manual_object(data, logger)

    return parse


def create_object_parser(data: Any) -> InputParser:
    async def parse(logger: ContextLogger) -> ParsedImport:
        return parse_batch_manual_object(data, logger)

    return parse


async def resolve_chart(
    score: BatchManualScore,
    game: str,
    playtype: str,
    version: str | None,
) -> Chart | None:
    if score.matchType in ("songTitle", "tachiSongID"):
        if score.difficulty is None:
            raise InvalidScoreFailure(f"matchType {score.matchType} requires a difficulty.")

        if score.matchType == "songTitle":
            song = await songs_repo.fetch_by_title(game, score.identifier)
        else:
            try:
                song_id = int(score.identifier)
            except ValueError:
                raise InvalidScoreFailure(f"Invalid tachiSongID {score.identifier}.")
            song = await songs_repo.fetch_one(game, song_id)

        if song is None:
            return None

        return await charts_repo.fetch_for_song(game, song["id"], playtype, score.difficulty)

    if score.matchType == "inGameID":
        try:
            in_game_id = int(score.identifier)
        except ValueError:
            raise InvalidScoreFailure(f"Invalid inGameID {score.identifier}.")

        query: dict[str, Any] = {"data.inGameID": in_game_id, "playtype": playtype}
        if score.difficulty is not None:
            query["difficulty"] = score.difficulty
        if version is not None:
            query["versions"] = version
        return await charts_repo.fetch_by_query(game, query)

    return await charts_repo.fetch_by_query(
        game,
        {
            "playtype": playtype,
            "$or": [{"data.hashMD5": score.identifier}, {"data.hashSHA256": score.identifier}],
        },
    )


async def convert_batch_manual(
    data: Any,
    context: dict[str, Any],
    import_type: str,
    logger: ContextLogger,
) -> ConverterSuccess:
    score = validate_record(BatchManualScore, data)
    game, playtype = context["game"], context["playtype"]

    lamp = validate_lamp(game, playtype, score.lamp)

    if score.difficulty is not None:
        config = get_game_pt_config(game, playtype)
        if score.difficulty not in config.difficulties:
            raise InvalidScoreFailure(f"Invalid difficulty {score.difficulty}.")

    chart = await resolve_chart(score, game, playtype, context.get("version"))
    if chart is None:
        raise KTDataNotFoundFailure(
            f"Cannot find chart for {score.matchType} {score.identifier} ({score.difficulty}).",
            import_type,
            data,
            context,
        )

    song = await find_song_for_chart(game, chart, logger)
    grade, percent = get_grade_and_percent(game, playtype, score.score, chart)

    return ConverterSuccess(
        dry_score={
            "game": game,
            "service": context["service"],
            "importType": import_type,
            "comment": score.comment,
            "timeAchieved": score.timeAchieved,
            "scoreData": {
                "score": score.score,
                "percent": percent,
                "grade": grade,
                "lamp": lamp,
                "judgements": dict(score.judgements),
                "hitMeta": dict(score.hitMeta),
            },
            "scoreMeta": dict(score.scoreMeta),
        },
        chart=chart,
        song=song,
    )
