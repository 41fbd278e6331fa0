"""SDVX play history from Kai-style network APIs (FLO, EAG and MIN)."""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any

import httpx
from pydantic import BaseModel
from pydantic import Field

import tachi.adapters.kai_api
from tachi.adapters.kai_api import KaiService
from tachi.constants.classes import SDVXDans
from tachi.importers.common import ConverterSuccess
from tachi.importers.common import InputParser
from tachi.importers.common import ParsedImport
from tachi.importers.common import find_song_for_chart
from tachi.importers.common import get_grade_and_percent
from tachi.importers.common import validate_record
from tachi.importers.failures import InvalidScoreFailure
from tachi.importers.failures import KTDataNotFoundFailure
from tachi.importers.failures import ScoreImportFatalError
from tachi.logging import ContextLogger
from tachi.repositories import charts as charts_repo
from tachi.usecases.classes import ClassHandler

# music_difficulty -> chart difficulty. 3 is whichever of the
# version-specific fourth difficulties the song has.
DIFFICULTIES: dict[int, str | list[str]] = {
    0: "NOV",
    1: "ADV",
    2: "EXH",
    3: ["INF", "GRV", "HVN", "VVD", "XCD"],
    4: "MXM",
}

VERSIONS = {
    1: "booth",
    2: "inf",
    3: "gw",
    4: "heaven",
    5: "vivid",
}

LAMPS = {
    1: "FAILED",
    2: "CLEAR",
    3: "EXCESSIVE CLEAR",
    4: "ULTIMATE CHAIN",
    5: "PERFECT ULTIMATE CHAIN",
}


class KaiSDVXScore(BaseModel):
    music_id: int
    music_difficulty: int = Field(ge=0, le=4)
    game_version: int
    score: int = Field(ge=0, le=10_000_000)
    clear_type: int = Field(ge=1, le=5)
    max_chain: int | None = None
    critical: int | None = None
    near: int | None = None
    error: int | None = None
    early: int | None = None
    late: int | None = None
    gauge_rate: float | None = None
    timestamp: str


def dan_from_profile(profile: dict[str, Any], logger: ContextLogger) -> dict[str, int]:
    skill_level = profile.get("skill_level")
    if skill_level is None:
        return {}

    dan = skill_level - 1
    if dan == -1:
        return {}

    if dan not in SDVXDans._value2member_map_:
        logger.warning(f"Received invalid skill level {skill_level} from Kai profile.")
        return {}

    return {"dan": dan}


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


async def _iter_scores(service: KaiService, token: str) -> AsyncIterator[dict[str, Any]]:
    try:
        async for item in tachi.adapters.kai_api.iter_sdvx_scores(service, token):
            yield item
    except httpx.HTTPError as exc:
        raise ScoreImportFatalError(500, f"Failed to fetch scores from {service}. ({exc})")


def create_parser(service: KaiService, token: str) -> InputParser:
    async def parse(logger: ContextLogger) -> ParsedImport:
        try:
            profile = await tachi.adapters.kai_api.fetch_sdvx_profile(service, token)
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code in (401, 403):
                raise ScoreImportFatalError(401, f"{service} rejected the stored token.")
            raise ScoreImportFatalError(500, f"Failed to fetch profile from {service}.")
        except httpx.HTTPError as exc:
            raise ScoreImportFatalError(500, f"Failed to reach {service}. ({exc})")
        except ValueError as exc:
            raise ScoreImportFatalError(500, str(exc))

        classes = dan_from_profile(profile, logger)

        return ParsedImport(
            iterable=_iter_scores(service, token),
            game="sdvx",
            context={"service": service},
            class_handler=create_class_handler(classes) if classes else None,
        )

    return parse


def parse_timestamp(value: str) -> int:
    try:
        return int(datetime.fromisoformat(value).timestamp() * 1000)
    except ValueError:
        raise InvalidScoreFailure(f"Invalid timestamp {value!r}.")


async def convert_kai_sdvx(
    data: Any,
    context: dict[str, Any],
    import_type: str,
    logger: ContextLogger,
) -> ConverterSuccess:
    score = validate_record(KaiSDVXScore, data)

    version = VERSIONS.get(score.game_version)
    if version is None:
        raise InvalidScoreFailure(f"Unsupported game_version {score.game_version}.")

    difficulty = DIFFICULTIES[score.music_difficulty]
    chart = await charts_repo.fetch_by_query(
        "sdvx",
        {
            "data.inGameID": score.music_id,
            "difficulty": {"$in": difficulty} if isinstance(difficulty, list) else difficulty,
            "versions": version,
        },
    )

    if chart is None:
        raise KTDataNotFoundFailure(
            f"Could not find chart with songID {score.music_id} "
            f"(difficulty {score.music_difficulty}, version {version}).",
            import_type,
            data,
            context,
        )

    song = await find_song_for_chart("sdvx", chart, logger)
    grade, percent = get_grade_and_percent("sdvx", "Single", score.score, chart)

    return ConverterSuccess(
        dry_score={
            "game": "sdvx",
            "service": context["service"],
            "importType": import_type,
            "comment": None,
            "timeAchieved": parse_timestamp(score.timestamp),
            "scoreData": {
                "score": score.score,
                "percent": percent,
                "grade": grade,
                "lamp": LAMPS[score.clear_type],
                "judgements": {
                    "critical": score.critical,
                    "near": score.near,
                    "miss": score.error,
                },
                "hitMeta": {
                    "fast": score.early,
                    "slow": score.late,
                    "gauge": score.gauge_rate,
                    "maxCombo": score.max_chain,
                },
            },
            "scoreMeta": {},
        },
        chart=chart,
        song=song,
    )
