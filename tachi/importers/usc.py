"""unnamed-sdvx-clone internet ranking (USC IR) score submissions."""

from __future__ import annotations

import hashlib
from typing import Any
from typing import Literal

from pydantic import BaseModel
from pydantic import Field

from tachi.importers.common import ConverterSuccess
from tachi.importers.common import InputParser
from tachi.importers.common import ParsedImport
from tachi.importers.common import find_song_for_chart
from tachi.importers.common import get_grade_and_percent
from tachi.importers.common import now_ms
from tachi.importers.common import validate_record
from tachi.importers.failures import InternalFailure
from tachi.importers.failures import InvalidScoreFailure
from tachi.importers.failures import KTDataNotFoundFailure
from tachi.logging import ContextLogger
from tachi.repositories import charts as charts_repo
from tachi.repositories.charts import Chart
from tachi.repositories.songs import Song

USC_DEFAULT_PERFECT = 46
USC_DEFAULT_NEAR = 150
USC_DEFAULT_HOLD = 150
USC_DEFAULT_MISS = 300
USC_DEFAULT_SLAM = 84

USC_DIFFICULTIES = ("NOV", "ADV", "EXH", "INF")


class USCOptions(BaseModel):
    gaugeType: Literal[0, 1, 2]
    gaugeOpt: int
    mirror: bool
    random: bool
    autoFlags: int


class USCWindows(BaseModel):
    perfect: float
    good: float
    hold: float
    miss: float
    slam: float


class USCClientScore(BaseModel):
    score: int = Field(ge=0, le=10_000_000)
    gauge: float
    timestamp: int
    crit: int = Field(ge=0)
    near: int = Field(ge=0)
    error: int = Field(ge=0)
    early: int | None = None
    late: int | None = None
    combo: int | None = None
    options: USCOptions
    windows: USCWindows


class USCClientChart(BaseModel):
    chartHash: str
    artist: str
    title: str
    level: int = Field(ge=1, le=20)
    difficulty: Literal[0, 1, 2, 3]
    effector: str
    illustrator: str
    bpm: str


def derive_note_mod(score: USCClientScore) -> str:
    if score.options.mirror and score.options.random:
        return "MIR-RAN"
    if score.options.mirror:
        return "MIRROR"
    if score.options.random:
        return "RANDOM"
    return "NORMAL"


def derive_lamp(score: USCClientScore, logger: ContextLogger) -> str:
    if score.score == 10_000_000:
        return "PERFECT ULTIMATE CHAIN"
    if score.error == 0:
        return "ULTIMATE CHAIN"
    if score.options.gaugeType == 0:
        return "CLEAR" if score.gauge >= 0.7 else "FAILED"
    if score.options.gaugeType == 1:
        return "EXCESSIVE CLEAR" if score.gauge > 0 else "FAILED"

    logger.error(f"Could not derive lamp from USC score with gaugeType {score.options.gaugeType}.")
    raise InternalFailure("Could not derive lamp from score.")


def has_default_windows(windows: USCWindows) -> bool:
    return (
        windows.perfect == USC_DEFAULT_PERFECT
        and windows.good == USC_DEFAULT_NEAR
        and windows.hold == USC_DEFAULT_HOLD
        and windows.miss == USC_DEFAULT_MISS
        and windows.slam == USC_DEFAULT_SLAM
    )


def create_parser(score: Any, chart_hash: str, playtype: str) -> InputParser:
    async def parse(logger: ContextLogger) -> ParsedImport:
        return ParsedImport(
            iterable=[score],
            game="usc",
            context={"chartHash": chart_hash, "playtype": playtype},
        )

    return parse


def convert_usc_chart(usc_chart: USCClientChart, playtype: str) -> tuple[Chart, Song]:
    """Build the canonical chart and song a USC chart would become if promoted."""
    chart_id = hashlib.sha1(f"usc|{usc_chart.chartHash}|{playtype}".encode()).hexdigest()
    song_id = int(hashlib.sha256(usc_chart.chartHash.encode()).hexdigest()[:12], 16)

    song: Song = {
        "id": song_id,
        "game": "usc",
        "title": usc_chart.title,
        "artist": usc_chart.artist,
        "searchTerms": [],
        "altTitles": [],
        "data": {"effector": usc_chart.effector, "illustrator": usc_chart.illustrator, "bpm": usc_chart.bpm},
    }

    chart: Chart = {
        "chartID": chart_id,
        "songID": song_id,
        "game": "usc",
        "playtype": playtype,
        "difficulty": USC_DIFFICULTIES[usc_chart.difficulty],
        "level": str(usc_chart.level),
        "levelNum": usc_chart.level,
        "isPrimary": True,
        "versions": [],
        "data": {"hashSHA1": usc_chart.chartHash, "isOfficial": False},
        "tierlistInfo": {},
    }

    return chart, song


def human_chart_name(usc_chart: USCClientChart) -> str:
    return f"{usc_chart.artist} - {usc_chart.title} ({USC_DIFFICULTIES[usc_chart.difficulty]})"


async def convert_usc_score(
    data: Any,
    context: dict[str, Any],
    import_type: str,
    logger: ContextLogger,
) -> ConverterSuccess:
    score = validate_record(USCClientScore, data)

    if not has_default_windows(score.windows):
        logger.verbose("Ignored score because hit windows were modified.")
        raise InvalidScoreFailure("Hit windows have been modified - score is invalid.")

    if score.options.autoFlags != 0:
        logger.verbose("Ignored score because autoplay was enabled.")
        raise InvalidScoreFailure("Autoplay was enabled - score is invalid.")

    chart = await charts_repo.fetch_by_query(
        "usc",
        {"data.hashSHA1": context["chartHash"], "playtype": context["playtype"]},
    )

    if chart is None:
        raise KTDataNotFoundFailure(
            f"Chart {context['chartHash']} is orphaned.",
            import_type,
            data,
            context,
        )

    song = await find_song_for_chart("usc", chart, logger)
    grade, percent = get_grade_and_percent("usc", chart["playtype"], score.score, chart)

    return ConverterSuccess(
        dry_score={
            "game": "usc",
            "service": "USC-IR",
            "importType": import_type,
            "comment": None,
            "timeAchieved": now_ms(),
            "scoreData": {
                "score": score.score,
                "percent": percent,
                "grade": grade,
                "lamp": derive_lamp(score, logger),
                "judgements": {
                    "critical": score.crit,
                    "near": score.near,
                    "miss": score.error,
                },
                "hitMeta": {
                    "gauge": score.gauge,
                    "fast": score.early,
                    "slow": score.late,
                    "maxCombo": score.combo,
                },
            },
            "scoreMeta": {
                "gaugeMod": "NORMAL" if score.options.gaugeOpt == 0 else "HARD",
                "noteMod": derive_note_mod(score),
            },
        },
        chart=chart,
        song=song,
    )
