"""e-amusement SDVX score CSV exports."""

from __future__ import annotations

import csv
import io
from typing import Any

from tachi.importers.common import ConverterSuccess
from tachi.importers.common import InputParser
from tachi.importers.common import ParsedImport
from tachi.importers.common import find_song_for_chart
from tachi.importers.common import get_grade_and_percent
from tachi.importers.failures import InvalidScoreFailure
from tachi.importers.failures import KTDataNotFoundFailure
from tachi.importers.failures import ScoreImportFatalError
from tachi.logging import ContextLogger
from tachi.repositories import charts as charts_repo
from tachi.repositories import songs as songs_repo

HEADER_COUNT = 11

DIFFICULTIES = {
    "NOVICE": "NOV",
    "ADVANCED": "ADV",
    "EXHAUST": "EXH",
    "MAXIMUM": "MXM",
    "INFINITE": "INF",
    "GRAVITY": "GRV",
    "HEAVENLY": "HVN",
    "VIVID": "VVD",
    "EXCEED": "XCD",
}

LAMPS = {
    "PLAYED": "FAILED",
    "COMPLETE": "CLEAR",
    "EXCESSIVE COMPLETE": "EXCESSIVE CLEAR",
    "ULTIMATE CHAIN": "ULTIMATE CHAIN",
    "PERFECT": "PERFECT ULTIMATE CHAIN",
}


def parse_csv(file_data: bytes, logger: ContextLogger) -> list[dict[str, str]]:
    try:
        text = file_data.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ScoreImportFatalError(400, "Invalid CSV provided. The file is not UTF-8.")

    rows = list(csv.reader(io.StringIO(text)))
    if not rows:
        raise ScoreImportFatalError(400, "Invalid CSV provided. The file is empty.")

    headers, *body = rows
    if len(headers) != HEADER_COUNT:
        logger.info(f"Invalid CSV header count of {len(headers)} received.")
        raise ScoreImportFatalError(
            400,
            "Invalid CSV provided. CSV does not have the correct number of headers.",
        )

    records = []
    for cells in body:
        if not any(cell.strip() for cell in cells):
            continue

        # short rows are passed through and rejected per-record by the converter
        cells = cells + [""] * (HEADER_COUNT - len(cells))
        records.append(
            {
                "title": cells[0],
                "difficulty": cells[1],
                "level": cells[2],
                "lamp": cells[3],
                # the remaining columns are grade, per-clear-type counts and
                # exscore, none of which we store. There is no timestamp.
                "score": cells[5],
                "exscore": cells[6],
            },
        )

    return records


def create_parser(file_data: bytes) -> InputParser:
    async def parse(logger: ContextLogger) -> ParsedImport:
        return ParsedImport(iterable=parse_csv(file_data, logger), game="sdvx")

    return parse


async def convert_sdvx_csv(
    data: dict[str, str],
    context: dict[str, Any],
    import_type: str,
    logger: ContextLogger,
) -> ConverterSuccess:
    difficulty = DIFFICULTIES.get(data["difficulty"].strip().upper())
    if difficulty is None:
        raise InvalidScoreFailure(f"Invalid difficulty {data['difficulty']!r}.")

    lamp = LAMPS.get(data["lamp"].strip().upper())
    if lamp is None:
        raise InvalidScoreFailure(f"Invalid lamp {data['lamp']!r}.")

    try:
        score = int(data["score"])
    except ValueError:
        raise InvalidScoreFailure(f"Invalid score {data['score']!r}.")

    song = await songs_repo.fetch_by_title("sdvx", data["title"])
    if song is None:
        raise KTDataNotFoundFailure(
            f"Could not find song with title {data['title']}.",
            import_type,
            data,
            context,
        )

    chart = await charts_repo.fetch_for_song("sdvx", song["id"], "Single", difficulty)
    if chart is None:
        raise KTDataNotFoundFailure(
            f"Could not find chart for {data['title']} ({difficulty}).",
            import_type,
            data,
            context,
        )

    # re-fetched through the chart so a desync is caught the same way everywhere
    song = await find_song_for_chart("sdvx", chart, logger)
    grade, percent = get_grade_and_percent("sdvx", "Single", score, chart)

    return ConverterSuccess(
        dry_score={
            "game": "sdvx",
            "service": "e-amusement",
            "importType": import_type,
            "comment": None,
            "timeAchieved": None,
            "scoreData": {
                "score": score,
                "percent": percent,
                "grade": grade,
                "lamp": lamp,
                "judgements": {},
                "hitMeta": {},
            },
            "scoreMeta": {},
        },
        chart=chart,
        song=song,
    )
