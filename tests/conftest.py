from __future__ import annotations

import copy
import logging
from typing import Any

import pytest

import tachi.settings
import tachi.state
from tachi.adapters.document_store import MemoryDocumentStore
from tachi.adapters.locks import MemoryLock
from tachi.constants.games import get_game_pt_config
from tachi.importers.common import get_grade_and_percent
from tachi.repositories import bpi_data as bpi_data_repo
from tachi.repositories import charts as charts_repo
from tachi.repositories import songs as songs_repo
from tachi.usecases.score_id import create_score_id

USC_CHART_HASH = "3f2a" * 10

SONGS: list[dict[str, Any]] = [
    {
        "id": 1,
        "game": "iidx",
        "title": "5.1.1.",
        "artist": "dj nagureo",
        "searchTerms": [],
        "altTitles": ["five one one"],
        "data": {"genre": "PIANO AMBIENT"},
    },
    {
        "id": 1,
        "game": "sdvx",
        "title": "Lachryma",
        "artist": "Kanaria",
        "searchTerms": [],
        "altTitles": [],
        "data": {},
    },
    {
        "id": 1,
        "game": "usc",
        "title": "Testing Song",
        "artist": "Somebody",
        "searchTerms": [],
        "altTitles": [],
        "data": {},
    },
]

CHARTS: dict[str, dict[str, Any]] = {
    "iidx_another": {
        "chartID": "iidx-511-sp-another",
        "songID": 1,
        "game": "iidx",
        "playtype": "SP",
        "difficulty": "ANOTHER",
        "level": "10",
        "levelNum": 10,
        "isPrimary": True,
        "versions": ["27"],
        "data": {"notecount": 786, "inGameID": 1000},
        "tierlistInfo": {"kt-HC": {"value": 10.5}},
    },
    "iidx_hyper": {
        "chartID": "iidx-511-sp-hyper",
        "songID": 1,
        "game": "iidx",
        "playtype": "SP",
        "difficulty": "HYPER",
        "level": "7",
        "levelNum": 7,
        "isPrimary": True,
        "versions": ["27"],
        "data": {"notecount": 500, "inGameID": 1000},
        "tierlistInfo": {},
    },
    "sdvx_exh": {
        "chartID": "sdvx-lachryma-exh",
        "songID": 1,
        "game": "sdvx",
        "playtype": "Single",
        "difficulty": "EXH",
        "level": "18",
        "levelNum": 18,
        "isPrimary": True,
        "versions": ["booth", "inf", "gw", "heaven", "vivid"],
        "data": {"inGameID": 100},
        "tierlistInfo": {},
    },
    "sdvx_inf": {
        "chartID": "sdvx-lachryma-inf",
        "songID": 1,
        "game": "sdvx",
        "playtype": "Single",
        "difficulty": "INF",
        "level": "19",
        "levelNum": 19,
        "isPrimary": True,
        "versions": ["inf", "gw", "heaven", "vivid"],
        "data": {"inGameID": 100},
        "tierlistInfo": {},
    },
    "usc_exh": {
        "chartID": "usc-testing-song-exh",
        "songID": 1,
        "game": "usc",
        "playtype": "Controller",
        "difficulty": "EXH",
        "level": "17",
        "levelNum": 17,
        "isPrimary": True,
        "versions": [],
        "data": {"hashSHA1": USC_CHART_HASH, "isOfficial": False},
        "tierlistInfo": {},
    },
}


@pytest.fixture(autouse=True)
def store(monkeypatch: pytest.MonkeyPatch) -> MemoryDocumentStore:
    store = MemoryDocumentStore()

    monkeypatch.setattr(tachi.state.services, "store", store)
    monkeypatch.setattr(tachi.state.services, "lock", MemoryLock())
    monkeypatch.setattr(tachi.settings, "WEBHOOK_URLS", [])

    return store


@pytest.fixture(autouse=True)
def log_level() -> Any:
    # some tests move the root log level, put it back afterwards
    root = logging.getLogger("tachi")
    level = root.level
    yield
    root.setLevel(level)


@pytest.fixture
async def catalog(store: MemoryDocumentStore) -> dict[str, dict[str, Any]]:
    for song in SONGS:
        await songs_repo.create(copy.deepcopy(song))  # type: ignore[arg-type]

    for chart in CHARTS.values():
        await charts_repo.create(copy.deepcopy(chart))  # type: ignore[arg-type]

    await bpi_data_repo.create(
        {"chartID": CHARTS["iidx_another"]["chartID"], "kavg": 1200, "wr": 1500, "coef": None},
    )

    return copy.deepcopy(CHARTS)


@pytest.fixture
def usc_score() -> dict[str, Any]:
    return {
        "score": 9_500_000,
        "gauge": 0.8,
        "timestamp": 1_600_000_000,
        "crit": 1000,
        "near": 50,
        "error": 5,
        "early": 20,
        "late": 30,
        "combo": 400,
        "options": {"gaugeType": 0, "gaugeOpt": 0, "mirror": False, "random": False, "autoFlags": 0},
        "windows": {"perfect": 46, "good": 150, "hold": 150, "miss": 300, "slam": 84},
    }


@pytest.fixture
def make_score() -> Any:
    """Build a fully hydrated score document on a chart."""

    def make(
        user_id: int,
        chart: dict[str, Any],
        score: float,
        lamp: str,
        time_achieved: int | None = None,
        hit_meta: dict[str, Any] | None = None,
        calculated_data: dict[str, float | None] | None = None,
    ) -> dict[str, Any]:
        config = get_game_pt_config(chart["game"], chart["playtype"])
        grade, percent = get_grade_and_percent(chart["game"], chart["playtype"], score, chart)  # type: ignore[arg-type]

        score_data = {
            "score": score,
            "percent": percent,
            "grade": grade,
            "gradeIndex": config.grade_index(grade),
            "lamp": lamp,
            "lampIndex": config.lamp_index(lamp),
            "judgements": {},
            "hitMeta": hit_meta or {},
        }

        return {
            "scoreID": create_score_id(user_id, {"scoreData": score_data}, chart["chartID"]),
            "userID": user_id,
            "chartID": chart["chartID"],
            "songID": chart["songID"],
            "game": chart["game"],
            "playtype": chart["playtype"],
            "isPrimary": chart["isPrimary"],
            "service": "test-suite",
            "importType": None,
            "comment": None,
            "timeAdded": 0,
            "timeAchieved": time_achieved,
            "scoreData": score_data,
            "scoreMeta": {},
            "calculatedData": calculated_data or {},
        }

    return make
