"""
Tests for input parsers and converters.
"""

from __future__ import annotations

import dataclasses
import json

import httpx
import pytest

import tachi.settings
import tachi.state
from tachi.constants.games import get_game_pt_config
from tachi.importers import CONVERTERS
from tachi.importers import batch_manual
from tachi.importers import get_converter
from tachi.importers import get_api_parser
from tachi.importers import get_file_parser
from tachi.importers import kai_sdvx
from tachi.importers import run_converter
from tachi.importers import sdvx_csv
from tachi.importers import usc
from tachi.importers.common import ConverterSuccess
from tachi.importers.common import calculate_percent
from tachi.importers.common import get_grade_and_percent
from tachi.importers.failures import InternalFailure
from tachi.importers.failures import InvalidScoreFailure
from tachi.importers.failures import KTDataNotFoundFailure
from tachi.importers.failures import ScoreImportFatalError
from tachi.logging import create_log_ctx

logger = create_log_ctx(__name__)

CSV_HEADER = "楽曲名,難易度,楽曲レベル,クリアランク,スコアグレード,ハイスコア,EXスコア,プレー回数,クリア回数,ULTIMATE CHAIN,PERFECT"

IIDX_CONTEXT = {"game": "iidx", "playtype": "SP", "service": "test-suite", "version": None}


class TestRegistry:
    """Tests for the converter registry."""

    def test_unknown_import_type(self):
        with pytest.raises(ScoreImportFatalError) as exc_info:
            get_converter("file/unknown")

        assert exc_info.value.status_code == 400

    def test_file_parser_rejects_api_type(self):
        with pytest.raises(ScoreImportFatalError):
            get_file_parser("api/flo-sdvx", b"")

    def test_api_parser_rejects_file_type(self):
        with pytest.raises(ScoreImportFatalError):
            get_api_parser("file/batch-manual", "token")

    async def test_unexpected_exceptions_become_internal_failures(self, monkeypatch):
        async def broken(data, context, import_type, logger):
            raise KeyError("oops")

        monkeypatch.setitem(CONVERTERS, "ir/direct-manual", broken)

        result = await run_converter("ir/direct-manual", {}, {}, logger)

        assert isinstance(result, InternalFailure)
        assert result.error_type == "InternalError"

    async def test_failures_are_returned(self, catalog):
        result = await run_converter("ir/direct-manual", {"score": -1}, IIDX_CONTEXT, logger)

        assert isinstance(result, InvalidScoreFailure)
        assert result.error_type == "InvalidDatapoint"


class TestGrades:
    """Tests for grade and percent derivation."""

    def test_iidx_boundaries(self, catalog):
        chart = catalog["iidx_another"]
        max_score = chart["data"]["notecount"] * 2

        assert get_grade_and_percent("iidx", "SP", max_score, chart) == ("MAX", 100.0)
        assert get_grade_and_percent("iidx", "SP", 0, chart)[0] == "F"

    def test_out_of_range(self, catalog):
        with pytest.raises(InvalidScoreFailure):
            get_grade_and_percent("iidx", "SP", 5000, catalog["iidx_another"])

    def test_sdvx(self, catalog):
        assert get_grade_and_percent("sdvx", "Single", 9_900_000, catalog["sdvx_exh"]) == ("S", 99.0)
        assert get_grade_and_percent("sdvx", "Single", 8_700_000, catalog["sdvx_exh"])[0] == "A"

    def test_percent_without_max_score(self, catalog):
        config = dataclasses.replace(get_game_pt_config("sdvx", "Single"), max_score=None)

        with pytest.raises(InternalFailure):
            calculate_percent(config, 9_900_000, catalog["sdvx_exh"])


class TestBatchManual:
    """Tests for the BATCH-MANUAL format."""

    async def test_parses(self):
        parser = batch_manual.create_object_parser(
            {"meta": {"game": "iidx", "playtype": "SP", "service": "test-suite"}, "scores": [{}, {}]},
        )

        parsed = await parser(logger)

        assert parsed.game == "iidx"
        assert list(parsed.iterable) == [{}, {}]
        assert parsed.context == IIDX_CONTEXT
        assert parsed.class_handler is None

    async def test_invalid_game_playtype(self):
        parser = batch_manual.create_object_parser(
            {"meta": {"game": "iidx", "playtype": "7K", "service": "test-suite"}, "scores": []},
        )

        with pytest.raises(ScoreImportFatalError):
            await parser(logger)

    async def test_invalid_json_file(self):
        with pytest.raises(ScoreImportFatalError) as exc_info:
            await batch_manual.create_file_parser(b"{not json")(logger)

        assert exc_info.value.status_code == 400

    async def test_json_file(self):
        data = {"meta": {"game": "sdvx", "playtype": "Single", "service": "test-suite"}, "scores": []}

        parsed = await batch_manual.create_file_parser(json.dumps(data).encode())(logger)

        assert parsed.game == "sdvx"

    async def test_invalid_class(self):
        parser = batch_manual.create_object_parser(
            {
                "meta": {"game": "iidx", "playtype": "SP", "service": "test-suite"},
                "scores": [],
                "classes": {"dan": "GRANDMASTER"},
            },
        )

        with pytest.raises(ScoreImportFatalError):
            await parser(logger)

    async def test_class_handler(self):
        parser = batch_manual.create_object_parser(
            {
                "meta": {"game": "iidx", "playtype": "SP", "service": "test-suite"},
                "scores": [],
                "classes": {"dan": "DAN_10"},
            },
        )

        parsed = await parser(logger)

        assert await parsed.class_handler("iidx", "SP", 1, {}, logger) == {"dan": 16}

    async def test_converts_by_in_game_id(self, catalog):
        result = await batch_manual.convert_batch_manual(
            {"score": 9_000_000, "lamp": "CLEAR", "matchType": "inGameID", "identifier": "100", "difficulty": "INF"},
            {"game": "sdvx", "playtype": "Single", "service": "test-suite", "version": "vivid"},
            "ir/direct-manual",
            logger,
        )

        assert isinstance(result, ConverterSuccess)
        assert result.chart["chartID"] == catalog["sdvx_inf"]["chartID"]
        assert result.song["title"] == "Lachryma"

    async def test_version_excludes_chart(self, catalog):
        with pytest.raises(KTDataNotFoundFailure):
            await batch_manual.convert_batch_manual(
                {"score": 9_000_000, "lamp": "CLEAR", "matchType": "inGameID", "identifier": "100", "difficulty": "INF"},
                {"game": "sdvx", "playtype": "Single", "service": "test-suite", "version": "booth"},
                "ir/direct-manual",
                logger,
            )

    async def test_unknown_hash(self, catalog):
        with pytest.raises(KTDataNotFoundFailure):
            await batch_manual.convert_batch_manual(
                {"score": 1000, "lamp": "CLEAR", "matchType": "bmsChartHash", "identifier": "d41d8cd9"},
                {"game": "bms", "playtype": "7K", "service": "test-suite", "version": None},
                "ir/direct-manual",
                logger,
            )

    async def test_title_needs_difficulty(self, catalog):
        with pytest.raises(InvalidScoreFailure):
            await batch_manual.convert_batch_manual(
                {"score": 1000, "lamp": "CLEAR", "matchType": "songTitle", "identifier": "5.1.1."},
                IIDX_CONTEXT,
                "ir/direct-manual",
                logger,
            )

    async def test_unknown_fields_rejected(self, catalog):
        with pytest.raises(InvalidScoreFailure):
            await batch_manual.convert_batch_manual(
                {
                    "score": 1000,
                    "lamp": "CLEAR",
                    "matchType": "songTitle",
                    "identifier": "5.1.1.",
                    "difficulty": "ANOTHER",
                    "exScore": 1000,
                },
                IIDX_CONTEXT,
                "ir/direct-manual",
                logger,
            )


class TestSDVXCSV:
    """Tests for e-amusement SDVX CSV exports."""

    def test_wrong_header_count(self):
        with pytest.raises(ScoreImportFatalError):
            sdvx_csv.parse_csv(b"a,b,c\n1,2,3\n", logger)

    def test_empty(self):
        with pytest.raises(ScoreImportFatalError):
            sdvx_csv.parse_csv(b"", logger)

    def test_not_utf8(self):
        with pytest.raises(ScoreImportFatalError):
            sdvx_csv.parse_csv("楽曲名".encode("shift_jis"), logger)

    def test_rows(self):
        data = f"\ufeff{CSV_HEADER}\nLachryma,EXHAUST,18,PERFECT,S,10000000,5000,3,3,1,1\n\n,,\nShort,NOVICE\n"

        records = sdvx_csv.parse_csv(data.encode(), logger)

        assert records[0] == {
            "title": "Lachryma",
            "difficulty": "EXHAUST",
            "level": "18",
            "lamp": "PERFECT",
            "score": "10000000",
            "exscore": "5000",
        }
        assert len(records) == 2
        assert records[1]["score"] == ""

    async def test_converts(self, catalog):
        result = await sdvx_csv.convert_sdvx_csv(
            {"title": "Lachryma", "difficulty": "EXHAUST", "lamp": "PERFECT", "score": "10000000"},
            {},
            "file/eamusement-sdvx-csv",
            logger,
        )

        assert result.chart["chartID"] == catalog["sdvx_exh"]["chartID"]
        assert result.dry_score["scoreData"]["lamp"] == "PERFECT ULTIMATE CHAIN"
        assert result.dry_score["scoreData"]["grade"] == "S"
        assert result.dry_score["service"] == "e-amusement"
        assert result.dry_score["timeAchieved"] is None

    @pytest.mark.parametrize(
        "overrides",
        [{"difficulty": "IMPOSSIBLE"}, {"lamp": "GREAT"}, {"score": ""}],
    )
    async def test_invalid_rows(self, catalog, overrides):
        data = {"title": "Lachryma", "difficulty": "EXHAUST", "lamp": "COMPLETE", "score": "9000000", **overrides}

        with pytest.raises(InvalidScoreFailure):
            await sdvx_csv.convert_sdvx_csv(data, {}, "file/eamusement-sdvx-csv", logger)

    async def test_unknown_song(self, catalog):
        data = {"title": "Unknown", "difficulty": "EXHAUST", "lamp": "COMPLETE", "score": "9000000"}

        with pytest.raises(KTDataNotFoundFailure):
            await sdvx_csv.convert_sdvx_csv(data, {}, "file/eamusement-sdvx-csv", logger)


class TestUSC:
    """Tests for USC IR submissions."""

    def context(self):
        return {"chartHash": "3f2a" * 10, "playtype": "Controller"}

    async def test_converts(self, catalog, usc_score):
        result = await usc.convert_usc_score(usc_score, self.context(), "ir/usc", logger)

        assert result.chart["chartID"] == catalog["usc_exh"]["chartID"]
        assert result.dry_score["scoreData"]["lamp"] == "CLEAR"
        assert result.dry_score["scoreData"]["judgements"] == {"critical": 1000, "near": 50, "miss": 5}
        assert result.dry_score["scoreMeta"] == {"gaugeMod": "NORMAL", "noteMod": "NORMAL"}

    async def test_modified_windows(self, catalog, usc_score):
        usc_score["windows"]["perfect"] = 50

        with pytest.raises(InvalidScoreFailure):
            await usc.convert_usc_score(usc_score, self.context(), "ir/usc", logger)

    async def test_autoplay(self, catalog, usc_score):
        usc_score["options"]["autoFlags"] = 1

        with pytest.raises(InvalidScoreFailure):
            await usc.convert_usc_score(usc_score, self.context(), "ir/usc", logger)

    async def test_unknown_chart(self, catalog, usc_score):
        with pytest.raises(KTDataNotFoundFailure):
            await usc.convert_usc_score(
                usc_score,
                {"chartHash": "ffff", "playtype": "Controller"},
                "ir/usc",
                logger,
            )

    @pytest.mark.parametrize(
        ("overrides", "options", "lamp"),
        [
            ({"score": 10_000_000, "error": 0}, {}, "PERFECT ULTIMATE CHAIN"),
            ({"error": 0}, {}, "ULTIMATE CHAIN"),
            ({"gauge": 0.5}, {}, "FAILED"),
            ({"gauge": 0.0}, {"gaugeType": 1}, "FAILED"),
            ({"gauge": 0.1}, {"gaugeType": 1}, "EXCESSIVE CLEAR"),
        ],
    )
    def test_lamps(self, usc_score, overrides, options, lamp):
        data = {**usc_score, **overrides, "options": {**usc_score["options"], **options}}
        score = usc.USCClientScore.model_validate(data)

        assert usc.derive_lamp(score, logger) == lamp

    def test_note_mods(self, usc_score):
        data = {**usc_score, "options": {**usc_score["options"], "mirror": True, "random": True}}
        assert usc.derive_note_mod(usc.USCClientScore.model_validate(data)) == "MIR-RAN"

    def test_chart_conversion_is_stable(self):
        usc_chart = usc.USCClientChart(
            chartHash="abc",
            artist="a",
            title="t",
            level=10,
            difficulty=3,
            effector="e",
            illustrator="i",
            bpm="120",
        )

        chart, song = usc.convert_usc_chart(usc_chart, "Keyboard")
        again, _ = usc.convert_usc_chart(usc_chart, "Keyboard")
        other, _ = usc.convert_usc_chart(usc_chart, "Controller")

        assert chart == again
        assert chart["chartID"] != other["chartID"]
        assert chart["songID"] == song["id"]
        assert chart["difficulty"] == "INF"


class TestKaiSDVX:
    """Tests for Kai-style SDVX APIs."""

    def test_dan_from_profile(self):
        assert kai_sdvx.dan_from_profile({"skill_level": 3}, logger) == {"dan": 2}
        assert kai_sdvx.dan_from_profile({"skill_level": 12}, logger) == {"dan": 11}

    @pytest.mark.parametrize("profile", [{}, {"skill_level": None}, {"skill_level": 0}, {"skill_level": 99}])
    def test_no_dan(self, profile):
        assert kai_sdvx.dan_from_profile(profile, logger) == {}

    def test_parse_timestamp(self):
        assert kai_sdvx.parse_timestamp("2021-01-01T00:00:00+00:00") == 1_609_459_200_000

    def test_bad_timestamp(self):
        with pytest.raises(InvalidScoreFailure):
            kai_sdvx.parse_timestamp("yesterday")

    def score(self, **overrides):
        return {
            "music_id": 100,
            "music_difficulty": 3,
            "game_version": 2,
            "score": 9_900_000,
            "clear_type": 3,
            "critical": 1500,
            "near": 10,
            "error": 0,
            "timestamp": "2021-01-01T00:00:00+00:00",
            **overrides,
        }

    async def test_converts_fourth_difficulty(self, catalog):
        result = await kai_sdvx.convert_kai_sdvx(self.score(), {"service": "FLO"}, "api/flo-sdvx", logger)

        assert result.chart["chartID"] == catalog["sdvx_inf"]["chartID"]
        assert result.dry_score["scoreData"]["lamp"] == "EXCESSIVE CLEAR"
        assert result.dry_score["service"] == "FLO"
        assert result.dry_score["timeAchieved"] == 1_609_459_200_000

    async def test_version_without_chart(self, catalog):
        with pytest.raises(KTDataNotFoundFailure):
            await kai_sdvx.convert_kai_sdvx(self.score(game_version=1), {"service": "FLO"}, "api/flo-sdvx", logger)

    async def test_unsupported_version(self, catalog):
        with pytest.raises(InvalidScoreFailure):
            await kai_sdvx.convert_kai_sdvx(self.score(game_version=9), {"service": "FLO"}, "api/flo-sdvx", logger)

    @pytest.fixture
    def kai_server(self, monkeypatch):
        """Serve a fake FLO API through the shared http client."""
        requests = []

        def handler(request):
            requests.append(request)

            if request.headers["Authorization"] != "Bearer good-token":
                return httpx.Response(401, json={"error": "unauthorized"})

            if request.url.path == "/api/sdvx/v1/player_profile":
                return httpx.Response(200, json={"skill_level": 5})

            if request.url.path == "/api/sdvx/v1/play_history":
                if request.url.params.get("page") == "2":
                    return httpx.Response(200, json={"_items": [self.score(score=9_000_000)], "_links": {"_next": None}})

                return httpx.Response(
                    200,
                    json={
                        "_items": [self.score()],
                        "_links": {"_next": "https://flo.test/api/sdvx/v1/play_history?page=2"},
                    },
                )

            return httpx.Response(404)

        monkeypatch.setattr(tachi.settings, "FLO_API_URL", "https://flo.test/")
        monkeypatch.setattr(
            tachi.state.services,
            "http_client",
            httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        return requests

    async def test_parser_follows_pages(self, kai_server):
        parsed = await get_api_parser("api/flo-sdvx", "good-token")(logger)

        items = [item async for item in parsed.iterable]

        assert [item["score"] for item in items] == [9_900_000, 9_000_000]
        assert parsed.context == {"service": "FLO"}
        assert await parsed.class_handler("sdvx", "Single", 1, {}, logger) == {"dan": 4}

    async def test_rejected_token(self, kai_server):
        with pytest.raises(ScoreImportFatalError) as exc_info:
            await get_api_parser("api/flo-sdvx", "bad-token")(logger)

        assert exc_info.value.status_code == 401

    async def test_unconfigured_service(self, kai_server, monkeypatch):
        monkeypatch.setattr(tachi.settings, "EAG_API_URL", "")

        with pytest.raises(ScoreImportFatalError) as exc_info:
            await get_api_parser("api/eag-sdvx", "good-token")(logger)

        assert exc_info.value.status_code == 500
