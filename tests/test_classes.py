"""
Tests for class resolution and class deltas.
"""

from __future__ import annotations

from tachi.constants.classes import ChunithmColours
from tachi.constants.classes import GitadoraColours
from tachi.constants.classes import SDVXVFClasses
from tachi.logging import create_log_ctx
from tachi.repositories import class_achievements as class_achievements_repo
from tachi.usecases.classes import calculate_class_deltas
from tachi.usecases.classes import chunithm_colour
from tachi.usecases.classes import gitadora_colour
from tachi.usecases.classes import process_class_deltas
from tachi.usecases.classes import resolve_classes
from tachi.usecases.classes import sdvx_vf_class
from tachi.usecases.classes import step

logger = create_log_ctx(__name__)


def ugs(**classes):
    return {"userID": 1, "game": "sdvx", "playtype": "Single", "ratings": {}, "classes": classes}


def handler_returning(classes):
    async def handler(game, playtype, user_id, ratings, logger):
        return dict(classes)

    return handler


class TestStep:
    """Tests for step."""

    def test_below_first_threshold(self):
        assert step(-1, [(0, 0), (10, 1)]) == 0

    def test_at_threshold(self):
        assert step(10, [(0, 0), (10, 1), (20, 2)]) == 1

    def test_above_last(self):
        assert step(100, [(0, 0), (10, 1), (20, 2)]) == 2


class TestStaticHandlers:
    """Tests for the rating-derived class handlers."""

    def test_vf_class(self):
        assert sdvx_vf_class({"VF6": 0.41}) == SDVXVFClasses.IMPERIAL_I
        assert sdvx_vf_class({"VF6": 0.0}) == SDVXVFClasses.SIENNA_I
        assert sdvx_vf_class({"VF6": None}) is None

    def test_gitadora_colour(self):
        assert gitadora_colour({"skill": 0.0}) == GitadoraColours.WHITE
        assert gitadora_colour({"skill": 200.0}) == GitadoraColours.RAINBOW
        assert gitadora_colour({}) is None

    def test_chunithm_colour(self):
        assert chunithm_colour({"rating": 15.5}) == ChunithmColours.RAINBOW
        assert chunithm_colour({"rating": 3.0}) == ChunithmColours.GREEN


class TestResolveClasses:
    """Tests for resolve_classes."""

    async def test_custom_only(self):
        classes = await resolve_classes("iidx", "SP", 1, {"BPI": None}, handler_returning({"dan": 18}), logger)
        assert classes == {"dan": 18}

    async def test_no_handler(self):
        assert await resolve_classes("iidx", "SP", 1, {}, None, logger) == {}

    async def test_static_wins_on_collision(self):
        classes = await resolve_classes(
            "sdvx",
            "Single",
            1,
            {"VF6": 0.41},
            handler_returning({"dan": 5, "vfClass": 0}),
            logger,
        )
        assert classes == {"dan": 5, "vfClass": SDVXVFClasses.IMPERIAL_I}

    async def test_static_none_keeps_custom(self):
        classes = await resolve_classes(
            "sdvx",
            "Single",
            1,
            {"VF6": None},
            handler_returning({"vfClass": 3}),
            logger,
        )
        assert classes == {"vfClass": 3}

    async def test_failing_handler_is_contained(self):
        async def broken(game, playtype, user_id, ratings, logger):
            raise RuntimeError("profile service is down")

        classes = await resolve_classes("sdvx", "Single", 1, {"VF6": 0.41}, broken, logger)
        assert classes == {"vfClass": SDVXVFClasses.IMPERIAL_I}


class TestCalculateClassDeltas:
    """Tests for calculate_class_deltas."""

    def test_nothing_stored(self):
        deltas = calculate_class_deltas({"dan": 3}, None, logger)
        assert deltas == [{"set": "dan", "old": None, "new": 3}]

    def test_improvement(self):
        deltas = calculate_class_deltas({"dan": 4}, ugs(dan=3), logger)
        assert deltas == [{"set": "dan", "old": 3, "new": 4}]

    def test_unchanged(self):
        assert calculate_class_deltas({"dan": 3}, ugs(dan=3), logger) == []

    def test_regression_is_ignored(self, caplog):
        caplog.set_level("WARNING", logger="tachi")

        assert calculate_class_deltas({"dan": 2}, ugs(dan=3), logger) == []
        assert "regression" in caplog.text

    def test_new_set_alongside_existing(self):
        deltas = calculate_class_deltas({"dan": 3, "vfClass": 10}, ugs(dan=3), logger)
        assert deltas == [{"set": "vfClass", "old": None, "new": 10}]


class TestProcessClassDeltas:
    """Tests for process_class_deltas."""

    async def test_records_achievements(self):
        await process_class_deltas(
            "sdvx",
            "Single",
            1,
            [{"set": "dan", "old": None, "new": 3}, {"set": "vfClass", "old": 1, "new": 2}],
            logger,
        )

        achievements = await class_achievements_repo.fetch_many(1, "sdvx", "Single")
        assert {(a["classSet"], a["classOldValue"], a["classValue"]) for a in achievements} == {
            ("dan", None, 3),
            ("vfClass", 1, 2),
        }

    async def test_no_deltas(self):
        await process_class_deltas("sdvx", "Single", 1, [], logger)
        assert await class_achievements_repo.fetch_many(1, "sdvx", "Single") == []
