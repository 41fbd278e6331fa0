"""
Tests for correcting and removing stored scores.
"""

from __future__ import annotations

import asyncio

import pytest

import tachi.settings
import tachi.state
from tachi.importers import batch_manual
from tachi.importers.failures import LockContentionExhausted
from tachi.repositories import charts as charts_repo
from tachi.repositories import imports as imports_repo
from tachi.repositories import personal_bests as pbs_repo
from tachi.repositories import scores as scores_repo
from tachi.usecases.score_mutation import ScoreMutationError
from tachi.usecases.score_mutation import delete_score
from tachi.usecases.score_mutation import destroy_chart
from tachi.usecases.score_mutation import replace_score_id_in_imports
from tachi.usecases.score_mutation import update_score
from tachi.usecases.score_import import import_lock_key
from tachi.usecases.score_import import score_import_main


def sdvx_batch(*scores):
    return {
        "meta": {"game": "sdvx", "playtype": "Single", "service": "test-suite"},
        "scores": [
            {
                "score": score,
                "lamp": "CLEAR",
                "matchType": "inGameID",
                "identifier": "100",
                "difficulty": "EXH",
            }
            for score in scores
        ],
    }


async def import_scores(*scores, user_id=1):
    import_doc = await score_import_main(
        user_id,
        True,
        "ir/direct-manual",
        batch_manual.create_object_parser(sdvx_batch(*scores)),
    )
    stored = await scores_repo.fetch_many(score_ids=import_doc["scoreIDs"])
    stored.sort(key=lambda s: s["scoreData"]["score"])
    return import_doc, stored


class TestDeleteScore:
    """Tests for delete_score."""

    async def test_last_score_on_chart(self, catalog):
        import_doc, (score,) = await import_scores(9_500_000)

        await delete_score(score)

        assert await scores_repo.fetch_one(score["scoreID"]) is None
        assert await pbs_repo.fetch_one(1, score["chartID"]) is None
        assert (await imports_repo.fetch_one(import_doc["importID"]))["scoreIDs"] == []

    async def test_pb_falls_back_to_remaining_score(self, catalog):
        _, (lower, higher) = await import_scores(9_000_000, 9_500_000)

        await delete_score(higher)

        pb = await pbs_repo.fetch_one(1, lower["chartID"])
        assert pb["scoreData"]["score"] == 9_000_000
        assert pb["composedFrom"]["scorePB"] == lower["scoreID"]

    async def test_other_rankings_update(self, catalog):
        _, (mine,) = await import_scores(9_900_000, user_id=1)
        await import_scores(9_000_000, user_id=2)

        await delete_score(mine)

        pb = await pbs_repo.fetch_one(2, mine["chartID"])
        assert pb["rankingData"] == {"rank": 1, "outOf": 1}


class TestUpdateScore:
    """Tests for update_score."""

    async def test_rederives_identity_and_data(self, catalog):
        import_doc, (old,) = await import_scores(9_500_000)
        new = {
            **old,
            "scoreData": {**old["scoreData"], "score": 9_900_000, "percent": 99.0, "grade": "S"},
        }

        updated = await update_score(old, new)

        assert updated["scoreID"] != old["scoreID"]
        assert updated["scoreData"]["gradeIndex"] == 9
        assert updated["calculatedData"]["VF6"] == 0.374

        assert await scores_repo.fetch_one(old["scoreID"]) is None
        assert await scores_repo.fetch_one(updated["scoreID"]) is not None

        pb = await pbs_repo.fetch_one(1, old["chartID"])
        assert pb["scoreData"]["score"] == 9_900_000

        assert (await imports_repo.fetch_one(import_doc["importID"]))["scoreIDs"] == [updated["scoreID"]]

    async def test_collision_removes_old_score(self, catalog):
        _, (lower, higher) = await import_scores(9_000_000, 9_500_000)
        new = {**lower, "scoreData": dict(higher["scoreData"])}

        updated = await update_score(lower, new)

        assert updated["scoreID"] == higher["scoreID"]
        assert await scores_repo.fetch_one(lower["scoreID"]) is None
        assert len(await scores_repo.fetch_many(user_id=1)) == 1

    async def test_moving_to_another_chart(self, catalog):
        _, (old,) = await import_scores(9_500_000)
        inf = catalog["sdvx_inf"]
        new = {**old, "chartID": inf["chartID"]}

        updated = await update_score(old, new)

        assert updated["chartID"] == inf["chartID"]
        assert await pbs_repo.fetch_one(1, old["chartID"]) is None
        assert await pbs_repo.fetch_one(1, inf["chartID"]) is not None

    async def test_missing_chart(self, catalog):
        _, (old,) = await import_scores(9_500_000)

        with pytest.raises(ScoreMutationError):
            await update_score(old, {**old, "chartID": "no-such-chart"})

        assert await scores_repo.fetch_one(old["scoreID"]) is not None


class TestReplaceScoreIDInImports:
    """Tests for replace_score_id_in_imports."""

    async def test_no_duplicate_ids(self, store):
        await store["imports"].insert_one({"importID": "i", "scoreIDs": ["R1", "R2"]})

        assert await replace_score_id_in_imports("R1", "R2") == 1
        assert (await imports_repo.fetch_one("i"))["scoreIDs"] == ["R2"]

    async def test_unreferenced(self, store):
        assert await replace_score_id_in_imports("R1", None) == 0


class TestDestroyChart:
    """Tests for destroy_chart."""

    async def test_removes_everything(self, catalog):
        import_doc, (score,) = await import_scores(9_500_000)
        chart_id = score["chartID"]

        await destroy_chart(chart_id)

        assert await charts_repo.fetch_one(chart_id) is None
        assert await scores_repo.fetch_many(chart_id=chart_id) == []
        assert await pbs_repo.fetch_for_chart(chart_id) == []
        assert (await imports_repo.fetch_one(import_doc["importID"]))["scoreIDs"] == []

    async def test_missing_chart(self, catalog):
        with pytest.raises(ScoreMutationError):
            await destroy_chart("no-such-chart")


class TestImportLock:
    """Tests for mutations sharing the user's import lock."""

    @pytest.fixture
    def no_retries(self, monkeypatch):
        monkeypatch.setattr(tachi.settings, "IMPORT_LOCK_RETRY_COUNT", 0)

    @pytest.fixture
    def instant_retries(self, monkeypatch):
        monkeypatch.setattr(tachi.settings, "IMPORT_LOCK_RETRY_COUNT", 100)
        monkeypatch.setattr(tachi.settings, "IMPORT_LOCK_BACKOFF_BASE", 0)

    async def test_delete_waits_for_import(self, catalog, instant_retries):
        _, (score,) = await import_scores(9_500_000)
        key = import_lock_key(1)
        token = await tachi.state.services.lock.acquire(key, 600)

        task = asyncio.create_task(delete_score(score))
        for _ in range(10):
            await asyncio.sleep(0)

        assert not task.done()
        assert await pbs_repo.fetch_one(1, score["chartID"]) is not None

        await tachi.state.services.lock.release(key, token)
        await task

        assert await scores_repo.fetch_one(score["scoreID"]) is None
        assert await pbs_repo.fetch_one(1, score["chartID"]) is None

    async def test_delete_gives_up(self, catalog, no_retries):
        _, (score,) = await import_scores(9_500_000)
        await tachi.state.services.lock.acquire(import_lock_key(1), 600)

        with pytest.raises(LockContentionExhausted):
            await delete_score(score)

        assert await scores_repo.fetch_one(score["scoreID"]) is not None

    async def test_update_gives_up(self, catalog, no_retries):
        _, (score,) = await import_scores(9_500_000)
        await tachi.state.services.lock.acquire(import_lock_key(1), 600)

        with pytest.raises(LockContentionExhausted):
            await update_score(score, {**score, "comment": "fixed"})

        assert await scores_repo.fetch_one(score["scoreID"]) == score

    async def test_destroy_chart_takes_every_owners_lock(self, catalog, no_retries):
        await import_scores(9_500_000, user_id=1)
        await import_scores(9_000_000, user_id=2)
        chart_id = catalog["sdvx_exh"]["chartID"]
        await tachi.state.services.lock.acquire(import_lock_key(2), 600)

        with pytest.raises(LockContentionExhausted):
            await destroy_chart(chart_id)

        assert await charts_repo.fetch_one(chart_id) is not None
        assert len(await scores_repo.fetch_many(chart_id=chart_id)) == 2

        # user 1's lock was handed back
        assert await tachi.state.services.lock.acquire(import_lock_key(1), 600) is not None
