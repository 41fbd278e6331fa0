"""
Tests for chart rankings.
"""

from __future__ import annotations

from tachi.repositories import personal_bests as pbs_repo
from tachi.usecases.chart_ranking import dense_rankings
from tachi.usecases.chart_ranking import update_chart_ranking


def pb(user_id, **score_data):
    return {"userID": user_id, "scoreData": score_data}


class TestDenseRankings:
    """Tests for dense_rankings."""

    def test_ties_share_rank(self):
        rankings = dense_rankings([pb(1, score=100), pb(2, score=100), pb(3, score=90)], "score")

        assert rankings == {
            1: {"rank": 1, "outOf": 3},
            2: {"rank": 1, "outOf": 3},
            3: {"rank": 2, "outOf": 3},
        }

    def test_best_first(self):
        rankings = dense_rankings([pb(1, score=10), pb(2, score=30), pb(3, score=20)], "score")

        assert [rankings[u]["rank"] for u in (2, 3, 1)] == [1, 2, 3]

    def test_missing_metric_counts_as_zero(self):
        rankings = dense_rankings([pb(1), pb(2, score=5)], "score")

        assert rankings[2]["rank"] == 1
        assert rankings[1]["rank"] == 2

    def test_other_metric(self):
        rankings = dense_rankings([pb(1, score=10, percent=50.0), pb(2, score=5, percent=90.0)], "percent")

        assert rankings[2]["rank"] == 1

    def test_empty(self):
        assert dense_rankings([], "score") == {}


class TestUpdateChartRanking:
    """Tests for update_chart_ranking."""

    async def test_unknown_chart_is_ignored(self):
        await update_chart_ranking("does-not-exist")

    async def test_writes_rankings(self, catalog, make_score, store):
        chart = catalog["sdvx_exh"]
        for user_id, score in ((1, 9_000_000), (2, 9_000_000), (3, 9_500_000)):
            doc = make_score(user_id, chart, score, "CLEAR")
            await store["personal-bests"].insert_one(
                {
                    "userID": user_id,
                    "chartID": chart["chartID"],
                    "game": "sdvx",
                    "playtype": "Single",
                    "scoreData": doc["scoreData"],
                },
            )

        await update_chart_ranking(chart["chartID"])

        ranks = {p["userID"]: p["rankingData"] for p in await pbs_repo.fetch_for_chart(chart["chartID"])}
        assert ranks == {
            3: {"rank": 1, "outOf": 3},
            1: {"rank": 2, "outOf": 3},
            2: {"rank": 2, "outOf": 3},
        }
