from __future__ import annotations

import asyncio
import copy
from collections.abc import Callable
from collections.abc import Sequence
from typing import Any
from typing import TypedDict

from tachi.logging import ContextLogger
from tachi.repositories import personal_bests as pbs_repo
from tachi.repositories import scores as scores_repo
from tachi.repositories.personal_bests import PersonalBest
from tachi.repositories.scores import Score
from tachi.usecases.chart_ranking import update_chart_ranking

LAMP_FIELDS = ("lamp", "lampIndex")


class MergeContribution(TypedDict):
    name: str
    scoreID: str
    # dotted scoreData paths -> values to write onto the PB
    fields: dict[str, Any]


PBMerger = Callable[[Sequence[Score]], list[MergeContribution]]


def _time_key(score: Score) -> int:
    # unknown timestamps count as the oldest
    return score["timeAchieved"] if score["timeAchieved"] is not None else -1


def select_score_pb(scores: Sequence[Score]) -> Score:
    """The best score by raw score, most recent first on ties."""
    return max(scores, key=lambda s: (s["scoreData"]["score"], _time_key(s)))


def select_lamp_pb(scores: Sequence[Score]) -> Score:
    return max(
        scores,
        key=lambda s: (s["scoreData"]["lampIndex"], s["scoreData"]["score"], _time_key(s)),
    )


def merge_calculated_data(
    left: dict[str, float | None],
    right: dict[str, float | None],
) -> dict[str, float | None]:
    merged = dict(left)

    for key, value in right.items():
        if value is None:
            merged.setdefault(key, None)
        elif merged.get(key) is None or value > merged[key]:  # type: ignore[operator]
            merged[key] = value

    return merged


def merge_best_bp(scores: Sequence[Score]) -> list[MergeContribution]:
    """Pick the lowest recorded BP (bad + poor count) across all the scores."""
    candidates = [s for s in scores if s["scoreData"]["hitMeta"].get("bp") is not None]
    if not candidates:
        return []

    best = min(candidates, key=lambda s: s["scoreData"]["hitMeta"]["bp"])

    return [
        {
            "name": "Best BP",
            "scoreID": best["scoreID"],
            "fields": {"hitMeta.bp": best["scoreData"]["hitMeta"]["bp"]},
        },
    ]


PB_MERGERS: dict[str, list[PBMerger]] = {
    "iidx": [merge_best_bp],
    "bms": [merge_best_bp],
}


def _set_score_data_path(score_data: dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    target = score_data
    for part in parts[:-1]:
        target = target.setdefault(part, {})
    target[parts[-1]] = value


def build_pb(user_id: int, chart_id: str, scores: Sequence[Score]) -> PersonalBest:
    score_pb = select_score_pb(scores)
    lamp_pb = select_lamp_pb(scores)

    score_data = copy.deepcopy(score_pb["scoreData"])
    for field in LAMP_FIELDS:
        score_data[field] = lamp_pb["scoreData"][field]

    pb: PersonalBest = {
        "userID": user_id,
        "chartID": chart_id,
        "songID": score_pb["songID"],
        "game": score_pb["game"],
        "playtype": score_pb["playtype"],
        "isPrimary": score_pb["isPrimary"],
        "timeAchieved": score_pb["timeAchieved"],
        "scoreData": score_data,  # type: ignore[typeddict-item]
        "calculatedData": merge_calculated_data(
            score_pb["calculatedData"],
            lamp_pb["calculatedData"],
        ),
        "composedFrom": {
            "scorePB": score_pb["scoreID"],
            "lampPB": lamp_pb["scoreID"],
            "other": [],
        },
    }

    for merger in PB_MERGERS.get(score_pb["game"], []):
        for contribution in merger(scores):
            for path, value in contribution["fields"].items():
                _set_score_data_path(pb["scoreData"], path, value)

            pb["composedFrom"]["other"].append(
                {"name": contribution["name"], "scoreID": contribution["scoreID"]},
            )

    return pb


async def create_pb_doc(
    user_id: int,
    chart_id: str,
    logger: ContextLogger,
) -> PersonalBest | None:
    scores = await scores_repo.fetch_many(user_id=user_id, chart_id=chart_id)

    if not scores:
        logger.severe(
            f"Attempted to create a PB for user {user_id} on {chart_id}, but they have no scores there.",
        )
        return None

    return build_pb(user_id, chart_id, scores)


async def process_pbs(
    user_id: int,
    chart_ids: set[str] | list[str],
    logger: ContextLogger,
) -> None:
    """\
    Rebuild the user's PBs on `chart_ids`, then refresh those charts' rankings.

    Between the upsert and the ranking refresh, new PBs have no
    `rankingData`. Readers treat that as "not ranked yet".
    """
    chart_ids = sorted(chart_ids)
    if not chart_ids:
        return

    async def safe_create(chart_id: str) -> PersonalBest | None:
        try:
            return await create_pb_doc(user_id, chart_id, logger)
        except Exception:
            logger.exception(f"Failed to create PB for user {user_id} on {chart_id}.")
            return None

    results = await asyncio.gather(*(safe_create(chart_id) for chart_id in chart_ids))
    pbs = [pb for pb in results if pb is not None]

    if pbs:
        write = await pbs_repo.bulk_upsert(pbs)
        for idx, exc in write.errors:
            logger.error(f"Failed to upsert PB on {pbs[idx]['chartID']}: {exc}")

    for chart_id in chart_ids:
        try:
            await update_chart_ranking(chart_id)
        except Exception:
            logger.exception(f"Failed to update rankings on {chart_id}.")


async def reconcile_user_chart(user_id: int, chart_id: str, logger: ContextLogger) -> None:
    """Rebuild a user's PB on a chart, or drop it if they have no scores left there."""
    remaining = await scores_repo.fetch_many(user_id=user_id, chart_id=chart_id)

    if remaining:
        await process_pbs(user_id, {chart_id}, logger)
        return

    await pbs_repo.delete(user_id, chart_id)
    await update_chart_ranking(chart_id)
