from __future__ import annotations

import hashlib
from collections.abc import Mapping
from typing import Any

from tachi.repositories import scores as scores_repo
from tachi.repositories.scores import Score

SCORE_ID_PREFIX = "R"


def _format(value: Any) -> str:
    # integral floats hash the same as ints, so 100.0% and 100% agree
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if value is None:
        return "null"
    return str(value)


def create_score_id(user_id: int, score_like: Mapping[str, Any], chart_id: str) -> str:
    """\
    Derive a score's ID from who set it, on what, and what they achieved.

    Only lamp, grade, score and percent are hashed. Timestamps, comments and
    hit metadata are ignored, so resubmitting the same result yields the
    same ID.
    """
    score_data = score_like.get("scoreData", score_like)

    identity = "|".join(
        [
            _format(user_id),
            chart_id,
            _format(score_data["lamp"]),
            _format(score_data["grade"]),
            _format(score_data["score"]),
            _format(score_data["percent"]),
        ],
    )

    return SCORE_ID_PREFIX + hashlib.sha256(identity.encode()).hexdigest()


async def get_with_score_id(score_id: str) -> Score | None:
    return await scores_repo.fetch_one(score_id)
