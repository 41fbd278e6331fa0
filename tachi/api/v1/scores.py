from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter
from fastapi import Depends
from fastapi import status

from tachi.api import responses
from tachi.api.auth import PERMISSION_DELETE_SCORE
from tachi.api.auth import require_permission
from tachi.api.v1.models.responses import Failure
from tachi.api.v1.models.responses import Success
from tachi.api.v1.models.scores import PersonalBest
from tachi.api.v1.models.scores import Score
from tachi.api.v1.models.scores import ScoreWithPB
from tachi.importers.failures import LockContentionExhausted
from tachi.repositories import personal_bests as pbs_repo
from tachi.repositories.api_tokens import APIToken
from tachi.usecases import score_mutation
from tachi.usecases.score_id import get_with_score_id

router = APIRouter()


@router.get("/scores/{score_id}")
async def get_score(score_id: str) -> Success[ScoreWithPB] | Failure:
    score = await get_with_score_id(score_id)
    if score is None:
        return responses.failure(
            message="Score not found.",
            status_code=status.HTTP_404_NOT_FOUND,
        )

    pb = await pbs_repo.fetch_one(score["userID"], score["chartID"])

    response = ScoreWithPB(
        score=Score.from_mapping(score),
        pb=PersonalBest.from_mapping(pb) if pb is not None else None,
    )
    return responses.success(response)


@router.delete("/scores/{score_id}")
async def delete_score(
    score_id: str,
    api_token: Annotated[APIToken, Depends(require_permission(PERMISSION_DELETE_SCORE))],
) -> Success[None] | Failure:
    score = await get_with_score_id(score_id)
    if score is None:
        return responses.failure(
            message="Score not found.",
            status_code=status.HTTP_404_NOT_FOUND,
        )

    if score["userID"] != api_token["userID"]:
        return responses.failure(
            message="You can only delete your own scores.",
            status_code=status.HTTP_403_FORBIDDEN,
        )

    try:
        await score_mutation.delete_score(score)
    except LockContentionExhausted as exc:
        return responses.failure(message=exc.description, status_code=exc.status_code)

    return responses.success(None)
