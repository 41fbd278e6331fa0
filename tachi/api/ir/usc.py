"""\
The unnamed-sdvx-clone internet ranking protocol.

USC clients expect every reply as HTTP 200 with a body of
`{"statusCode": ..., "description": ..., "body": ...}`.
"""

from __future__ import annotations

import time
from typing import Annotated
from typing import Any

from fastapi import APIRouter
from fastapi import Body
from fastapi import Header
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pydantic import ValidationError

import tachi.settings
from tachi.api.auth import PERMISSION_SUBMIT_SCORE
from tachi.api.auth import authenticate
from tachi.importers import usc
from tachi.importers.common import format_validation_error
from tachi.importers.failures import ScoreImportFatalError
from tachi.logging import create_log_ctx
from tachi.repositories import charts as charts_repo
from tachi.repositories import personal_bests as pbs_repo
from tachi.usecases.orphan_queue import handle_orphan_queue
from tachi.usecases.orphan_queue import reprocess_orphans
from tachi.usecases.score_import import ScoreImportJob
from tachi.usecases.score_import import make_score_import

router = APIRouter(prefix="/usc/{playtype}")

USC_PLAYTYPES = ("Controller", "Keyboard")
IR_VERSION = "0.3.1-a"

SUCCESS = 20
ACCEPTED = 22
BAD_REQUEST = 40
UNAUTHORIZED = 41
NOT_FOUND = 42
SERVER_ERROR = 50


class USCSubmission(BaseModel):
    chart: usc.USCClientChart
    score: dict[str, Any]


def usc_response(status_code: int, description: str, body: Any = None) -> JSONResponse:
    return JSONResponse(
        jsonable_encoder(
            {"statusCode": status_code, "description": description, "body": body},
        ),
    )


def serialize_pb(pb: dict[str, Any]) -> dict[str, Any]:
    return {
        "score": pb["scoreData"]["score"],
        "lamp": pb["scoreData"]["lamp"],
        "timestamp": pb["timeAchieved"],
        "crit": pb["scoreData"]["judgements"].get("critical"),
        "near": pb["scoreData"]["judgements"].get("near"),
        "error": pb["scoreData"]["judgements"].get("miss"),
        "ranking": (pb.get("rankingData") or {}).get("rank"),
        "username": f"User {pb['userID']}",
    }


async def fetch_server_record(chart_id: str) -> dict[str, Any] | None:
    for pb in await pbs_repo.fetch_for_chart(chart_id):
        if (pb.get("rankingData") or {}).get("rank") == 1:
            return serialize_pb(pb)  # type: ignore[arg-type]

    return None


@router.get("/")
async def heartbeat(
    playtype: str,
    authorization: Annotated[str | None, Header()] = None,
) -> JSONResponse:
    if playtype not in USC_PLAYTYPES:
        return usc_response(BAD_REQUEST, f"Invalid playtype {playtype}.")

    if await authenticate(authorization) is None:
        return usc_response(UNAUTHORIZED, "Invalid or missing token.")

    return usc_response(
        SUCCESS,
        "IR is up.",
        {"serverTime": int(time.time()), "serverName": "tachi", "irVersion": IR_VERSION},
    )


@router.get("/charts/{chart_hash}")
async def chart_tracked(
    playtype: str,
    chart_hash: str,
    authorization: Annotated[str | None, Header()] = None,
) -> JSONResponse:
    if await authenticate(authorization) is None:
        return usc_response(UNAUTHORIZED, "Invalid or missing token.")

    chart = await charts_repo.fetch_by_query(
        "usc",
        {"data.hashSHA1": chart_hash, "playtype": playtype},
    )
    if chart is None:
        return usc_response(NOT_FOUND, "This chart is not tracked.")

    return usc_response(SUCCESS, "This chart is tracked.")


@router.post("/scores")
async def submit_score(
    playtype: str,
    data: Annotated[Any, Body()],
    authorization: Annotated[str | None, Header()] = None,
) -> JSONResponse:
    if playtype not in USC_PLAYTYPES:
        return usc_response(BAD_REQUEST, f"Invalid playtype {playtype}.")

    api_token = await authenticate(authorization)
    if api_token is None:
        return usc_response(UNAUTHORIZED, "Invalid or missing token.")

    if PERMISSION_SUBMIT_SCORE not in api_token["permissions"]:
        return usc_response(UNAUTHORIZED, "This token cannot submit scores.")

    try:
        submission = USCSubmission.model_validate(data)
    except ValidationError as exc:
        return usc_response(BAD_REQUEST, f"Invalid submission: {format_validation_error(exc)}")

    user_id = api_token["userID"]
    chart_hash = submission.chart.chartHash
    logger = create_log_ctx(__name__, "USC IR", f"User {user_id}", chart_hash)

    chart = await charts_repo.fetch_by_query(
        "usc",
        {"data.hashSHA1": chart_hash, "playtype": playtype},
    )

    if chart is None:
        new_chart, new_song = usc.convert_usc_chart(submission.chart, playtype)

        chart = await handle_orphan_queue(
            f"usc-{playtype}",
            "usc",
            new_chart,
            new_song,
            {"data.hashSHA1": chart_hash, "playtype": playtype},
            tachi.settings.USC_QUEUE_SIZE,
            user_id,
            usc.human_chart_name(submission.chart),
        )

    if chart is not None:
        # also catches scores orphaned while someone else's promotion was in flight
        await reprocess_orphans(
            {"context.chartHash": chart_hash, "context.playtype": playtype},
            logger,
        )

    job = ScoreImportJob(
        user_id=user_id,
        user_intent=True,
        import_type="ir/usc",
        input_parser=usc.create_parser(submission.score, chart_hash, playtype),
    )

    try:
        import_doc = await make_score_import(job)
    except ScoreImportFatalError as exc:
        logger.error(f"USC score import failed: {exc.description}")
        status_code = BAD_REQUEST if exc.status_code < 500 else SERVER_ERROR
        return usc_response(status_code, exc.description)

    if import_doc["errors"]:
        error = import_doc["errors"][0]
        if error["type"] == "KTDataNotFound":
            return usc_response(
                ACCEPTED,
                "This chart is not yet tracked. The score will be saved once it is.",
            )

        if error["type"] == "InternalError":
            return usc_response(SERVER_ERROR, error["message"])

        return usc_response(BAD_REQUEST, error["message"])

    if chart is None:
        # promoted by someone else while this score was importing
        chart = await charts_repo.fetch_by_query(
            "usc",
            {"data.hashSHA1": chart_hash, "playtype": playtype},
        )
        if chart is None:
            return usc_response(SERVER_ERROR, "Chart vanished during import.")

    pb = await pbs_repo.fetch_one(user_id, chart["chartID"])

    return usc_response(
        SUCCESS,
        "Score submitted.",
        {
            "score": serialize_pb(pb) if pb is not None else None,  # type: ignore[arg-type]
            "serverRecord": await fetch_server_record(chart["chartID"]),
        },
    )
