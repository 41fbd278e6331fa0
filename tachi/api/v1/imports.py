from __future__ import annotations

from typing import Annotated
from typing import Any

from fastapi import APIRouter
from fastapi import Body
from fastapi import Depends
from fastapi import Query
from fastapi import Request

from tachi import importers
from tachi.api import responses
from tachi.api.auth import PERMISSION_SUBMIT_SCORE
from tachi.api.auth import require_permission
from tachi.api.v1.models.imports import APIImport
from tachi.api.v1.models.imports import ImportDocument
from tachi.api.v1.models.responses import Failure
from tachi.api.v1.models.responses import Success
from tachi.importers import batch_manual
from tachi.importers.common import InputParser
from tachi.importers.failures import ScoreImportFatalError
from tachi.repositories.api_tokens import APIToken
from tachi.usecases.score_import import ScoreImportJob
from tachi.usecases.score_import import make_score_import

router = APIRouter(prefix="/import")


async def run_import(
    user_id: int,
    import_type: str,
    input_parser: InputParser,
) -> Success[ImportDocument] | Failure:
    job = ScoreImportJob(
        user_id=user_id,
        user_intent=True,
        import_type=import_type,
        input_parser=input_parser,
    )

    try:
        import_doc = await make_score_import(job)
    except ScoreImportFatalError as exc:
        return responses.failure(message=exc.description, status_code=exc.status_code)

    return responses.success(ImportDocument.model_validate(import_doc))


@router.post("/file")
async def import_file(
    request: Request,
    api_token: Annotated[APIToken, Depends(require_permission(PERMISSION_SUBMIT_SCORE))],
    import_type: Annotated[str, Query(alias="importType")],
) -> Success[ImportDocument] | Failure:
    """Import a score file, sent as the raw request body."""
    if import_type not in importers.FILE_IMPORT_TYPES:
        return responses.failure(message=f"Invalid file import type {import_type}.")

    file_data = await request.body()
    if not file_data:
        return responses.failure(message="No file provided.")

    return await run_import(
        api_token["userID"],
        import_type,
        importers.get_file_parser(import_type, file_data),
    )


@router.post("/direct-manual")
async def import_direct_manual(
    data: Annotated[Any, Body()],
    api_token: Annotated[APIToken, Depends(require_permission(PERMISSION_SUBMIT_SCORE))],
) -> Success[ImportDocument] | Failure:
    return await run_import(
        api_token["userID"],
        "ir/direct-manual",
        batch_manual.create_object_parser(data),
    )


@router.post("/api")
async def import_from_api(
    data: APIImport,
    api_token: Annotated[APIToken, Depends(require_permission(PERMISSION_SUBMIT_SCORE))],
) -> Success[ImportDocument] | Failure:
    return await run_import(
        api_token["userID"],
        data.importType,
        importers.get_api_parser(data.importType, data.token),
    )
