from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter
from fastapi import Depends

from tachi.api import responses
from tachi.api.auth import PERMISSION_ADMIN
from tachi.api.auth import require_permission
from tachi.api.v1.models.admin import ChangeLogLevel
from tachi.api.v1.models.admin import LogLevelChanged
from tachi.api.v1.models.responses import Success
from tachi.logging import LogLevelOverride
from tachi.repositories.api_tokens import APIToken

router = APIRouter(prefix="/admin")

log_level_override = LogLevelOverride()


@router.post("/change-log-level")
async def change_log_level(
    data: ChangeLogLevel,
    api_token: Annotated[APIToken, Depends(require_permission(PERMISSION_ADMIN))],
) -> Success[LogLevelChanged]:
    previous = log_level_override.set(
        data.logLevel,
        duration_minutes=data.duration,
        no_reset=data.noReset,
    )

    return responses.success(LogLevelChanged(previous=previous, current=data.logLevel))
