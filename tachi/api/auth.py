"""Bearer token authentication."""
from __future__ import annotations

import hashlib
from collections.abc import Awaitable
from collections.abc import Callable
from typing import Annotated

from fastapi import Depends
from fastapi import Header
from fastapi import HTTPException
from fastapi import status

from tachi.repositories import api_tokens as api_tokens_repo
from tachi.repositories.api_tokens import APIToken

PERMISSION_SUBMIT_SCORE = "submit_score"
PERMISSION_DELETE_SCORE = "delete_score"
PERMISSION_ADMIN = "admin"


def hash_api_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def read_bearer(authorization: str | None) -> str | None:
    if not authorization or not authorization.startswith("Bearer "):
        return None

    return authorization[len("Bearer ") :].strip() or None


async def authenticate(authorization: str | None) -> APIToken | None:
    """Resolve an Authorization header to a live token, or None."""
    token = read_bearer(authorization)
    if token is None:
        return None

    api_token = await api_tokens_repo.fetch_one(hash_api_token(token))
    if api_token is None or api_token["revoked"]:
        return None

    return api_token


async def require_api_token(
    authorization: Annotated[str | None, Header()] = None,
) -> APIToken:
    api_token = await authenticate(authorization)

    if api_token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="A valid API token is required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return api_token


def require_permission(permission: str) -> Callable[..., Awaitable[APIToken]]:
    async def dependency(
        api_token: Annotated[APIToken, Depends(require_api_token)],
    ) -> APIToken:
        if permission not in api_token["permissions"]:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"This token lacks the {permission} permission",
            )

        return api_token

    return dependency
