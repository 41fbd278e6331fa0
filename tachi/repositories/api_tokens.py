"""Repository for API token operations."""
from __future__ import annotations

from typing import TypedDict

import tachi.state

COLLECTION = "api-tokens"


class APIToken(TypedDict):
    tokenHash: str
    userID: int
    identifier: str
    permissions: list[str]
    revoked: bool
    createdAt: int


async def create(
    user_id: int,
    token_hash: str,
    identifier: str,
    permissions: list[str],
    created_at: int,
) -> APIToken:
    """Create a new API token."""
    token: APIToken = {
        "tokenHash": token_hash,
        "userID": user_id,
        "identifier": identifier,
        "permissions": permissions,
        "revoked": False,
        "createdAt": created_at,
    }
    await tachi.state.services.store[COLLECTION].insert_one(dict(token))
    return token


async def fetch_one(token_hash: str) -> APIToken | None:
    """Fetch a single API token by its hash."""
    token = await tachi.state.services.store[COLLECTION].find_one({"tokenHash": token_hash})
    return token  # type: ignore[return-value]


async def revoke(token_hash: str) -> None:
    """Revoke an API token."""
    await tachi.state.services.store[COLLECTION].update_one(
        {"tokenHash": token_hash},
        {"$set": {"revoked": True}},
    )
