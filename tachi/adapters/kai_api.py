"""Clients for Kai-style score APIs (FLO, EAG and MIN)."""
from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any
from typing import Literal

import tachi.settings
import tachi.state

KaiService = Literal["FLO", "EAG", "MIN"]


def base_url_for(service: KaiService) -> str:
    url = {
        "FLO": tachi.settings.FLO_API_URL,
        "EAG": tachi.settings.EAG_API_URL,
        "MIN": tachi.settings.MIN_API_URL,
    }[service]

    if not url:
        raise ValueError(f"{service}_API_URL must be configured to import from {service}.")

    return url.rstrip("/")


def _headers(token: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
        "Accept": "application/json",
    }


async def iter_pages(url: str, token: str) -> AsyncIterator[dict[str, Any]]:
    """\
    Walk a paginated endpoint, yielding every item.

    Pages look like `{"_items": [...], "_links": {"_next": url | null}}`.
    """
    next_url: str | None = url

    while next_url is not None:
        response = await tachi.state.services.http_client.get(next_url, headers=_headers(token))
        response.raise_for_status()
        page = response.json()

        for item in page.get("_items", []):
            yield item

        next_url = (page.get("_links") or {}).get("_next")


def iter_sdvx_scores(service: KaiService, token: str) -> AsyncIterator[dict[str, Any]]:
    return iter_pages(f"{base_url_for(service)}/api/sdvx/v1/play_history", token)


async def fetch_sdvx_profile(service: KaiService, token: str) -> dict[str, Any]:
    response = await tachi.state.services.http_client.get(
        f"{base_url_for(service)}/api/sdvx/v1/player_profile",
        headers=_headers(token),
    )
    response.raise_for_status()
    return response.json()
