"""Outbound webhook notifications."""
from __future__ import annotations

import asyncio
from typing import Any

import tachi.settings
import tachi.state
from tachi.logging import Ansi
from tachi.logging import log

# held so pending deliveries are not garbage collected mid-flight
_background_tasks: set[asyncio.Task[None]] = set()


async def send_webhook(url: str, payload: dict[str, Any]) -> bool:
    """POST an event to a single webhook URL. Never raises."""
    try:
        response = await tachi.state.services.http_client.post(url, json=payload)
    except Exception as exc:
        log(f"Webhook delivery to {url} failed: {exc}", Ansi.LYELLOW)
        return False

    if response.status_code not in (200, 202, 204):
        log(f"Webhook delivery to {url} failed: {response.status_code}", Ansi.LYELLOW)
        return False

    return True


async def dispatch_event(event_type: str, content: dict[str, Any]) -> None:
    payload = {"type": event_type, "content": content}

    await asyncio.gather(
        *(send_webhook(url, payload) for url in tachi.settings.WEBHOOK_URLS),
    )


def emit_event(event_type: str, content: dict[str, Any]) -> None:
    """Fire-and-forget an event to every configured webhook."""
    if not tachi.settings.WEBHOOK_URLS:
        return

    task = asyncio.get_running_loop().create_task(dispatch_event(event_type, content))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)


def emit_class_update(
    user_id: int,
    game: str,
    playtype: str,
    class_set: str,
    old: int | None,
    new: int,
) -> None:
    emit_event(
        "class-update/v1",
        {
            "userID": user_id,
            "game": game,
            "playtype": playtype,
            "set": class_set,
            "old": old,
            "new": new,
        },
    )
