from __future__ import annotations

import asyncio
import json

import httpx
import pytest

import tachi.settings
import tachi.state
from tachi import webhooks


@pytest.fixture
def received(monkeypatch):
    """Capture webhook deliveries; one of the two URLs is broken."""
    requests = []

    def handler(request):
        requests.append(request)
        if request.url.host == "broken.test":
            return httpx.Response(500)
        return httpx.Response(204)

    monkeypatch.setattr(
        tachi.state.services,
        "http_client",
        httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    monkeypatch.setattr(tachi.settings, "WEBHOOK_URLS", ["https://hooks.test/a", "https://broken.test/b"])
    return requests


class TestSendWebhook:
    """Tests for single webhook delivery."""

    async def test_success(self, received):
        assert await webhooks.send_webhook("https://hooks.test/a", {"type": "x"}) is True
        assert json.loads(received[0].content) == {"type": "x"}

    async def test_bad_status(self, received):
        assert await webhooks.send_webhook("https://broken.test/b", {"type": "x"}) is False

    async def test_transport_error_is_swallowed(self, monkeypatch):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        monkeypatch.setattr(
            tachi.state.services,
            "http_client",
            httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )

        assert await webhooks.send_webhook("https://hooks.test/a", {}) is False


class TestEmitClassUpdate:
    """Tests for class-update events."""

    async def test_posts_to_every_url(self, received):
        webhooks.emit_class_update(1, "sdvx", "Single", "vfClass", None, 16)

        await asyncio.gather(*webhooks._background_tasks)

        assert {r.url.host for r in received} == {"hooks.test", "broken.test"}
        assert json.loads(received[0].content) == {
            "type": "class-update/v1",
            "content": {
                "userID": 1,
                "game": "sdvx",
                "playtype": "Single",
                "set": "vfClass",
                "old": None,
                "new": 16,
            },
        }

    async def test_no_urls(self, monkeypatch):
        monkeypatch.setattr(tachi.settings, "WEBHOOK_URLS", [])

        webhooks.emit_class_update(1, "sdvx", "Single", "vfClass", None, 16)

        assert not webhooks._background_tasks
