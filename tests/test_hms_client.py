"""Tests for the 100ms client's room creation and the create retry policy."""

from __future__ import annotations

import json

import httpx
import pytest

from src.cally.integrations.hms import HMS_API_BASE, HmsClient
from src.cally.integrations.http import is_connect_failure, is_transient

REQUEST = httpx.Request("POST", f"{HMS_API_BASE}/rooms")


def _client_with(monkeypatch, handler) -> HmsClient:
    client = HmsClient("access-key", "app-secret", template_id="tpl-1")
    monkeypatch.setattr(
        client,
        "_client",
        lambda timeout: httpx.AsyncClient(
            base_url=HMS_API_BASE, transport=httpx.MockTransport(handler), timeout=timeout
        ),
    )
    return client


@pytest.mark.parametrize(
    ("exc", "connect_failure"),
    [
        (httpx.ConnectError("refused", request=REQUEST), True),
        (httpx.ConnectTimeout("slow handshake", request=REQUEST), True),
        (httpx.ReadTimeout("no response", request=REQUEST), False),
        (
            httpx.HTTPStatusError(
                "unavailable", request=REQUEST, response=httpx.Response(503, request=REQUEST)
            ),
            False,
        ),
    ],
)
def test_connect_failure_classification(exc, connect_failure):
    assert is_connect_failure(exc) is connect_failure
    assert is_transient(exc)


@pytest.mark.asyncio
async def test_create_room_sends_template(monkeypatch):
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"id": "room-9"})

    client = _client_with(monkeypatch, handler)

    room = await client.create_room("Coaching call", "Weekly check-in")

    assert room == {"id": "room-9"}
    assert bodies == [
        {"name": "Coaching call", "description": "Weekly check-in", "template_id": "tpl-1"}
    ]


@pytest.mark.asyncio
async def test_create_room_not_retried_after_read_timeout(monkeypatch):
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ReadTimeout("no response", request=request)

    client = _client_with(monkeypatch, handler)

    with pytest.raises(httpx.ReadTimeout):
        await client.create_room("Coaching call")

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_create_room_not_retried_after_server_error(monkeypatch):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503, json={"message": "unavailable"})

    client = _client_with(monkeypatch, handler)

    with pytest.raises(httpx.HTTPStatusError):
        await client.create_room("Coaching call")

    assert len(calls) == 1
