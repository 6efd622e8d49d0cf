"""Tests for the response envelope, exception handlers and health routes."""

from __future__ import annotations

import pytest
import pytest_asyncio
from fastapi import FastAPI, HTTPException
from httpx import ASGITransport, AsyncClient

from src.cally.api.envelope import ok, register_exception_handlers
from src.cally.core.errors import ConflictError, DomainError, NotFoundError
from src.cally.core.schemas import ApiModel


class Widget(ApiModel):
    widget_id: str
    display_name: str | None = None


def _app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/widget")
    async def widget():
        return ok(Widget(widget_id="w1"))

    @app.get("/widgets")
    async def widgets():
        return ok({"items": [Widget(widget_id="w1", display_name="One")]})

    @app.get("/domain")
    async def domain():
        raise DomainError("Bad input")

    @app.get("/missing")
    async def missing():
        raise NotFoundError("Widget not found")

    @app.get("/conflict")
    async def conflict():
        raise ConflictError("Widget already exists")

    @app.get("/http")
    async def http():
        raise HTTPException(status_code=403, detail="Forbidden")

    @app.get("/boom")
    async def boom():
        raise RuntimeError("secret stack detail")

    @app.post("/validate")
    async def validate(body: Widget):
        return ok(body)

    return app


@pytest_asyncio.fixture
async def client():
    transport = ASGITransport(app=_app(), raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.mark.asyncio
async def test_ok_serializes_camel_case_without_nulls(client):
    response = await client.get("/widget")

    assert response.json() == {"success": True, "data": {"widgetId": "w1"}}


@pytest.mark.asyncio
async def test_ok_serializes_nested_models(client):
    response = await client.get("/widgets")

    assert response.json()["data"] == {"items": [{"widgetId": "w1", "displayName": "One"}]}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("path", "status_code", "message"),
    [
        ("/domain", 400, "Bad input"),
        ("/missing", 404, "Widget not found"),
        ("/conflict", 409, "Widget already exists"),
        ("/http", 403, "Forbidden"),
        ("/nowhere", 404, "Not Found"),
    ],
)
async def test_errors_use_envelope(client, path, status_code, message):
    response = await client.get(path)

    assert response.status_code == status_code
    assert response.json() == {"success": False, "error": message}


@pytest.mark.asyncio
async def test_unhandled_error_is_hidden(client):
    response = await client.get("/boom")

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Internal server error"}


@pytest.mark.asyncio
async def test_validation_error_names_the_field(client):
    response = await client.post("/validate", json={"displayName": "One"})

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "widgetId: Field required"}


# ── Health ───────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(app_client):
    client = app_client()

    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert "environment" in response.json()
