"""Tests for signup, login, token refresh and /me.

Uses the in-memory tenant repository with a TenantProvisioner whose schema
creator is mocked, so no database is needed.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from src.cally.core.security import create_refresh_token, verify_token
from src.cally.tenants.provisioning import TenantProvisioner
from src.cally.tenants.schemas import GoogleCalendarConfig


def _signup_body(**overrides):
    body = {
        "email": "sam@example.com",
        "password": "s3cret-pass",
        "name": "Sam",
        "businessName": "Sam's Studio",
        "slug": "sams-studio",
    }
    body.update(overrides)
    return body


@pytest.fixture
def schema_creator():
    return AsyncMock()


@pytest.fixture
def auth_client(app_client, tenant_repo, schema_creator):
    provisioner = TenantProvisioner(tenant_repo, schema_creator=schema_creator)
    return app_client(tenant_repository=tenant_repo, tenant_provisioner=provisioner)


# ── Signup ───────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_signup_provisions_tenant_and_returns_tokens(auth_client, tenant_repo, schema_creator):
    response = await auth_client.post("/api/auth/signup", json=_signup_body())

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    data = body["data"]
    assert data["tenant"]["slug"] == "sams-studio"
    assert data["tenant"]["currency"] == "AUD"
    assert data["user"]["email"] == "sam@example.com"
    assert "hashedPassword" not in data["user"]

    schema_creator.assert_awaited_once_with("tenant_sams_studio")
    payload = verify_token(data["tokens"]["accessToken"])
    assert payload["tenant_id"] == data["tenant"]["id"]
    assert payload["tenant_slug"] == "sams-studio"

    stored = await tenant_repo.get_tenant(data["tenant"]["id"])
    assert stored.booking_config is not None
    assert stored.owner_email == "sam@example.com"


@pytest.mark.asyncio
async def test_signup_rejects_duplicate_slug(auth_client, tenant, schema_creator):
    response = await auth_client.post("/api/auth/signup", json=_signup_body(slug=tenant.slug))

    assert response.status_code == 409
    assert response.json() == {
        "success": False,
        "error": f"Tenant with slug '{tenant.slug}' already exists",
    }
    schema_creator.assert_not_awaited()


@pytest.mark.asyncio
async def test_signup_rejects_registered_email(auth_client, owner):
    response = await auth_client.post("/api/auth/signup", json=_signup_body(email=owner.email))

    assert response.status_code == 409
    assert response.json()["error"] == "An account with this email already exists"


@pytest.mark.asyncio
async def test_signup_rejects_bad_slug(auth_client):
    response = await auth_client.post("/api/auth/signup", json=_signup_body(slug="Bad Slug!"))

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert response.json()["error"].startswith("Slug must be 3-50 chars")


@pytest.mark.asyncio
async def test_signup_short_password_is_validation_error(auth_client):
    response = await auth_client.post("/api/auth/signup", json=_signup_body(password="short"))

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert response.json()["error"].startswith("password")


# ── Login / Refresh ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_login_returns_token_pair(auth_client, owner, tenant, owner_password):
    response = await auth_client.post(
        "/api/auth/login", json={"email": owner.email, "password": owner_password}
    )

    assert response.status_code == 200
    tokens = response.json()["data"]
    assert tokens["tokenType"] == "bearer"
    assert verify_token(tokens["accessToken"])["sub"] == owner.id
    assert verify_token(tokens["refreshToken"], token_type="refresh")["tenant_id"] == tenant.id


@pytest.mark.asyncio
async def test_login_wrong_password(auth_client, owner):
    response = await auth_client.post(
        "/api/auth/login", json={"email": owner.email, "password": "not-the-password"}
    )

    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "Invalid email or password"}


@pytest.mark.asyncio
async def test_login_unknown_email(auth_client):
    response = await auth_client.post(
        "/api/auth/login", json={"email": "nobody@example.com", "password": "whatever-123"}
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_refresh_issues_new_access_token(auth_client, owner, tenant):
    refresh_token = create_refresh_token({"sub": owner.id, "tenant_id": tenant.id})

    response = await auth_client.post("/api/auth/refresh", json={"refreshToken": refresh_token})

    assert response.status_code == 200
    assert verify_token(response.json()["data"]["accessToken"])["sub"] == owner.id


@pytest.mark.asyncio
async def test_refresh_rejects_access_token(auth_client, auth_headers):
    access_token = auth_headers["Authorization"].removeprefix("Bearer ")

    response = await auth_client.post("/api/auth/refresh", json={"refreshToken": access_token})

    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "Unauthorized"}


# ── /me ──────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_me_returns_user_and_tenant_without_secrets(
    auth_client, auth_headers, tenant_repo, tenant
):
    await tenant_repo.update_settings(
        tenant.id,
        google_calendar_config=GoogleCalendarConfig(
            access_token="google-access-secret", refresh_token="google-refresh-secret"
        ),
    )

    response = await auth_client.get("/api/auth/me", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["user"]["name"] == "Ana"
    assert data["tenant"]["googleCalendarConnected"] is True
    assert data["tenant"]["stripeConnected"] is False
    assert "google-refresh-secret" not in response.text
    assert "google-access-secret" not in response.text


@pytest.mark.asyncio
async def test_me_requires_bearer_token(auth_client):
    response = await auth_client.get("/api/auth/me")

    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"
    assert response.json() == {"success": False, "error": "Unauthorized"}


@pytest.mark.asyncio
async def test_me_rejects_garbage_token(auth_client):
    response = await auth_client.get("/api/auth/me", headers={"Authorization": "Bearer nope"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_me_inactive_tenant_is_not_found(auth_client, auth_headers, tenant_repo, tenant):
    await tenant_repo.update_settings(tenant.id, is_active=False)

    response = await auth_client.get("/api/auth/me", headers=auth_headers)

    assert response.status_code == 404
    assert response.json()["error"] == "Tenant not found"
