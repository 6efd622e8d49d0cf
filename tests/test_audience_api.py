"""Tests for subscriber and waitlist endpoints."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.cally.audience.schemas import TenantSubscriber, WaitlistEntry, WaitlistStatus


@pytest.fixture
def subscriber_repo(tenant):
    repo = MagicMock()
    repo.upsert_subscriber = AsyncMock(
        side_effect=lambda tenant_id, email, name, source: TenantSubscriber(
            id="sub_1", tenant_id=tenant_id, email=email, name=name, source=source
        )
    )
    repo.list_subscribers = AsyncMock(return_value=[])
    repo.delete_subscriber = AsyncMock(return_value=True)
    return repo


@pytest.fixture
def waitlist_repo():
    repo = MagicMock()
    repo.join = AsyncMock(
        side_effect=lambda tenant_id, date, name, email: WaitlistEntry(
            id="wl_1",
            tenant_id=tenant_id,
            date=date,
            visitor_name=name,
            visitor_email=email,
            position=3,
        )
    )
    repo.list_for_date = AsyncMock(return_value=[])
    return repo


@pytest.fixture
def client(app_client, tenant_repo, subscriber_repo, waitlist_repo):
    return app_client(
        tenant_repository=tenant_repo,
        subscriber_repository=subscriber_repo,
        waitlist_repository=waitlist_repo,
    )


# ── Public ───────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_subscribe(client, tenant, subscriber_repo):
    response = await client.post(
        f"/api/data/tenants/{tenant.id}/subscribe",
        json={"email": "jo@example.com", "name": "Jo"},
    )

    assert response.status_code == 201
    assert response.json()["data"] == {"id": "sub_1", "subscribed": True}
    subscriber_repo.upsert_subscriber.assert_awaited_once_with(
        tenant.id, "jo@example.com", "Jo", "landing_page"
    )


@pytest.mark.asyncio
async def test_subscribe_rejects_bad_email(client, tenant):
    response = await client.post(
        f"/api/data/tenants/{tenant.id}/subscribe", json={"email": "not-an-email"}
    )

    assert response.status_code == 400
    assert response.json()["error"].startswith("email")


@pytest.mark.asyncio
async def test_subscribe_unknown_tenant(client):
    response = await client.post("/api/data/tenants/nope/subscribe", json={"email": "jo@example.com"})

    assert response.status_code == 404
    assert response.json()["error"] == "Tenant not found"


@pytest.mark.asyncio
async def test_join_waitlist(client, tenant, waitlist_repo):
    response = await client.post(
        f"/api/data/tenants/{tenant.id}/waitlist",
        json={"date": "2030-03-14", "visitorName": "Jo", "visitorEmail": "jo@example.com"},
    )

    assert response.status_code == 201
    assert response.json()["data"] == {"id": "wl_1", "position": 3, "status": "waiting"}
    waitlist_repo.join.assert_awaited_once_with(tenant.id, "2030-03-14", "Jo", "jo@example.com")


@pytest.mark.asyncio
async def test_join_waitlist_rejects_bad_date(client, tenant, waitlist_repo):
    response = await client.post(
        f"/api/data/tenants/{tenant.id}/waitlist",
        json={"date": "14/03/2030", "visitorName": "Jo", "visitorEmail": "jo@example.com"},
    )

    assert response.status_code == 400
    assert response.json()["error"].startswith("date")
    waitlist_repo.join.assert_not_awaited()


# ── Tenant ───────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_list_subscribers_requires_auth(client):
    response = await client.get("/api/data/app/subscribers")

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_list_subscribers(client, auth_headers, subscriber_repo, tenant):
    subscriber_repo.list_subscribers.return_value = [
        TenantSubscriber(id="sub_1", tenant_id=tenant.id, email="jo@example.com", booking_count=2)
    ]

    response = await client.get("/api/data/app/subscribers", headers=auth_headers)

    assert response.status_code == 200
    [row] = response.json()["data"]
    assert row["email"] == "jo@example.com"
    assert row["bookingCount"] == 2


@pytest.mark.asyncio
async def test_delete_missing_subscriber(client, auth_headers, subscriber_repo):
    subscriber_repo.delete_subscriber.return_value = False

    response = await client.delete("/api/data/app/subscribers/sub_nope", headers=auth_headers)

    assert response.status_code == 404
    assert response.json()["error"] == "Subscriber not found"


@pytest.mark.asyncio
async def test_waitlist_for_date(client, auth_headers, waitlist_repo, tenant):
    waitlist_repo.list_for_date.return_value = [
        WaitlistEntry(
            id="wl_1",
            tenant_id=tenant.id,
            date="2030-03-14",
            visitor_name="Jo",
            visitor_email="jo@example.com",
            position=1,
            status=WaitlistStatus.notified,
        )
    ]

    response = await client.get("/api/data/app/waitlist/2030-03-14", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["data"][0]["status"] == "notified"
    waitlist_repo.list_for_date.assert_awaited_once_with(tenant.id, "2030-03-14")


@pytest.mark.asyncio
async def test_waitlist_for_bad_date(client, auth_headers):
    response = await client.get("/api/data/app/waitlist/next-tuesday", headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid date format"
