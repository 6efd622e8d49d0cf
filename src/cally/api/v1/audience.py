"""Landing-page subscribers and per-date booking waitlists.

Visitors subscribe and join waitlists on public routes keyed by tenant id;
the tenant reads and manages them on authenticated routes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from src.cally.api.deps import (
    get_public_tenant,
    get_subscriber_repository,
    get_tenant,
    get_waitlist_repository,
)
from src.cally.api.envelope import ok
from src.cally.audience.schemas import SubscribeRequest, WaitlistJoinRequest
from src.cally.tenants.schemas import TenantRecord

public_router = APIRouter(prefix="/api/data/tenants/{tenant_id}", tags=["audience"])
router = APIRouter(prefix="/api/data/app", tags=["audience"])


# ── Public ──────────────────────────────────────────────────────────────────


@public_router.post("/subscribe", status_code=status.HTTP_201_CREATED)
async def subscribe(
    body: SubscribeRequest,
    tenant: TenantRecord = Depends(get_public_tenant),
    repo: Any = Depends(get_subscriber_repository),
):
    subscriber = await repo.upsert_subscriber(tenant.id, body.email, body.name, body.source)
    return ok({"id": subscriber.id, "subscribed": subscriber.subscribed})


@public_router.post("/waitlist", status_code=status.HTTP_201_CREATED)
async def join_waitlist(
    body: WaitlistJoinRequest,
    tenant: TenantRecord = Depends(get_public_tenant),
    repo: Any = Depends(get_waitlist_repository),
):
    entry = await repo.join(tenant.id, body.date, body.visitor_name, body.visitor_email)
    return ok({"id": entry.id, "position": entry.position, "status": entry.status.value})


# ── Tenant ──────────────────────────────────────────────────────────────────


@router.get("/subscribers")
async def list_subscribers(
    tenant: TenantRecord = Depends(get_tenant),
    repo: Any = Depends(get_subscriber_repository),
):
    return ok(await repo.list_subscribers(tenant.id))


@router.delete("/subscribers/{subscriber_id}")
async def delete_subscriber(
    subscriber_id: str,
    tenant: TenantRecord = Depends(get_tenant),
    repo: Any = Depends(get_subscriber_repository),
):
    if not await repo.delete_subscriber(tenant.id, subscriber_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscriber not found")
    return ok({"deleted": True})


@router.get("/waitlist/{date}")
async def list_waitlist(
    date: str,
    tenant: TenantRecord = Depends(get_tenant),
    repo: Any = Depends(get_waitlist_repository),
):
    try:
        datetime.strptime(date, "%Y-%m-%d")
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid date format")
    return ok(await repo.list_for_date(tenant.id, date))
