"""Visitor self-cancellation endpoints.

No session: the visitor proves ownership of the booking with the signed
cancel token from their confirmation email.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from src.cally.api.deps import get_cancellation_service, get_public_tenant
from src.cally.api.envelope import ok
from src.cally.bookings.schemas import CancelRequest
from src.cally.tenants.schemas import TenantRecord

router = APIRouter(prefix="/api/data/tenants/{tenant_id}/booking", tags=["bookings"])


@router.get("/cancel")
async def preview_cancellation(
    token: str | None = Query(default=None),
    tenant: TenantRecord = Depends(get_public_tenant),
    service: Any = Depends(get_cancellation_service),
):
    """Refund the visitor would get by cancelling now."""
    return ok(await service.preview(tenant, token))


@router.post("/cancel")
async def cancel_booking(
    body: CancelRequest,
    tenant: TenantRecord = Depends(get_public_tenant),
    service: Any = Depends(get_cancellation_service),
):
    return ok(await service.cancel(tenant, body.token))
