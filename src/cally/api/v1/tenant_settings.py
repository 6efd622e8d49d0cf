"""Tenant-editable settings: landing page, booking page and video provider."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, status
from pydantic import ValidationError

from src.cally.api.deps import get_tenant, get_tenant_repository
from src.cally.api.envelope import ok
from src.cally.tenants.landing_page import ComposableLandingPage, parse_landing_page, section_ids_unique
from src.cally.tenants.schemas import BookingConfig, TenantRecord, VideoPreferenceUpdate

router = APIRouter(prefix="/api/data/app/tenant", tags=["tenant"])


# ── Landing Page ────────────────────────────────────────────────────────────


@router.get("/landing-page")
async def get_landing_page(tenant: TenantRecord = Depends(get_tenant)):
    if not tenant.landing_page:
        return ok(None)
    return ok(parse_landing_page(tenant.landing_page))


@router.put("/landing-page")
async def update_landing_page(
    payload: dict[str, Any] = Body(...),
    tenant: TenantRecord = Depends(get_tenant),
    tenants: Any = Depends(get_tenant_repository),
):
    """Replace the landing page with a V1 or V2 (``version: 2``) body."""
    try:
        page = parse_landing_page(payload)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid landing page: {location}: {first['msg']}",
        )
    if isinstance(page, ComposableLandingPage) and not section_ids_unique(page):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Landing page section ids must be unique",
        )

    await tenants.update_settings(tenant.id, landing_page=page.model_dump(mode="json", by_alias=True))
    return ok(page)


# ── Booking Config ──────────────────────────────────────────────────────────


@router.get("/booking-config")
async def get_booking_config(tenant: TenantRecord = Depends(get_tenant)):
    return ok(tenant.booking_config or BookingConfig())


@router.put("/booking-config")
async def update_booking_config(
    body: BookingConfig,
    tenant: TenantRecord = Depends(get_tenant),
    tenants: Any = Depends(get_tenant_repository),
):
    updated = await tenants.update_settings(tenant.id, booking_config=body)
    return ok(updated.booking_config)


# ── Video ───────────────────────────────────────────────────────────────────


@router.put("/video-preference")
async def update_video_preference(
    body: VideoPreferenceUpdate,
    tenant: TenantRecord = Depends(get_tenant),
    tenants: Any = Depends(get_tenant_repository),
):
    """Store the provider new video bookings use.

    An unconnected Google or Zoom account is not rejected here; provisioning
    falls back to 100ms at booking time.
    """
    updated = await tenants.update_settings(
        tenant.id, video_call_preference=body.video_call_preference
    )
    return ok({"videoCallPreference": updated.video_call_preference.value})
