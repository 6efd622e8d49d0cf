"""Calendar endpoints for the signed-in tenant.

Covers the merged calendar feed, event create / read / update / delete,
and the 100ms recording and transcript routes hanging off an event.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.cally.api.deps import get_calendar_service, get_recording_service, get_tenant
from src.cally.api.envelope import ok
from src.cally.calendar.schemas import CreateEventRequest, EventUpdate
from src.cally.tenants.schemas import TenantRecord

router = APIRouter(prefix="/api/data/app/calendar", tags=["calendar"])


# ── Feed ────────────────────────────────────────────────────────────────────


@router.get("")
async def list_calendar(
    start: str | None = Query(default=None),
    end: str | None = Query(default=None),
    tenant: TenantRecord = Depends(get_tenant),
    service: Any = Depends(get_calendar_service),
):
    """Local events between ``start`` and ``end`` merged with Google and Outlook."""
    if not start or not end:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start and end query parameters are required",
        )
    try:
        datetime.strptime(start, "%Y-%m-%d")
        datetime.strptime(end, "%Y-%m-%d")
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start and end must be YYYY-MM-DD dates",
        )
    return ok(await service.list_feed(tenant, start, end))


@router.get("/upcoming")
async def list_upcoming(
    limit: int = Query(default=10, ge=1, le=100),
    tenant: TenantRecord = Depends(get_tenant),
    service: Any = Depends(get_calendar_service),
):
    return ok(await service.list_upcoming(tenant, limit))


# ── Events ──────────────────────────────────────────────────────────────────


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_event(
    body: CreateEventRequest,
    tenant: TenantRecord = Depends(get_tenant),
    service: Any = Depends(get_calendar_service),
):
    return ok(await service.create_event(tenant, body))


@router.get("/events/{event_id}")
async def get_event(
    event_id: str,
    tenant: TenantRecord = Depends(get_tenant),
    service: Any = Depends(get_calendar_service),
):
    return ok(await service.get_event(tenant, event_id))


@router.put("/events/{event_id}")
async def update_event(
    event_id: str,
    body: EventUpdate,
    update_future: bool = Query(default=False, alias="updateFuture"),
    tenant: TenantRecord = Depends(get_tenant),
    service: Any = Depends(get_calendar_service),
):
    """Overwrite the supplied fields; ``updateFuture`` carries a time shift to later instances."""
    return ok(await service.update_event(tenant, event_id, body, update_future))


@router.delete("/events/{event_id}")
async def delete_event(
    event_id: str,
    delete_all: bool = Query(default=False, alias="deleteAll"),
    tenant: TenantRecord = Depends(get_tenant),
    service: Any = Depends(get_calendar_service),
):
    return ok(await service.delete_event(tenant, event_id, delete_all))


# ── Recording & Transcript ──────────────────────────────────────────────────


@router.post("/events/{event_id}/recording/start")
async def start_recording(
    event_id: str,
    tenant: TenantRecord = Depends(get_tenant),
    recordings: Any = Depends(get_recording_service),
):
    return ok(await recordings.start(tenant.id, event_id))


@router.post("/events/{event_id}/recording/stop")
async def stop_recording(
    event_id: str,
    tenant: TenantRecord = Depends(get_tenant),
    recordings: Any = Depends(get_recording_service),
):
    return ok(await recordings.stop(tenant.id, event_id))


@router.get("/events/{event_id}/transcript")
async def get_transcript(
    event_id: str,
    tenant: TenantRecord = Depends(get_tenant),
    recordings: Any = Depends(get_recording_service),
):
    return ok(await recordings.get_transcript(tenant.id, event_id))
