"""Calendar event repository -- async CRUD over the tenant's calendar_events table.

Uses the session_factory callable pattern shared by every repository; all
methods take tenant_id as first argument. JSON columns are written with
model_dump(mode="json") and read back with model_validate().
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from datetime import datetime
from enum import Enum
from typing import Any

import structlog
from sqlalchemy import DateTime, and_, case, cast, delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.cally.calendar.models import CalendarEventModel
from src.cally.calendar.schemas import (
    CalendarEvent,
    CalendarEventCreate,
    EventStatus,
    ProviderSyncState,
    RecurrenceRule,
    RefundStatus,
)
from src.cally.calendar.timeutil import duration_minutes, event_date
from src.cally.core.ids import new_event_id

logger = structlog.get_logger(__name__)

# Schema field name -> column attribute, where they differ
_COLUMN_FOR_FIELD = {
    "attendees": "attendees_data",
    "recurrence_rule": "recurrence_rule_data",
    "sync_status": "sync_status_data",
}

_IMMUTABLE_FIELDS = {"id", "tenant_id", "created_at", "updated_at"}


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_event(model: CalendarEventModel) -> CalendarEvent:
    """Convert CalendarEventModel to CalendarEvent schema."""
    rule = (
        RecurrenceRule.model_validate(model.recurrence_rule_data)
        if model.recurrence_rule_data
        else None
    )
    sync_status = {
        provider: ProviderSyncState.model_validate(state)
        for provider, state in (model.sync_status_data or {}).items()
    }
    return CalendarEvent(
        id=model.id,
        tenant_id=model.tenant_id,
        title=model.title,
        description=model.description,
        date=model.date,
        start_time=model.start_time,
        end_time=model.end_time,
        duration=model.duration,
        type=model.type,
        status=EventStatus(model.status),
        location=model.location,
        is_all_day=model.is_all_day,
        color=model.color,
        notes=model.notes,
        attendees=list(model.attendees_data or []),
        meeting_link=model.meeting_link,
        has_video_conference=model.has_video_conference,
        hms_room_id=model.hms_room_id,
        hms_template_id=model.hms_template_id,
        zoom_meeting_id=model.zoom_meeting_id,
        recurrence_group_id=model.recurrence_group_id,
        recurrence_rule=rule,
        google_calendar_event_id=model.google_calendar_event_id,
        outlook_calendar_event_id=model.outlook_calendar_event_id,
        stripe_payment_intent_id=model.stripe_payment_intent_id,
        product_id=model.product_id,
        cancelled_by=model.cancelled_by,
        cancelled_at=model.cancelled_at,
        refund_amount_cents=model.refund_amount_cents,
        stripe_refund_id=model.stripe_refund_id,
        refund_status=model.refund_status,
        refund_error=model.refund_error,
        refund_attempt=model.refund_attempt or 0,
        refund_claimed_at=model.refund_claimed_at,
        sync_status=sync_status,
        created_at=model.created_at.isoformat() if model.created_at else None,
        updated_at=model.updated_at.isoformat() if model.updated_at else None,
    )


def _column_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    return value


# ── Repository ──────────────────────────────────────────────────────────────


class CalendarEventRepository:
    """Async CRUD operations for calendar events.

    Args:
        session_factory: Async callable that yields tenant-scoped AsyncSessions.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def create_event(self, tenant_id: str, data: CalendarEventCreate) -> CalendarEvent:
        """Store a new event. ``date`` defaults to the start's calendar date."""
        model = CalendarEventModel(
            id=new_event_id(),
            tenant_id=tenant_id,
            title=data.title,
            description=data.description,
            date=data.date or event_date(data.start_time),
            start_time=data.start_time,
            end_time=data.end_time,
            duration=duration_minutes(data.start_time, data.end_time),
            type=data.type,
            status=data.status.value,
            location=data.location,
            is_all_day=data.is_all_day,
            color=data.color,
            notes=data.notes,
            attendees_data=data.attendees,
            meeting_link=data.meeting_link,
            has_video_conference=data.has_video_conference,
            hms_room_id=data.hms_room_id,
            hms_template_id=data.hms_template_id,
            zoom_meeting_id=data.zoom_meeting_id,
            recurrence_group_id=data.recurrence_group_id,
            recurrence_rule_data=(
                data.recurrence_rule.model_dump(mode="json") if data.recurrence_rule else None
            ),
            stripe_payment_intent_id=data.stripe_payment_intent_id,
            product_id=data.product_id,
            sync_status_data={},
        )
        async for session in self._session_factory():
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info("calendar.event_created", tenant_id=tenant_id, event_id=model.id)
            return _model_to_event(model)
        raise RuntimeError("No database session available")

    async def get_event(self, tenant_id: str, event_id: str) -> CalendarEvent | None:
        async for session in self._session_factory():
            result = await session.execute(
                select(CalendarEventModel).where(
                    CalendarEventModel.tenant_id == tenant_id,
                    CalendarEventModel.id == event_id,
                )
            )
            model = result.scalar_one_or_none()
            return _model_to_event(model) if model else None
        return None

    async def get_event_by_room(self, tenant_id: str, room_id: str) -> CalendarEvent | None:
        async for session in self._session_factory():
            result = await session.execute(
                select(CalendarEventModel).where(
                    CalendarEventModel.tenant_id == tenant_id,
                    CalendarEventModel.hms_room_id == room_id,
                )
            )
            model = result.scalars().first()
            return _model_to_event(model) if model else None
        return None

    async def list_events_in_range(
        self, tenant_id: str, start_date: str, end_date: str
    ) -> list[CalendarEvent]:
        """Events whose date falls within [start_date, end_date], ordered by start."""
        async for session in self._session_factory():
            result = await session.execute(
                select(CalendarEventModel)
                .where(
                    CalendarEventModel.tenant_id == tenant_id,
                    CalendarEventModel.date >= start_date,
                    CalendarEventModel.date <= end_date,
                )
                .order_by(CalendarEventModel.start_time)
            )
            return [_model_to_event(m) for m in result.scalars().all()]
        return []

    async def list_upcoming(
        self, tenant_id: str, now: datetime, limit: int = 10
    ) -> list[CalendarEvent]:
        """Scheduled events that have not ended by ``now``, soonest first."""
        async for session in self._session_factory():
            result = await session.execute(
                select(CalendarEventModel)
                .where(
                    CalendarEventModel.tenant_id == tenant_id,
                    cast(CalendarEventModel.end_time, DateTime(timezone=True)) >= now,
                    CalendarEventModel.status == EventStatus.scheduled.value,
                )
                .order_by(CalendarEventModel.start_time)
                .limit(limit)
            )
            return [_model_to_event(m) for m in result.scalars().all()]
        return []

    async def list_recurrence_group(self, tenant_id: str, group_id: str) -> list[CalendarEvent]:
        async for session in self._session_factory():
            result = await session.execute(
                select(CalendarEventModel)
                .where(
                    CalendarEventModel.tenant_id == tenant_id,
                    CalendarEventModel.recurrence_group_id == group_id,
                )
                .order_by(CalendarEventModel.start_time)
            )
            return [_model_to_event(m) for m in result.scalars().all()]
        return []

    async def update_event(
        self, tenant_id: str, event_id: str, updates: dict[str, Any]
    ) -> CalendarEvent:
        """Overwrite fields on an event.

        ``updates`` is keyed by CalendarEvent field names. When the times
        change, ``date`` and ``duration`` are recomputed from them.

        Raises:
            ValueError: If the event does not exist.
        """
        async for session in self._session_factory():
            result = await session.execute(
                select(CalendarEventModel).where(
                    CalendarEventModel.tenant_id == tenant_id,
                    CalendarEventModel.id == event_id,
                )
            )
            model = result.scalar_one_or_none()
            if model is None:
                raise ValueError(f"Calendar event {event_id} not found")

            for field, value in updates.items():
                if field in _IMMUTABLE_FIELDS:
                    continue
                setattr(model, _COLUMN_FOR_FIELD.get(field, field), _column_value(value))

            if "start_time" in updates or "end_time" in updates:
                model.date = event_date(model.start_time)
                model.duration = duration_minutes(model.start_time, model.end_time)

            await session.commit()
            await session.refresh(model)
            return _model_to_event(model)
        raise RuntimeError("No database session available")

    async def record_sync_state(
        self,
        tenant_id: str,
        event_id: str,
        provider: str,
        state: ProviderSyncState,
        external_id: str | None = None,
    ) -> None:
        """Store the outcome of a push to one provider (and the provider's event id).

        The row is locked while the provider's entry is merged into
        ``sync_status`` so concurrent writers for other providers are kept.
        """
        async for session in self._session_factory():
            result = await session.execute(
                select(CalendarEventModel)
                .where(
                    CalendarEventModel.tenant_id == tenant_id,
                    CalendarEventModel.id == event_id,
                )
                .with_for_update()
            )
            model = result.scalar_one_or_none()
            if model is None:
                return
            sync_status = dict(model.sync_status_data or {})
            sync_status[provider] = state.model_dump(mode="json")
            model.sync_status_data = sync_status
            if external_id is not None:
                if provider == "google":
                    model.google_calendar_event_id = external_id
                elif provider == "outlook":
                    model.outlook_calendar_event_id = external_id
            await session.commit()

    async def claim_refund(
        self, tenant_id: str, event_id: str, claimed_at: str, stale_before: str
    ) -> int | None:
        """Mark a refund as in flight and return the claim's attempt number.

        A claim is granted when no refund has been tried, the last one
        failed (the attempt number goes up), or a pending claim was taken
        before ``stale_before`` (the attempt number is kept, so the retried
        Stripe call replays the original request). Returns None when another
        caller holds a live claim or the refund already succeeded.
        """
        is_stale = and_(
            CalendarEventModel.refund_status == RefundStatus.pending.value,
            CalendarEventModel.refund_claimed_at < stale_before,
        )
        async for session in self._session_factory():
            result = await session.execute(
                update(CalendarEventModel)
                .where(
                    CalendarEventModel.tenant_id == tenant_id,
                    CalendarEventModel.id == event_id,
                    or_(
                        CalendarEventModel.refund_status.is_(None),
                        CalendarEventModel.refund_status == RefundStatus.failed.value,
                        is_stale,
                    ),
                )
                .values(
                    refund_status=RefundStatus.pending.value,
                    refund_error=None,
                    refund_claimed_at=claimed_at,
                    refund_attempt=case(
                        (
                            CalendarEventModel.refund_status == RefundStatus.pending.value,
                            CalendarEventModel.refund_attempt,
                        ),
                        else_=CalendarEventModel.refund_attempt + 1,
                    ),
                )
                .returning(CalendarEventModel.refund_attempt)
            )
            attempt = result.scalar_one_or_none()
            await session.commit()
            return attempt
        return None

    async def delete_event(self, tenant_id: str, event_id: str) -> bool:
        async for session in self._session_factory():
            result = await session.execute(
                delete(CalendarEventModel).where(
                    CalendarEventModel.tenant_id == tenant_id,
                    CalendarEventModel.id == event_id,
                )
            )
            await session.commit()
            return result.rowcount > 0
        return False

    async def delete_recurrence_group(self, tenant_id: str, group_id: str) -> int:
        async for session in self._session_factory():
            result = await session.execute(
                delete(CalendarEventModel).where(
                    CalendarEventModel.tenant_id == tenant_id,
                    CalendarEventModel.recurrence_group_id == group_id,
                )
            )
            await session.commit()
            logger.info(
                "calendar.group_deleted",
                tenant_id=tenant_id,
                group_id=group_id,
                count=result.rowcount,
            )
            return result.rowcount
        return 0
