"""Calendar event schemas -- records, request bodies and recurrence rules."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import Field, field_validator

from src.cally.core.schemas import ApiModel


class EventStatus(str, Enum):
    pending = "pending"
    scheduled = "scheduled"
    completed = "completed"
    cancelled = "cancelled"


class CancelledBy(str, Enum):
    tenant = "tenant"
    visitor = "visitor"


class RefundStatus(str, Enum):
    pending = "pending"
    succeeded = "succeeded"
    failed = "failed"


# Statuses a booking can still be confirmed or cancelled from
OPEN_STATUSES = (EventStatus.pending, EventStatus.scheduled)

DEFAULT_EVENT_COLOR = "#6366f1"
PENDING_EVENT_COLOR = "#f59e0b"


# ── Recurrence ───────────────────────────────────────────────────────────────


class RecurrenceEnd(ApiModel):
    """Exactly one of after_occurrences / on_date ends a series."""

    after_occurrences: int | None = Field(default=None, ge=1, le=52)
    on_date: str | None = None

    @field_validator("on_date")
    @classmethod
    def _valid_date(cls, value: str | None) -> str | None:
        if value is not None:
            datetime.strptime(value, "%Y-%m-%d")
        return value


class RecurrenceRule(ApiModel):
    frequency: Literal["daily", "weekly", "weekday", "monthly", "yearly"]
    interval: int = Field(default=1, ge=1, le=99)
    days_of_week: list[int] | None = None  # 0 = Sunday
    monthly_mode: Literal["dayOfMonth", "dayOfWeek"] | None = None
    end: RecurrenceEnd = Field(default_factory=lambda: RecurrenceEnd(after_occurrences=52))

    @field_validator("days_of_week")
    @classmethod
    def _valid_days(cls, value: list[int] | None) -> list[int] | None:
        if value is not None and any(day < 0 or day > 6 for day in value):
            raise ValueError("daysOfWeek entries must be 0-6")
        return value


# ── Sync State ───────────────────────────────────────────────────────────────


class ProviderSyncState(ApiModel):
    """Outcome of the last push of an event to one external calendar."""

    status: Literal["synced", "failed"]
    operation: Literal["create", "update", "delete"]
    error: str | None = None
    at: str


# ── Calendar Event ───────────────────────────────────────────────────────────


class CalendarEvent(ApiModel):
    id: str
    tenant_id: str
    title: str
    description: str | None = None
    date: str
    start_time: str
    end_time: str
    duration: int
    type: str = "general"
    status: EventStatus = EventStatus.scheduled
    location: str | None = None
    is_all_day: bool = False
    color: str | None = None
    notes: str | None = None
    attendees: list[dict[str, Any]] = Field(default_factory=list)
    meeting_link: str | None = None
    has_video_conference: bool = False
    hms_room_id: str | None = None
    hms_template_id: str | None = None
    zoom_meeting_id: str | None = None
    recurrence_group_id: str | None = None
    recurrence_rule: RecurrenceRule | None = None
    google_calendar_event_id: str | None = None
    outlook_calendar_event_id: str | None = None
    stripe_payment_intent_id: str | None = None
    product_id: str | None = None
    cancelled_by: CancelledBy | None = None
    cancelled_at: str | None = None
    refund_amount_cents: int | None = None
    stripe_refund_id: str | None = None
    refund_status: RefundStatus | None = None
    refund_error: str | None = None
    refund_attempt: int = 0
    refund_claimed_at: str | None = None
    sync_status: dict[str, ProviderSyncState] = Field(default_factory=dict)
    created_at: str | None = None
    updated_at: str | None = None


class CalendarEventCreate(ApiModel):
    """Fields accepted when storing a new event."""

    title: str = Field(min_length=1, max_length=500)
    start_time: str
    end_time: str
    date: str | None = None
    description: str | None = None
    type: str = "general"
    status: EventStatus = EventStatus.scheduled
    location: str | None = None
    is_all_day: bool = False
    color: str | None = None
    notes: str | None = None
    attendees: list[dict[str, Any]] = Field(default_factory=list)
    has_video_conference: bool = False
    meeting_link: str | None = None
    hms_room_id: str | None = None
    hms_template_id: str | None = None
    zoom_meeting_id: str | None = None
    recurrence_group_id: str | None = None
    recurrence_rule: RecurrenceRule | None = None
    stripe_payment_intent_id: str | None = None
    product_id: str | None = None


class CreateEventRequest(ApiModel):
    """POST /calendar body."""

    title: str = Field(min_length=1, max_length=500)
    start_time: str
    end_time: str
    description: str | None = None
    location: str | None = None
    is_all_day: bool = False
    color: str | None = None
    notes: str | None = None
    attendees: list[dict[str, Any]] = Field(default_factory=list)
    has_video_conference: bool = False
    recurrence_rule: RecurrenceRule | None = None


class EventUpdate(ApiModel):
    """PUT body. Only fields present in the request are written."""

    title: str | None = Field(default=None, min_length=1, max_length=500)
    description: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    status: EventStatus | None = None
    location: str | None = None
    is_all_day: bool | None = None
    color: str | None = None
    notes: str | None = None
    attendees: list[dict[str, Any]] | None = None
    # Included in the visitor email on a status change; never stored
    message: str | None = None

    @field_validator("title", "start_time", "end_time", "status", "is_all_day", "attendees", mode="before")
    @classmethod
    def _not_null(cls, value: Any) -> Any:
        # Omit a field to leave it unchanged; these columns have no null state
        if value is None:
            raise ValueError("must not be null")
        return value


class CalendarFeedItem(ApiModel):
    """An entry in the merged calendar view (local or external)."""

    id: str
    title: str
    start: str
    end: str
    all_day: bool = False
    color: str
    source: Literal["cally", "google", "outlook"] = "cally"
    status: EventStatus | None = None
    description: str | None = None
    location: str | None = None
    meeting_link: str | None = None
    recurrence_group_id: str | None = None
    editable: bool = True


class DeleteResult(ApiModel):
    deleted: bool = True
    count: int | None = None
    sync_failures: list[dict[str, str]] = Field(default_factory=list)
