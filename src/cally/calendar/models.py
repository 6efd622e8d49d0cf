"""Calendar event persistence model -- one row per event in the tenant schema.

Start and end are stored as the ISO-8601 strings the client sent so that
round-trips never change their offset notation; ``date`` (YYYY-MM-DD) is the
range-query key. Recurrence rules, attendees and per-provider sync state are
JSON columns.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, func, text
from sqlalchemy.dialects.postgresql import JSON
from sqlalchemy.orm import Mapped, mapped_column

from src.cally.core.database import TenantBase


class CalendarEventModel(TenantBase):
    """A booking, personal event, or one instance of a recurring series."""

    __tablename__ = "calendar_events"
    __table_args__ = (
        Index("ix_calendar_events_tenant_date", "tenant_id", "date"),
        Index("ix_calendar_events_tenant_group", "tenant_id", "recurrence_group_id"),
        Index("ix_calendar_events_hms_room", "hms_room_id"),
        {"schema": "tenant"},
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    date: Mapped[str] = mapped_column(String(10), nullable=False)
    start_time: Mapped[str] = mapped_column(String(40), nullable=False)
    end_time: Mapped[str] = mapped_column(String(40), nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    type: Mapped[str] = mapped_column(String(30), default="general", server_default=text("'general'"))
    status: Mapped[str] = mapped_column(
        String(20), default="scheduled", server_default=text("'scheduled'")
    )
    location: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_all_day: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("false"))
    color: Mapped[str | None] = mapped_column(String(20), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    attendees_data: Mapped[list] = mapped_column(
        JSON, default=list, server_default=text("'[]'::json")
    )
    meeting_link: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    has_video_conference: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false")
    )
    hms_room_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    hms_template_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    zoom_meeting_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    recurrence_group_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    recurrence_rule_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    google_calendar_event_id: Mapped[str | None] = mapped_column(String(300), nullable=True)
    outlook_calendar_event_id: Mapped[str | None] = mapped_column(String(300), nullable=True)
    stripe_payment_intent_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    product_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String(20), nullable=True)
    cancelled_at: Mapped[str | None] = mapped_column(String(40), nullable=True)
    refund_amount_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    stripe_refund_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    refund_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    refund_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    refund_attempt: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"))
    refund_claimed_at: Mapped[str | None] = mapped_column(String(40), nullable=True)
    sync_status_data: Mapped[dict] = mapped_column(
        JSON, default=dict, server_default=text("'{}'::json")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )
