"""Subscribers and booking waitlist entries (tenant schema)."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, UniqueConstraint, func, text
from sqlalchemy.orm import Mapped, mapped_column

from src.cally.core.database import TenantBase


class TenantSubscriberModel(TenantBase):
    """A visitor or customer of the tenant, unique per lower-cased email."""

    __tablename__ = "subscribers"
    __table_args__ = (
        UniqueConstraint("tenant_id", "email", name="uq_subscribers_tenant_email"),
        {"schema": "tenant"},
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    source: Mapped[str] = mapped_column(String(30), default="landing_page")
    subscribed: Mapped[bool] = mapped_column(Boolean, default=True, server_default=text("true"))
    first_booking_at: Mapped[str | None] = mapped_column(String(40), nullable=True)
    last_booking_at: Mapped[str | None] = mapped_column(String(40), nullable=True)
    booking_count: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )


class WaitlistEntryModel(TenantBase):
    __tablename__ = "waitlist_entries"
    __table_args__ = (
        Index("ix_waitlist_tenant_date", "tenant_id", "date"),
        {"schema": "tenant"},
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    date: Mapped[str] = mapped_column(String(10), nullable=False)
    visitor_name: Mapped[str] = mapped_column(String(200), nullable=False)
    visitor_email: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="waiting")
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    expires_at: Mapped[str | None] = mapped_column(String(40), nullable=True)
    notified_at: Mapped[str | None] = mapped_column(String(40), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
