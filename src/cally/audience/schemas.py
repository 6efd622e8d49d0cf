"""Subscriber and waitlist schemas."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import EmailStr, Field, field_validator

from src.cally.core.schemas import ApiModel


class WaitlistStatus(str, Enum):
    waiting = "waiting"
    notified = "notified"
    booked = "booked"
    expired = "expired"


# Entries still holding a place in line
ACTIVE_WAITLIST_STATUSES = (WaitlistStatus.waiting, WaitlistStatus.notified)


class TenantSubscriber(ApiModel):
    id: str
    tenant_id: str
    email: str
    name: str | None = None
    source: str = "landing_page"
    subscribed: bool = True
    first_booking_at: str | None = None
    last_booking_at: str | None = None
    booking_count: int = 0
    created_at: str | None = None


class SubscribeRequest(ApiModel):
    email: EmailStr
    name: str | None = Field(default=None, max_length=200)
    source: str = Field(default="landing_page", max_length=30)


class WaitlistEntry(ApiModel):
    id: str
    tenant_id: str
    date: str
    visitor_name: str
    visitor_email: str
    status: WaitlistStatus = WaitlistStatus.waiting
    position: int
    expires_at: str | None = None
    notified_at: str | None = None
    created_at: str | None = None


class WaitlistJoinRequest(ApiModel):
    date: str
    visitor_name: str = Field(min_length=1, max_length=200)
    visitor_email: EmailStr

    @field_validator("date")
    @classmethod
    def _valid_date(cls, value: str) -> str:
        datetime.strptime(value, "%Y-%m-%d")
        return value
