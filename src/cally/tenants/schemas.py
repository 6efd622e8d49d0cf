"""Tenant record and the per-tenant integration / booking settings.

All settings are stored as sections of the tenant's ``config`` JSON column
and exposed to the client in camelCase.
"""

from __future__ import annotations

from enum import Enum

from pydantic import EmailStr, Field

from src.cally.core.schemas import ApiModel


class VideoCallPreference(str, Enum):
    cally_video = "cally_video"
    google_meet = "google_meet"
    zoom = "zoom"


# ── Integration Configs ──────────────────────────────────────────────────────


class GoogleCalendarConfig(ApiModel):
    """OAuth grant for the tenant's Google calendar."""

    access_token: str
    refresh_token: str
    token_expiry: str | None = None
    email: str | None = None
    calendar_id: str = "primary"
    push_events: bool = True
    block_booking_slots: bool = True
    auto_add_meet_link: bool = False


class OutlookCalendarConfig(ApiModel):
    """OAuth grant for the tenant's Outlook calendar (Microsoft Graph)."""

    access_token: str
    refresh_token: str
    expires_at: int = 0  # epoch milliseconds
    email: str | None = None
    calendar_id: str | None = None
    push_events: bool = True
    block_booking_slots: bool = True


class ZoomConfig(ApiModel):
    access_token: str
    refresh_token: str
    expires_at: int = 0
    email: str | None = None


class StripeConfig(ApiModel):
    """Stripe Connect account the tenant is paid through."""

    account_id: str
    charges_enabled: bool = False
    payouts_enabled: bool = False
    details_submitted: bool = False


class SubscriptionConfig(ApiModel):
    plan: str = "free"
    status: str = "active"
    stripe_customer_id: str | None = None
    stripe_subscription_id: str | None = None
    trial_ends_at: str | None = None
    current_period_end: str | None = None


# ── Booking ──────────────────────────────────────────────────────────────────


class CancellationConfig(ApiModel):
    """Visitor self-cancellation policy.

    Cancelling at least ``cancellation_deadline_hours`` before the start
    refunds in full; later cancellations refund
    ``late_cancellation_refund_percent`` of the amount paid.
    """

    cancellation_deadline_hours: int = Field(default=24, ge=0)
    late_cancellation_refund_percent: int = Field(default=0, ge=0, le=100)


class DaySchedule(ApiModel):
    enabled: bool = True
    start_hour: int = Field(default=9, ge=0, le=23)
    end_hour: int = Field(default=17, ge=1, le=24)


def _default_week() -> dict[str, DaySchedule]:
    week = {str(day): DaySchedule() for day in range(1, 6)}
    week["0"] = DaySchedule(enabled=False)
    week["6"] = DaySchedule(enabled=False)
    return week


class BookingConfig(ApiModel):
    """Public booking page settings. Weekday keys are "0" (Sunday) to "6"."""

    slot_duration_minutes: int = Field(default=30, ge=5, le=480)
    buffer_minutes: int = Field(default=0, ge=0)
    advance_booking_days: int = Field(default=30, ge=1)
    minimum_notice_hours: int = Field(default=2, ge=0)
    timezone: str = "UTC"
    weekly_schedule: dict[str, DaySchedule] = Field(default_factory=_default_week)
    cancellation_config: CancellationConfig = Field(default_factory=CancellationConfig)
    waitlist_enabled: bool = False
    waitlist_hold_minutes: int = Field(default=60, ge=5)


# ── Tenant ───────────────────────────────────────────────────────────────────


class TenantRecord(ApiModel):
    """A tenant with every settings section resolved."""

    id: str
    slug: str
    name: str
    schema_name: str
    owner_email: str | None = None
    currency: str = "AUD"
    timezone: str = "UTC"
    is_active: bool = True
    video_call_preference: VideoCallPreference = VideoCallPreference.cally_video
    google_calendar_config: GoogleCalendarConfig | None = None
    outlook_calendar_config: OutlookCalendarConfig | None = None
    zoom_config: ZoomConfig | None = None
    stripe_config: StripeConfig | None = None
    subscription_config: SubscriptionConfig | None = None
    booking_config: BookingConfig | None = None
    landing_page: dict | None = None

    @property
    def cancellation_config(self) -> CancellationConfig:
        if self.booking_config:
            return self.booking_config.cancellation_config
        return CancellationConfig()


# Sections of TenantRecord that live in the tenant ``config`` JSON column
CONFIG_SECTIONS = (
    "currency",
    "timezone",
    "video_call_preference",
    "google_calendar_config",
    "outlook_calendar_config",
    "zoom_config",
    "stripe_config",
    "subscription_config",
    "booking_config",
    "landing_page",
)


class UserRecord(ApiModel):
    id: str
    tenant_id: str
    email: str
    name: str | None = None
    is_active: bool = True
    hashed_password: str | None = Field(default=None, exclude=True)


# ── Auth Payloads ────────────────────────────────────────────────────────────


class SignupRequest(ApiModel):
    email: EmailStr
    password: str = Field(min_length=8)
    name: str | None = None
    business_name: str = Field(min_length=1, max_length=200)
    slug: str


class LoginRequest(ApiModel):
    email: EmailStr
    password: str


class RefreshRequest(ApiModel):
    refresh_token: str


class TokenResponse(ApiModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class VideoPreferenceUpdate(ApiModel):
    video_call_preference: VideoCallPreference
