"""Public booking-cancel payloads."""

from __future__ import annotations

from src.cally.core.schemas import ApiModel


class CancelRequest(ApiModel):
    token: str | None = None


class CancelPreview(ApiModel):
    event_id: str
    title: str
    start_time: str
    end_time: str
    date: str
    visitor_name: str
    visitor_email: str
    is_paid: bool
    paid_amount_cents: int
    refund_amount_cents: int
    is_full_refund: bool
    refund_reason: str
    currency: str
    cancellation_deadline_hours: int
    is_before_deadline: bool


class CancelResult(ApiModel):
    cancelled: bool = True
    refund_amount_cents: int = 0
    stripe_refund_id: str | None = None
