"""Tests for the booking side effects of a tenant confirming or cancelling an event."""

from __future__ import annotations

import pytest

from src.cally.bookings.cancellation import format_visitor_description
from src.cally.bookings.refunds import refund_idempotency_key
from src.cally.calendar.schemas import (
    CalendarEventCreate,
    CancelledBy,
    EventStatus,
    EventUpdate,
    RefundStatus,
)
from src.cally.tenants.schemas import GoogleCalendarConfig

VISITOR = format_visitor_description("Jo Bloggs", "jo@example.com", "First class")


async def _booking(event_repo, tenant, **fields):
    data = {
        "title": "Intro session",
        "start_time": "2030-03-04T10:00:00Z",
        "end_time": "2030-03-04T11:00:00Z",
        "description": VISITOR,
        "status": EventStatus.pending,
    }
    data.update(fields)
    return await event_repo.create_event(tenant.id, CalendarEventCreate(**data))


def _subjects(email_sender) -> list[str]:
    return [c.kwargs["subject"] for c in email_sender.send.await_args_list]


@pytest.mark.asyncio
async def test_confirming_sends_email_with_cancel_link(
    calendar_service, event_repo, tenant, email_sender
):
    booking = await _booking(event_repo, tenant)

    updated = await calendar_service.update_event(
        tenant, booking.id, EventUpdate(status=EventStatus.scheduled, message="See you there")
    )

    assert updated.status == EventStatus.scheduled
    email_sender.send.assert_awaited_once()
    sent = email_sender.send.await_args.kwargs
    assert sent["to"] == "jo@example.com"
    assert sent["subject"] == "Booking confirmed: Intro session"
    assert f"/{tenant.id}/booking/cancel?token=" in sent["html"]
    assert "See you there" in sent["html"]


@pytest.mark.asyncio
async def test_declining_unpaid_booking_sends_decline(
    calendar_service, event_repo, tenant, email_sender, payments
):
    booking = await _booking(event_repo, tenant)

    updated = await calendar_service.update_event(
        tenant, booking.id, EventUpdate(status=EventStatus.cancelled)
    )

    assert updated.status == EventStatus.cancelled
    assert updated.cancelled_by == CancelledBy.tenant
    assert updated.cancelled_at is not None
    assert _subjects(email_sender) == ["Booking declined: Intro session"]
    payments.create_refund.assert_not_awaited()


@pytest.mark.asyncio
async def test_cancelling_paid_booking_refunds_before_emailing(
    calendar_service, event_repo, tenant, email_sender, payments
):
    booking = await _booking(event_repo, tenant, stripe_payment_intent_id="pi_123")
    refund_state_at_send = []

    async def _send(**kwargs):
        refund_state_at_send.append(event_repo.events[booking.id].refund_status)
        return {"id": "msg-1"}

    email_sender.send.side_effect = _send

    updated = await calendar_service.update_event(
        tenant, booking.id, EventUpdate(status=EventStatus.cancelled)
    )

    payments.create_refund.assert_awaited_once_with(
        "pi_123",
        idempotency_key=refund_idempotency_key(booking.id, 1, None),
        amount_cents=None,
    )
    assert updated.refund_status == RefundStatus.succeeded
    assert updated.refund_amount_cents == 5000
    assert updated.stripe_refund_id == "re_123"
    assert refund_state_at_send == [RefundStatus.succeeded]
    assert _subjects(email_sender) == ["Booking cancelled: Intro session"]
    assert "AUD 50.00" in email_sender.send.await_args.kwargs["html"]


@pytest.mark.asyncio
async def test_paid_cancel_already_refunding_sends_nothing(
    calendar_service, event_repo, tenant, email_sender, payments
):
    booking = await _booking(event_repo, tenant, stripe_payment_intent_id="pi_123")
    await event_repo.update_event(tenant.id, booking.id, {"refund_status": RefundStatus.pending})

    await calendar_service.update_event(
        tenant, booking.id, EventUpdate(status=EventStatus.cancelled)
    )

    payments.create_refund.assert_not_awaited()
    email_sender.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_paid_cancel_without_visitor_still_refunds(
    calendar_service, event_repo, tenant, email_sender, payments
):
    booking = await _booking(
        event_repo, tenant, description="Walk-in", stripe_payment_intent_id="pi_9"
    )

    await calendar_service.update_event(
        tenant, booking.id, EventUpdate(status=EventStatus.cancelled)
    )

    payments.create_refund.assert_awaited_once()
    email_sender.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_cancelling_closed_booking_has_no_side_effects(
    calendar_service, event_repo, tenant, email_sender, payments
):
    booking = await _booking(
        event_repo, tenant, status=EventStatus.completed, stripe_payment_intent_id="pi_1"
    )

    await calendar_service.update_event(
        tenant, booking.id, EventUpdate(status=EventStatus.cancelled)
    )

    payments.create_refund.assert_not_awaited()
    email_sender.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_unchanged_status_sends_nothing(calendar_service, event_repo, tenant, email_sender):
    booking = await _booking(event_repo, tenant, status=EventStatus.scheduled)

    await calendar_service.update_event(
        tenant, booking.id, EventUpdate(status=EventStatus.scheduled, title="Renamed")
    )

    email_sender.send.assert_not_awaited()
    assert event_repo.events[booking.id].title == "Renamed"


@pytest.mark.asyncio
async def test_email_failure_does_not_fail_confirmation(
    calendar_service, event_repo, tenant, email_sender
):
    booking = await _booking(event_repo, tenant)
    email_sender.send.side_effect = RuntimeError("smtp down")

    updated = await calendar_service.update_event(
        tenant, booking.id, EventUpdate(status=EventStatus.scheduled)
    )

    assert updated.status == EventStatus.scheduled


@pytest.mark.asyncio
async def test_approval_adds_meet_link_when_enabled(
    calendar_service, event_repo, tenant_repo, tenant, google
):
    tenant = await tenant_repo.update_settings(
        tenant.id,
        google_calendar_config=GoogleCalendarConfig(
            access_token="at", refresh_token="rt", auto_add_meet_link=True
        ),
    )
    booking = await _booking(event_repo, tenant)

    updated = await calendar_service.update_event(
        tenant, booking.id, EventUpdate(status=EventStatus.scheduled)
    )

    google.add_meet_link.assert_awaited_once_with(
        tenant.google_calendar_config, f"g-{booking.id}"
    )
    assert updated.meeting_link == "https://meet.google.com/abc-defg-hij"
