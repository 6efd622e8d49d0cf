"""Tests for the refund guard: claim, idempotency key and write-back."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from src.cally.bookings.refunds import RefundInProgress, RefundService, refund_idempotency_key
from src.cally.calendar.schemas import CalendarEventCreate, RefundStatus

NOW = "2030-01-31T12:00:00.000Z"
STALE_BEFORE = "2030-01-31T11:50:00.000Z"


async def _paid_event(event_repo, tenant):
    return await event_repo.create_event(
        tenant.id,
        CalendarEventCreate(
            title="Paid class",
            start_time="2030-02-01T09:00:00Z",
            end_time="2030-02-01T10:00:00Z",
            stripe_payment_intent_id="pi_abc",
        ),
    )


def _keys(payments):
    return [call.kwargs["idempotency_key"] for call in payments.create_refund.await_args_list]


def test_idempotency_key_includes_attempt_and_amount():
    assert refund_idempotency_key("evt_1", 1, None) == "refund-evt_1-1-full"
    assert refund_idempotency_key("evt_1", 2, 1250) == "refund-evt_1-2-1250"


@pytest.mark.asyncio
async def test_refund_succeeds_and_is_recorded(refund_service, event_repo, tenant, payments):
    event = await _paid_event(event_repo, tenant)

    result = await refund_service.refund(tenant.id, event, "tenant")

    assert result.succeeded
    assert result.amount_cents == 5000
    payments.create_refund.assert_awaited_once_with(
        "pi_abc", idempotency_key="refund-" + event.id + "-1-full", amount_cents=None
    )
    stored = event_repo.events[event.id]
    assert stored.refund_status == RefundStatus.succeeded
    assert stored.stripe_refund_id == "re_123"
    assert stored.refund_amount_cents == 5000


@pytest.mark.asyncio
async def test_succeeded_refund_is_never_repeated(refund_service, event_repo, tenant, payments):
    event = await _paid_event(event_repo, tenant)
    await refund_service.refund(tenant.id, event, "tenant")
    refunded = event_repo.events[event.id]

    again = await refund_service.refund(tenant.id, refunded, "visitor")

    assert again.succeeded
    assert again.stripe_refund_id == "re_123"
    assert payments.create_refund.await_count == 1


@pytest.mark.asyncio
async def test_pending_claim_blocks_second_refund(refund_service, event_repo, tenant, payments):
    event = await _paid_event(event_repo, tenant)
    assert await event_repo.claim_refund(
        tenant.id, event.id, claimed_at="2999-01-01T00:00:00.000Z", stale_before=STALE_BEFORE
    ) == 1

    with pytest.raises(RefundInProgress):
        await refund_service.refund(tenant.id, event, "visitor")

    payments.create_refund.assert_not_awaited()


@pytest.mark.asyncio
async def test_retry_after_failure_uses_a_new_key(refund_service, event_repo, tenant, payments):
    event = await _paid_event(event_repo, tenant)
    payments.create_refund.side_effect = RuntimeError("card_declined")

    failed = await refund_service.refund(tenant.id, event, "tenant")

    assert failed.status == RefundStatus.failed
    assert event_repo.events[event.id].refund_error == "card_declined"

    payments.create_refund.side_effect = None
    retried = await refund_service.refund(tenant.id, event_repo.events[event.id], "tenant")

    assert retried.succeeded
    assert event_repo.events[event.id].refund_error is None
    assert _keys(payments) == [f"refund-{event.id}-1-full", f"refund-{event.id}-2-full"]


@pytest.mark.asyncio
async def test_stale_pending_claim_is_taken_over_with_its_key(
    refund_service, event_repo, tenant, payments
):
    event = await _paid_event(event_repo, tenant)
    await event_repo.claim_refund(
        tenant.id, event.id, claimed_at="2020-01-01T00:00:00.000Z", stale_before=STALE_BEFORE
    )

    result = await refund_service.refund(tenant.id, event_repo.events[event.id], "visitor")

    assert result.succeeded
    assert _keys(payments) == [f"refund-{event.id}-1-full"]
    assert event_repo.events[event.id].refund_status == RefundStatus.succeeded


@pytest.mark.asyncio
async def test_unwritten_outcome_leaves_claim_for_takeover(
    refund_service, event_repo, tenant, payments, monkeypatch
):
    event = await _paid_event(event_repo, tenant)
    monkeypatch.setattr(event_repo, "update_event", AsyncMock(side_effect=RuntimeError("db down")))

    with pytest.raises(RuntimeError, match="db down"):
        await refund_service.refund(tenant.id, event, "tenant")

    stored = event_repo.events[event.id]
    assert stored.refund_status == RefundStatus.pending
    assert stored.refund_attempt == 1
    assert await event_repo.claim_refund(
        tenant.id, event.id, claimed_at=NOW, stale_before="2999-01-01T00:00:00.000Z"
    ) == 1


@pytest.mark.asyncio
async def test_refund_without_stripe_is_failed(event_repo, tenant):
    service = RefundService(event_repo, payments=None)
    event = await _paid_event(event_repo, tenant)

    result = await service.refund(tenant.id, event, "tenant")

    assert result.status == RefundStatus.failed
    assert result.error == "Stripe is not configured"
    assert await service.get_paid_amount(event) == 0
