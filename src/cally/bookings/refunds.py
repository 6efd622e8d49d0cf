"""Guarded Stripe refunds for cancelled bookings.

Every cancellation path (tenant or visitor) refunds through RefundService:

1. An event whose refund already succeeded is never refunded again.
2. ``claim_refund`` persists ``refund_status=pending`` with a conditional
   UPDATE; a caller that loses the claim does not call Stripe.
3. The Stripe request carries an idempotency key derived from the event id,
   the claim's attempt number and the amount. A retry after a failure is a
   new attempt; a pending claim left behind by a crashed request can be
   taken over after REFUND_CLAIM_TIMEOUT and reuses its attempt's key.
4. The outcome is written back whether Stripe succeeded or not.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import structlog

from src.cally.calendar.repository import CalendarEventRepository
from src.cally.calendar.schemas import CalendarEvent, RefundStatus
from src.cally.calendar.timeutil import to_utc_iso
from src.cally.core.errors import ConflictError
from src.cally.core.monitoring import record_refund
from src.cally.integrations.stripe_payments import StripePayments

logger = structlog.get_logger(__name__)

REFUND_CLAIM_TIMEOUT = timedelta(minutes=10)


class RefundInProgress(ConflictError):
    def __init__(self) -> None:
        super().__init__("A refund for this booking is already in progress")


@dataclass
class RefundResult:
    status: RefundStatus
    amount_cents: int = 0
    stripe_refund_id: str | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == RefundStatus.succeeded


def refund_idempotency_key(event_id: str, attempt: int, amount_cents: int | None) -> str:
    return f"refund-{event_id}-{attempt}-{'full' if amount_cents is None else amount_cents}"


class RefundService:
    def __init__(
        self, events: CalendarEventRepository, payments: StripePayments | None
    ) -> None:
        self._events = events
        self._payments = payments

    async def get_paid_amount(self, event: CalendarEvent) -> int:
        if not event.stripe_payment_intent_id or self._payments is None:
            return 0
        return await self._payments.get_paid_amount(event.stripe_payment_intent_id)

    async def refund(
        self,
        tenant_id: str,
        event: CalendarEvent,
        cancelled_by: str,
        amount_cents: int | None = None,
    ) -> RefundResult:
        """Refund the booking's payment; ``amount_cents=None`` refunds in full.

        Raises:
            RefundInProgress: another request holds the refund claim.
        """
        if event.refund_status == RefundStatus.succeeded:
            logger.info("refund.already_succeeded", tenant_id=tenant_id, event_id=event.id)
            return RefundResult(
                status=RefundStatus.succeeded,
                amount_cents=event.refund_amount_cents or 0,
                stripe_refund_id=event.stripe_refund_id,
            )

        now = datetime.now(timezone.utc)
        attempt = await self._events.claim_refund(
            tenant_id,
            event.id,
            claimed_at=to_utc_iso(now),
            stale_before=to_utc_iso(now - REFUND_CLAIM_TIMEOUT),
        )
        if attempt is None:
            raise RefundInProgress()

        if self._payments is None:
            result = RefundResult(status=RefundStatus.failed, error="Stripe is not configured")
        else:
            try:
                refund = await self._payments.create_refund(
                    event.stripe_payment_intent_id,
                    idempotency_key=refund_idempotency_key(event.id, attempt, amount_cents),
                    amount_cents=amount_cents,
                )
                result = RefundResult(
                    status=RefundStatus.succeeded,
                    amount_cents=int(refund.amount),
                    stripe_refund_id=refund.id,
                )
            except Exception as exc:
                logger.error(
                    "refund.failed",
                    tenant_id=tenant_id,
                    event_id=event.id,
                    payment_intent_id=event.stripe_payment_intent_id,
                    attempt=attempt,
                    error=str(exc),
                )
                result = RefundResult(status=RefundStatus.failed, error=str(exc))

        record_refund(cancelled_by, ok=result.succeeded)
        try:
            await self._events.update_event(
                tenant_id,
                event.id,
                {
                    "refund_status": result.status,
                    "refund_error": result.error,
                    "stripe_refund_id": result.stripe_refund_id,
                    "refund_amount_cents": result.amount_cents,
                },
            )
        except Exception:
            # The claim stays pending and is taken over once stale
            logger.error(
                "refund.outcome_write_failed",
                tenant_id=tenant_id,
                event_id=event.id,
                attempt=attempt,
                status=result.status.value,
                stripe_refund_id=result.stripe_refund_id,
            )
            raise
        return result
