"""Stripe payment lookups and refunds for paid bookings.

The stripe SDK is synchronous; calls run in asyncio.to_thread(). Refunds
always carry an idempotency key so a retried cancellation can never issue a
second refund for the same booking.
"""

from __future__ import annotations

import asyncio

import stripe
import structlog

logger = structlog.get_logger(__name__)


class StripePayments:
    def __init__(self, secret_key: str) -> None:
        self._secret_key = secret_key

    async def get_payment_intent(self, payment_intent_id: str) -> stripe.PaymentIntent:
        return await asyncio.to_thread(
            stripe.PaymentIntent.retrieve, payment_intent_id, api_key=self._secret_key
        )

    async def get_paid_amount(self, payment_intent_id: str) -> int:
        """Amount captured on the intent, in cents."""
        intent = await self.get_payment_intent(payment_intent_id)
        return int(intent.get("amount_received") or intent.get("amount") or 0)

    async def create_refund(
        self,
        payment_intent_id: str,
        idempotency_key: str,
        amount_cents: int | None = None,
    ) -> stripe.Refund:
        """Refund a payment. ``amount_cents=None`` refunds the full amount."""
        params: dict = {"payment_intent": payment_intent_id}
        if amount_cents is not None:
            params["amount"] = amount_cents
        refund = await asyncio.to_thread(
            stripe.Refund.create,
            api_key=self._secret_key,
            idempotency_key=idempotency_key,
            **params,
        )
        logger.info(
            "stripe.refund_created",
            payment_intent_id=payment_intent_id,
            refund_id=refund.id,
            amount=refund.amount,
        )
        return refund
