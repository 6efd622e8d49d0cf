"""Visitor self-cancellation through the signed link in booking emails."""

from __future__ import annotations

import structlog

from src.cally.bookings.cancellation import (
    calculate_visitor_refund,
    is_before_deadline,
    parse_visitor_from_description,
)
from src.cally.bookings.notifications import BookingNotifier
from src.cally.bookings.refunds import RefundService
from src.cally.bookings.schemas import CancelPreview, CancelResult
from src.cally.calendar.errors import EventNotCancellable
from src.cally.calendar.repository import CalendarEventRepository
from src.cally.calendar.schemas import OPEN_STATUSES, CalendarEvent, CancelledBy, EventStatus
from src.cally.calendar.timeutil import utc_now_iso
from src.cally.core.errors import DomainError, NotFoundError
from src.cally.core.security import verify_cancel_token
from src.cally.tenants.schemas import TenantRecord

logger = structlog.get_logger(__name__)


class RefundFailed(DomainError):
    status_code = 502

    def __init__(self) -> None:
        super().__init__("Refund could not be processed; the booking was not cancelled")


class VisitorCancellationService:
    def __init__(
        self,
        events: CalendarEventRepository,
        refunds: RefundService,
        notifier: BookingNotifier,
    ) -> None:
        self._events = events
        self._refunds = refunds
        self._notifier = notifier

    async def _load(self, tenant: TenantRecord, token: str | None) -> CalendarEvent:
        if not token:
            raise DomainError("Missing cancel token")
        payload = verify_cancel_token(token)
        if not payload or payload.get("tenantId") != tenant.id:
            raise DomainError("Invalid or expired cancel token")

        event = await self._events.get_event(tenant.id, payload.get("eventId", ""))
        if event is None:
            raise NotFoundError("Booking not found")
        if event.status not in OPEN_STATUSES:
            raise EventNotCancellable(event.status.value)
        return event

    async def preview(self, tenant: TenantRecord, token: str | None) -> CancelPreview:
        """What cancelling now would refund, without changing anything."""
        event = await self._load(tenant, token)
        config = tenant.cancellation_config
        visitor = parse_visitor_from_description(event.description)
        paid = await self._refunds.get_paid_amount(event)
        quote = calculate_visitor_refund(paid, event.start_time, config)

        return CancelPreview(
            event_id=event.id,
            title=event.title,
            start_time=event.start_time,
            end_time=event.end_time,
            date=event.date,
            visitor_name=visitor.name if visitor else "Guest",
            visitor_email=visitor.email if visitor else "",
            is_paid=paid > 0,
            paid_amount_cents=paid,
            refund_amount_cents=quote.amount_cents,
            is_full_refund=quote.is_full_refund,
            refund_reason=quote.reason,
            currency=tenant.currency,
            cancellation_deadline_hours=config.cancellation_deadline_hours,
            is_before_deadline=is_before_deadline(event.start_time, config),
        )

    async def cancel(self, tenant: TenantRecord, token: str | None) -> CancelResult:
        """Refund per policy, cancel the booking, then email both parties.

        Raises:
            RefundFailed: Stripe rejected the refund; the booking stays open
                so the visitor can retry.
        """
        event = await self._load(tenant, token)
        visitor = parse_visitor_from_description(event.description)
        paid = await self._refunds.get_paid_amount(event)
        quote = calculate_visitor_refund(paid, event.start_time, tenant.cancellation_config)

        refund_amount = 0
        stripe_refund_id = None
        if quote.amount_cents > 0:
            result = await self._refunds.refund(
                tenant.id,
                event,
                CancelledBy.visitor.value,
                amount_cents=None if quote.is_full_refund else quote.amount_cents,
            )
            if not result.succeeded:
                raise RefundFailed()
            refund_amount = result.amount_cents
            stripe_refund_id = result.stripe_refund_id

        changes = {
            "status": EventStatus.cancelled,
            "cancelled_by": CancelledBy.visitor,
            "cancelled_at": utc_now_iso(),
        }
        if quote.amount_cents == 0:
            changes["refund_amount_cents"] = 0
        updated = await self._events.update_event(tenant.id, event.id, changes)
        logger.info(
            "booking.cancelled_by_visitor",
            tenant_id=tenant.id,
            event_id=event.id,
            refund_amount_cents=refund_amount,
        )

        if visitor is not None:
            await self._notifier.send_cancelled_to_visitor(
                tenant,
                updated,
                visitor,
                CancelledBy.visitor.value,
                refund_amount_cents=refund_amount,
                is_full_refund=quote.is_full_refund,
            )
            await self._notifier.send_cancelled_to_tenant(tenant, updated, visitor, refund_amount)

        return CancelResult(
            cancelled=True, refund_amount_cents=refund_amount, stripe_refund_id=stripe_refund_id
        )
