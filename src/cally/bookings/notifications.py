"""Booking lifecycle emails: confirmed, declined and cancelled.

Send failures are logged and swallowed so an email outage never fails the
request that triggered it.
"""

from __future__ import annotations

from html import escape

import structlog

from src.cally.bookings.cancellation import Visitor
from src.cally.calendar.schemas import CalendarEvent
from src.cally.calendar.timeutil import parse_iso
from src.cally.integrations.email import EmailSender
from src.cally.tenants.schemas import TenantRecord

logger = structlog.get_logger(__name__)


def format_money(amount_cents: int, currency: str) -> str:
    return f"{currency.upper()} {amount_cents / 100:,.2f}"


def _when(event: CalendarEvent) -> str:
    start = parse_iso(event.start_time)
    end = parse_iso(event.end_time)
    return f"{start.strftime('%A, %B %d, %Y')} {start.strftime('%H:%M')}-{end.strftime('%H:%M')} UTC"


def _message_html(message: str | None) -> str:
    if not message:
        return ""
    return f'<p style="border-left: 3px solid #6366f1; padding-left: 12px;">{escape(message)}</p>'


def _wrap(title: str, body: str) -> str:
    return f"""<html>
<body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
<h2>{escape(title)}</h2>
{body}
</body>
</html>"""


# ── Email Builders ───────────────────────────────────────────────────────────


def build_confirmed_email(
    tenant: TenantRecord,
    event: CalendarEvent,
    visitor: Visitor,
    cancel_url: str | None,
    message: str | None = None,
) -> str:
    link_html = ""
    if event.meeting_link:
        url = escape(event.meeting_link)
        link_html = f'<p><strong>Join:</strong> <a href="{url}">{url}</a></p>'
    cancel_html = ""
    if cancel_url:
        cancel_html = f'<p>Need to cancel? <a href="{escape(cancel_url)}">Cancel this booking</a></p>'
    return _wrap(
        "Your booking is confirmed",
        f"""<p>Hi {escape(visitor.name)},</p>
<p>{escape(tenant.name)} has confirmed your booking.</p>
<p><strong>{escape(event.title)}</strong><br>{_when(event)}</p>
{link_html}
{_message_html(message)}
{cancel_html}""",
    )


def build_declined_email(
    tenant: TenantRecord, event: CalendarEvent, visitor: Visitor, message: str | None = None
) -> str:
    return _wrap(
        "Your booking request was declined",
        f"""<p>Hi {escape(visitor.name)},</p>
<p>Unfortunately {escape(tenant.name)} is unable to accept your booking for
<strong>{escape(event.title)}</strong> on {_when(event)}.</p>
{_message_html(message)}""",
    )


def build_cancelled_email(
    tenant: TenantRecord,
    event: CalendarEvent,
    visitor: Visitor,
    cancelled_by: str,
    refund_amount_cents: int,
    is_full_refund: bool,
    message: str | None = None,
) -> str:
    who = "You" if cancelled_by == "visitor" else escape(tenant.name)
    refund_html = ""
    if refund_amount_cents > 0:
        kind = "full" if is_full_refund else "partial"
        refund_html = (
            f"<p>A {kind} refund of <strong>{format_money(refund_amount_cents, tenant.currency)}"
            "</strong> has been issued to your original payment method.</p>"
        )
    return _wrap(
        "Booking cancelled",
        f"""<p>Hi {escape(visitor.name)},</p>
<p>{who} cancelled the booking <strong>{escape(event.title)}</strong> on {_when(event)}.</p>
{refund_html}
{_message_html(message)}""",
    )


def build_tenant_cancelled_email(
    tenant: TenantRecord, event: CalendarEvent, visitor: Visitor, refund_amount_cents: int
) -> str:
    refund_html = ""
    if refund_amount_cents > 0:
        refund_html = (
            f"<p>Refunded: <strong>{format_money(refund_amount_cents, tenant.currency)}</strong></p>"
        )
    return _wrap(
        "A visitor cancelled their booking",
        f"""<p>{escape(visitor.name)} ({escape(visitor.email)}) cancelled
<strong>{escape(event.title)}</strong> on {_when(event)}.</p>
{refund_html}""",
    )


# ── Notifier ─────────────────────────────────────────────────────────────────


class BookingNotifier:
    """Sends booking emails; with no sender every send becomes a log line."""

    def __init__(self, sender: EmailSender | None) -> None:
        self._sender = sender

    async def _send(self, kind: str, to: str, subject: str, html: str) -> bool:
        if self._sender is None:
            logger.info("booking.email_skipped", kind=kind, to=to, reason="email not configured")
            return False
        try:
            await self._sender.send(to=to, subject=subject, html=html)
        except Exception as exc:
            logger.warning("booking.email_failed", kind=kind, to=to, error=str(exc))
            return False
        logger.info("booking.email_sent", kind=kind, to=to)
        return True

    async def send_confirmed(
        self,
        tenant: TenantRecord,
        event: CalendarEvent,
        visitor: Visitor,
        cancel_url: str | None,
        message: str | None = None,
    ) -> bool:
        return await self._send(
            "confirmed",
            visitor.email,
            f"Booking confirmed: {event.title}",
            build_confirmed_email(tenant, event, visitor, cancel_url, message),
        )

    async def send_declined(
        self,
        tenant: TenantRecord,
        event: CalendarEvent,
        visitor: Visitor,
        message: str | None = None,
    ) -> bool:
        return await self._send(
            "declined",
            visitor.email,
            f"Booking declined: {event.title}",
            build_declined_email(tenant, event, visitor, message),
        )

    async def send_cancelled_to_visitor(
        self,
        tenant: TenantRecord,
        event: CalendarEvent,
        visitor: Visitor,
        cancelled_by: str,
        refund_amount_cents: int = 0,
        is_full_refund: bool = True,
        message: str | None = None,
    ) -> bool:
        return await self._send(
            "cancelled_visitor",
            visitor.email,
            f"Booking cancelled: {event.title}",
            build_cancelled_email(
                tenant, event, visitor, cancelled_by, refund_amount_cents, is_full_refund, message
            ),
        )

    async def send_cancelled_to_tenant(
        self,
        tenant: TenantRecord,
        event: CalendarEvent,
        visitor: Visitor,
        refund_amount_cents: int = 0,
    ) -> bool:
        if not tenant.owner_email:
            return False
        return await self._send(
            "cancelled_tenant",
            tenant.owner_email,
            f"Booking cancelled by {visitor.name}: {event.title}",
            build_tenant_cancelled_email(tenant, event, visitor, refund_amount_cents),
        )
