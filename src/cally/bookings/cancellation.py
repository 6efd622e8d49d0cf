"""Cancellation policy and visitor details for public bookings.

Public bookings store the visitor in the event description as
``Visitor: <name>`` / ``Email: <email>`` / optional ``Note: <text>`` lines.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone

from src.cally.calendar.timeutil import parse_iso
from src.cally.tenants.schemas import CancellationConfig

_VISITOR_RE = re.compile(r"^Visitor:\s*(.+)$", re.MULTILINE)
_EMAIL_RE = re.compile(r"^Email:\s*(.+)$", re.MULTILINE)
_NOTE_RE = re.compile(r"^Note:\s*(.+)$", re.MULTILINE)


@dataclass(frozen=True)
class Visitor:
    name: str
    email: str
    note: str | None = None


@dataclass(frozen=True)
class RefundQuote:
    amount_cents: int
    is_full_refund: bool
    reason: str


def parse_visitor_from_description(description: str | None) -> Visitor | None:
    """Visitor named in a booking description, or None if it has none."""
    if not description:
        return None
    name = _VISITOR_RE.search(description)
    email = _EMAIL_RE.search(description)
    if not name or not email:
        return None
    note = _NOTE_RE.search(description)
    return Visitor(
        name=name.group(1).strip(),
        email=email.group(1).strip(),
        note=note.group(1).strip() if note else None,
    )


def format_visitor_description(name: str, email: str, note: str | None = None) -> str:
    lines = [f"Visitor: {name}", f"Email: {email}"]
    if note:
        lines.append(f"Note: {note}")
    return "\n".join(lines)


def hours_until(start_time: str, now: datetime | None = None) -> float:
    now = now or datetime.now(timezone.utc)
    return (parse_iso(start_time) - now).total_seconds() / 3600


def is_before_deadline(
    start_time: str, config: CancellationConfig, now: datetime | None = None
) -> bool:
    """True while at least ``cancellation_deadline_hours`` remain before start."""
    return hours_until(start_time, now) >= config.cancellation_deadline_hours


def calculate_visitor_refund(
    paid_amount_cents: int,
    start_time: str,
    config: CancellationConfig,
    now: datetime | None = None,
) -> RefundQuote:
    """Refund a visitor gets for cancelling now.

    Full refund before the deadline, otherwise
    ``late_cancellation_refund_percent`` of the amount paid (rounded down).
    """
    if paid_amount_cents <= 0:
        return RefundQuote(0, True, "No payment to refund")

    if is_before_deadline(start_time, config, now):
        return RefundQuote(
            paid_amount_cents,
            True,
            f"Cancelled more than {config.cancellation_deadline_hours} hours before the booking",
        )

    percent = config.late_cancellation_refund_percent
    amount = paid_amount_cents * percent // 100
    if percent >= 100:
        return RefundQuote(paid_amount_cents, True, "Full refund for late cancellation")
    if amount == 0:
        return RefundQuote(
            0,
            False,
            f"Cancelled within {config.cancellation_deadline_hours} hours of the booking; "
            "no refund applies",
        )
    return RefundQuote(
        amount,
        False,
        f"Cancelled within {config.cancellation_deadline_hours} hours of the booking; "
        f"{percent}% refund applies",
    )
