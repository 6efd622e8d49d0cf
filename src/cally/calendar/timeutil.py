"""ISO-8601 helpers for event times stored as strings."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


class InvalidTimestamp(ValueError):
    pass


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC.

    Raises:
        InvalidTimestamp: the string is not a timestamp.
    """
    if not value:
        raise InvalidTimestamp("empty timestamp")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError) as exc:
        raise InvalidTimestamp(str(exc)) from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_like(moment: datetime, template: str) -> str:
    """Render ``moment`` in the same notation as ``template``.

    ``...Z`` stays Zulu with milliseconds, an explicit offset keeps that
    offset, and a naive template yields a naive UTC string.
    """
    if template.endswith("Z"):
        utc = moment.astimezone(timezone.utc)
        return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"

    reference = datetime.fromisoformat(template)
    if reference.tzinfo is None:
        return moment.astimezone(timezone.utc).replace(tzinfo=None).isoformat()
    return moment.astimezone(reference.tzinfo).isoformat()


def shift_iso(value: str, delta: timedelta) -> str:
    """Move an ISO timestamp by ``delta`` keeping its notation."""
    return format_like(parse_iso(value) + delta, value)


def to_utc_iso(moment: datetime) -> str:
    utc = moment.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def duration_minutes(start_time: str, end_time: str) -> int:
    return int((parse_iso(end_time) - parse_iso(start_time)).total_seconds() // 60)


def event_date(start_time: str) -> str:
    """Calendar date (YYYY-MM-DD) an event is filed under."""
    return start_time[:10]


def utc_now_iso() -> str:
    return to_utc_iso(datetime.now(timezone.utc))
