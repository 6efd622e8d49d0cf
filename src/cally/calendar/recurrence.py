"""Expansion of a recurrence rule into the dates of a series.

Weekdays use Sunday = 0 numbering, matching the web client. A series ends
after ``end.after_occurrences`` instances or on ``end.on_date`` (inclusive),
and never exceeds MAX_OCCURRENCES or MAX_SPAN_DAYS.
"""

from __future__ import annotations

import calendar
from collections.abc import Iterator
from datetime import date, timedelta

from src.cally.calendar.schemas import RecurrenceRule

MAX_OCCURRENCES = 366
MAX_SPAN_DAYS = 366 * 5


def js_weekday(day: date) -> int:
    """Sunday = 0 ... Saturday = 6."""
    return (day.weekday() + 1) % 7


def _add_months(year: int, month: int, months: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + months
    return index // 12, index % 12 + 1


def _nth_weekday(year: int, month: int, weekday: int, nth: int) -> date | None:
    """The nth (1-based) given weekday of a month, or None if it doesn't exist."""
    first = date(year, month, 1)
    offset = (weekday - js_weekday(first)) % 7
    day = 1 + offset + (nth - 1) * 7
    if day > calendar.monthrange(year, month)[1]:
        return None
    return date(year, month, day)


def _daily(start: date, interval: int) -> Iterator[date]:
    current = start
    while True:
        yield current
        current += timedelta(days=interval)


def _weekdays(start: date) -> Iterator[date]:
    current = start
    while True:
        if js_weekday(current) not in (0, 6):
            yield current
        current += timedelta(days=1)


def _weekly(start: date, interval: int, days_of_week: list[int]) -> Iterator[date]:
    days = sorted(set(days_of_week)) or [js_weekday(start)]
    week_start = start - timedelta(days=js_weekday(start))
    while True:
        for weekday in days:
            candidate = week_start + timedelta(days=weekday)
            if candidate >= start:
                yield candidate
        week_start += timedelta(weeks=interval)


def _monthly(start: date, interval: int, by_weekday: bool) -> Iterator[date]:
    nth = (start.day - 1) // 7 + 1
    weekday = js_weekday(start)
    step = 0
    while True:
        year, month = _add_months(start.year, start.month, step * interval)
        if by_weekday:
            candidate = _nth_weekday(year, month, weekday, nth)
        elif start.day <= calendar.monthrange(year, month)[1]:
            candidate = date(year, month, start.day)
        else:
            candidate = None
        if candidate is not None:
            yield candidate
        step += 1


def _yearly(start: date, interval: int) -> Iterator[date]:
    year = start.year
    while True:
        if start.month != 2 or start.day != 29 or calendar.isleap(year):
            yield date(year, start.month, start.day)
        year += interval


def expand_recurrence(start_time: str, rule: RecurrenceRule) -> list[str]:
    """Dates (YYYY-MM-DD) of every instance on or after the start's date."""
    start = date.fromisoformat(start_time[:10])

    if rule.frequency == "daily":
        candidates = _daily(start, rule.interval)
    elif rule.frequency == "weekday":
        candidates = _weekdays(start)
    elif rule.frequency == "weekly":
        candidates = _weekly(start, rule.interval, rule.days_of_week or [js_weekday(start)])
    elif rule.frequency == "monthly":
        candidates = _monthly(start, rule.interval, rule.monthly_mode == "dayOfWeek")
    else:
        candidates = _yearly(start, rule.interval)

    limit = min(rule.end.after_occurrences or MAX_OCCURRENCES, MAX_OCCURRENCES)
    until = date.fromisoformat(rule.end.on_date) if rule.end.on_date else None
    horizon = start + timedelta(days=MAX_SPAN_DAYS)

    dates: list[str] = []
    for candidate in candidates:
        if candidate > horizon or (until is not None and candidate > until):
            break
        dates.append(candidate.isoformat())
        if len(dates) >= limit:
            break
    return dates
