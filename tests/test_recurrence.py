"""Tests for recurrence expansion and the ISO time helpers."""

from __future__ import annotations

from datetime import timedelta

import pytest

from src.cally.calendar.recurrence import MAX_OCCURRENCES, expand_recurrence
from src.cally.calendar.schemas import RecurrenceRule
from src.cally.calendar.timeutil import (
    InvalidTimestamp,
    format_like,
    parse_iso,
    shift_iso,
)


def _rule(**fields) -> RecurrenceRule:
    return RecurrenceRule.model_validate(fields)


# ── Expansion ────────────────────────────────────────────────────────────────


def test_daily_with_interval():
    rule = _rule(frequency="daily", interval=2, end={"afterOccurrences": 3})

    assert expand_recurrence("2030-01-01T09:00:00Z", rule) == [
        "2030-01-01",
        "2030-01-03",
        "2030-01-05",
    ]


def test_weekday_skips_weekends():
    # 2030-01-04 is a Friday
    rule = _rule(frequency="weekday", end={"afterOccurrences": 3})

    assert expand_recurrence("2030-01-04T09:00:00Z", rule) == [
        "2030-01-04",
        "2030-01-07",
        "2030-01-08",
    ]


def test_weekly_on_selected_days_every_other_week():
    # Monday and Friday, every second week, starting Monday 2030-01-07
    rule = _rule(frequency="weekly", interval=2, daysOfWeek=[1, 5], end={"afterOccurrences": 4})

    assert expand_recurrence("2030-01-07T09:00:00Z", rule) == [
        "2030-01-07",
        "2030-01-11",
        "2030-01-21",
        "2030-01-25",
    ]


def test_weekly_skips_selected_days_before_start():
    # Starts on a Wednesday; Monday of that week is already past
    rule = _rule(frequency="weekly", daysOfWeek=[1, 3], end={"afterOccurrences": 3})

    assert expand_recurrence("2030-01-09T09:00:00Z", rule) == [
        "2030-01-09",
        "2030-01-14",
        "2030-01-16",
    ]


def test_monthly_by_day_of_month_skips_short_months():
    rule = _rule(frequency="monthly", end={"afterOccurrences": 3})

    assert expand_recurrence("2030-01-31T09:00:00Z", rule) == [
        "2030-01-31",
        "2030-03-31",
        "2030-05-31",
    ]


def test_monthly_by_weekday_position():
    # Second Tuesday of each month
    rule = _rule(frequency="monthly", monthlyMode="dayOfWeek", end={"afterOccurrences": 3})

    assert expand_recurrence("2030-01-08T09:00:00Z", rule) == [
        "2030-01-08",
        "2030-02-12",
        "2030-03-12",
    ]


def test_yearly_leap_day_only_in_leap_years():
    rule = _rule(frequency="yearly", end={"afterOccurrences": 2})

    assert expand_recurrence("2028-02-29T09:00:00Z", rule) == ["2028-02-29", "2032-02-29"]


def test_end_on_date_is_inclusive():
    rule = _rule(frequency="daily", end={"onDate": "2030-01-03"})

    assert expand_recurrence("2030-01-01T09:00:00Z", rule) == [
        "2030-01-01",
        "2030-01-02",
        "2030-01-03",
    ]


def test_default_end_is_fifty_two_occurrences():
    rule = _rule(frequency="weekly")

    assert len(expand_recurrence("2030-01-07T09:00:00Z", rule)) == 52


def test_open_ended_series_is_capped():
    rule = _rule(frequency="daily", end={"onDate": "2040-01-01"})

    dates = expand_recurrence("2030-01-01T09:00:00Z", rule)

    assert len(dates) == MAX_OCCURRENCES


def test_rule_rejects_bad_weekday():
    with pytest.raises(ValueError):
        _rule(frequency="weekly", daysOfWeek=[7])


def test_rule_rejects_too_many_occurrences():
    with pytest.raises(ValueError):
        _rule(frequency="daily", end={"afterOccurrences": 53})


# ── Time Helpers ─────────────────────────────────────────────────────────────


def test_parse_iso_treats_naive_as_utc():
    assert parse_iso("2030-01-01T09:00:00").utcoffset() == timedelta(0)


def test_parse_iso_rejects_garbage():
    with pytest.raises(InvalidTimestamp):
        parse_iso("tomorrow")


def test_format_like_keeps_notation():
    moment = parse_iso("2030-01-01T09:00:00Z")

    assert format_like(moment, "2029-12-31T10:00:00Z") == "2030-01-01T09:00:00.000Z"
    assert format_like(moment, "2029-12-31T20:00:00+10:00") == "2030-01-01T19:00:00+10:00"
    assert format_like(moment, "2029-12-31T10:00:00") == "2030-01-01T09:00:00"


def test_shift_iso_moves_by_delta():
    assert shift_iso("2030-01-01T23:30:00+10:00", timedelta(hours=1)) == "2030-01-02T00:30:00+10:00"
