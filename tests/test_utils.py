from __future__ import annotations

from datetime import datetime, timedelta, timezone

from planmate.utils import (
    enumerate_days_inclusive_utc,
    normalize_email,
    start_of_day_utc,
    to_naive_utc,
    utcnow,
)


def test_utcnow_is_naive():
    assert utcnow().tzinfo is None


def test_to_naive_utc_converts_offsets():
    aware = datetime(2025, 3, 1, 1, 30, tzinfo=timezone(timedelta(hours=5)))
    assert to_naive_utc(aware) == datetime(2025, 2, 28, 20, 30)
    assert to_naive_utc(datetime(2025, 3, 1, 1, 30)) == datetime(2025, 3, 1, 1, 30)
    assert to_naive_utc(None) is None


def test_start_of_day_utc_uses_the_utc_calendar_day():
    late_evening_west = datetime(
        2025, 3, 1, 22, 0, tzinfo=timezone(timedelta(hours=-5))
    )
    assert start_of_day_utc(late_evening_west) == datetime(2025, 3, 2)
    assert start_of_day_utc(datetime(2025, 3, 1, 23, 59, 59)) == datetime(2025, 3, 1)


def test_enumerate_days_ignores_time_of_day():
    days = enumerate_days_inclusive_utc(
        datetime(2025, 3, 1, 10, 0), datetime(2025, 3, 3, 2, 0)
    )
    assert days == [datetime(2025, 3, 1), datetime(2025, 3, 2), datetime(2025, 3, 3)]


def test_enumerate_days_single_day_and_reversed_range():
    same_day = enumerate_days_inclusive_utc(
        datetime(2025, 3, 1, 8, 0), datetime(2025, 3, 1, 20, 0)
    )
    assert same_day == [datetime(2025, 3, 1)]
    assert enumerate_days_inclusive_utc(datetime(2025, 3, 2), datetime(2025, 3, 1)) == []


def test_enumerate_days_crosses_month_boundary():
    days = enumerate_days_inclusive_utc(datetime(2024, 2, 28), datetime(2024, 3, 1))
    assert [day.day for day in days] == [28, 29, 1]


def test_normalize_email():
    assert normalize_email("  Alice@Example.COM ") == "alice@example.com"
    assert normalize_email(None) == ""
