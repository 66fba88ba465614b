"""Utility helpers for planmate."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
import secrets

ONE_DAY = timedelta(days=1)


def utcnow() -> datetime:
    """Return a naive UTC datetime."""

    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Convert ``value`` to a naive UTC datetime.

    Naive values are assumed to already be in UTC and are returned unchanged.
    """

    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def start_of_day_utc(value: datetime) -> datetime:
    """Return midnight (UTC) of the calendar day containing ``value``."""

    value = to_naive_utc(value)
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def enumerate_days_inclusive_utc(start: datetime, end: datetime) -> list[datetime]:
    """Return every UTC midnight from ``start``'s day through ``end``'s day.

    Both endpoints are normalized first so the time-of-day components never
    add or drop a day. An ``end`` before ``start`` yields an empty list.
    """

    cursor = start_of_day_utc(start)
    last = start_of_day_utc(end)
    days: list[datetime] = []
    while cursor <= last:
        days.append(cursor)
        cursor += ONE_DAY
    return days


def normalize_email(value: str | None) -> str:
    return (value or "").strip().lower()


def generate_token() -> str:
    return secrets.token_urlsafe(32)
