"""Day materialization and activity scheduling."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from .errors import InvariantViolation, NotFound, ValidationFailed
from .models import Activity, Day, Event, EventType, User
from .roles import authorize
from .utils import enumerate_days_inclusive_utc, start_of_day_utc, to_naive_utc

logger = logging.getLogger("uvicorn.error")


def day_dates_for_event(event: Event) -> list[datetime]:
    """Return the UTC midnights an event should own a Day for."""
    if event.type == EventType.WHOLE_DAY:
        return [start_of_day_utc(event.start_date)]
    if event.type == EventType.MULTI_DAY and event.end_date is not None:
        return enumerate_days_inclusive_utc(event.start_date, event.end_date)
    return []


def create_days_for_event(session: Session, *, event: Event) -> list[Day]:
    """Create the event's Day rows, skipping dates that already exist."""
    existing = set(session.scalars(select(Day.date).where(Day.event_id == event.id)))
    created: list[Day] = []
    for date in day_dates_for_event(event):
        if date in existing:
            continue
        existing.add(date)
        day = Day(event_id=event.id, date=date)
        session.add(day)
        created.append(day)
    session.flush()
    return created


def list_days(session: Session, *, event_id: str, actor: User) -> Sequence[Day]:
    authorize(session, event_id, actor.id, "days.view")
    stmt = select(Day).where(Day.event_id == event_id).order_by(Day.date)
    return session.scalars(stmt).all()


def create_activity(
    session: Session,
    *,
    event_id: str,
    actor: User,
    day_id: str,
    title: str,
    start_time: datetime,
    end_time: datetime | None = None,
    location: str | None = None,
    description: str | None = None,
) -> Activity:
    authorize(session, event_id, actor.id, "activities.create")
    day = session.get(Day, day_id)
    if not day or day.event_id != event_id:
        raise NotFound("Day not found for this event")
    cleaned_title = (title or "").strip()
    if not cleaned_title:
        raise ValidationFailed("Title is required")

    start = to_naive_utc(start_time)
    end = to_naive_utc(end_time)
    if start_of_day_utc(start) != day.date:
        raise InvariantViolation("start_time does not match the day's date")
    if end is not None and end < start:
        raise InvariantViolation("end_time must be after start_time")

    activity = Activity(
        day=day,
        title=cleaned_title,
        start_time=start,
        end_time=end,
        location=(location or "").strip() or None,
        description=(description or "").strip() or None,
    )
    session.add(activity)
    session.flush()
    logger.info("Created activity %s on day %s of event %s", activity.id, day.id, event_id)
    return activity


def delete_activity(
    session: Session, *, event_id: str, activity_id: str, actor: User
) -> None:
    authorize(session, event_id, actor.id, "activities.delete")
    activity = session.get(Activity, activity_id)
    if not activity or activity.day.event_id != event_id:
        raise NotFound("Activity not found")
    activity.day.activities.remove(activity)
    session.delete(activity)
    session.flush()
    logger.info("Deleted activity %s from event %s", activity_id, event_id)
