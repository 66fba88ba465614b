"""CRUD helpers for users and events."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from .errors import InvariantViolation, ValidationFailed
from .models import Event, EventStatus, EventType, User
from .scheduling import create_days_for_event
from .utils import generate_token, normalize_email, to_naive_utc, utcnow

logger = logging.getLogger("uvicorn.error")

TYPES_REQUIRING_END = {EventType.ONE_OFF, EventType.MULTI_DAY}
EDITABLE_EVENT_FIELDS = {
    "title",
    "description",
    "location",
    "cover_image",
    "status",
    "require_approval",
}


def _clean(value: str | None) -> str | None:
    cleaned = (value or "").strip()
    return cleaned or None


def get_user(session: Session, user_id: str) -> User | None:
    return session.get(User, user_id)


def get_user_by_email(session: Session, email: str) -> User | None:
    normalized = normalize_email(email)
    if not normalized:
        return None
    stmt = select(User).where(User.email == normalized)
    return session.scalars(stmt).first()


def get_user_by_token(session: Session, token: str) -> User | None:
    if not token:
        return None
    stmt = select(User).where(User.api_token == token)
    return session.scalars(stmt).first()


def create_user(session: Session, *, email: str, name: str) -> User:
    """Register a user; emails are unique regardless of case."""
    normalized = normalize_email(email)
    if not normalized:
        raise ValidationFailed("Email is required")
    display_name = _clean(name)
    if not display_name:
        raise ValidationFailed("Name is required")
    if get_user_by_email(session, normalized):
        raise InvariantViolation("Email already registered")
    user = User(email=normalized, name=display_name, api_token=generate_token())
    session.add(user)
    session.flush()
    logger.info("Registered user %s", user.id)
    return user


def rotate_api_token(session: Session, user: User) -> str:
    user.api_token = generate_token()
    session.add(user)
    session.flush()
    return user.api_token


def create_event(
    session: Session,
    *,
    host: User,
    title: str,
    event_type: EventType | str,
    start_date: datetime,
    end_date: datetime | None = None,
    description: str | None = None,
    location: str | None = None,
    cover_image: str | None = None,
    require_approval: bool = False,
) -> Event:
    """Create an event owned by ``host`` and materialize its days."""
    event_type = EventType(event_type)
    cleaned_title = _clean(title)
    if not cleaned_title:
        raise ValidationFailed("Title is required")
    normalized_start = to_naive_utc(start_date)
    normalized_end = to_naive_utc(end_date)
    if event_type in TYPES_REQUIRING_END and normalized_end is None:
        raise ValidationFailed(f"end_date is required for {event_type.value} events")
    if event_type is EventType.WHOLE_DAY:
        normalized_end = None
    if normalized_end is not None and normalized_end < normalized_start:
        raise InvariantViolation("end_date must be on or after start_date")

    event = Event(
        host=host,
        title=cleaned_title,
        description=_clean(description),
        location=_clean(location),
        type=event_type,
        status=EventStatus.PLANNING,
        start_date=normalized_start,
        end_date=normalized_end,
        cover_image=_clean(cover_image),
        require_approval=bool(require_approval),
    )
    session.add(event)
    session.flush()
    create_days_for_event(session, event=event)
    logger.info("Created %s event %s for host %s", event_type.value, event.id, host.id)
    return event


def update_event(session: Session, event: Event, *, changes: dict[str, Any]) -> Event:
    """Apply editable field changes; dates and type are fixed after creation."""
    unknown = set(changes) - EDITABLE_EVENT_FIELDS
    if unknown:
        raise ValidationFailed(f"Cannot update fields: {', '.join(sorted(unknown))}")
    if "title" in changes:
        title = _clean(changes["title"])
        if not title:
            raise ValidationFailed("Title is required")
        event.title = title
    for field in ("description", "location", "cover_image"):
        if field in changes:
            setattr(event, field, _clean(changes[field]))
    if changes.get("status") is not None:
        event.status = EventStatus(changes["status"])
    if changes.get("require_approval") is not None:
        event.require_approval = bool(changes["require_approval"])
    event.last_modified = utcnow()
    session.add(event)
    session.flush()
    return event
