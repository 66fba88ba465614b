"""Event operations scoped to the acting user."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from . import crud
from .models import AttendeeStatus, Event, EventAttendee, User, event_cohosts
from .roles import EventContext, Role, authorize, resolve_role

logger = logging.getLogger("uvicorn.error")


@dataclass
class EventPage:
    items: list[EventContext]
    page: int
    per_page: int
    total: int

    @property
    def total_pages(self) -> int:
        if self.total == 0:
            return 1
        return (self.total + self.per_page - 1) // self.per_page


def create_event(session: Session, *, host: User, **fields: Any) -> EventContext:
    event = crud.create_event(session, host=host, **fields)
    return EventContext(event=event, user_id=host.id, role=Role.HOST)


def update_event(
    session: Session, *, event_id: str, actor: User, changes: dict[str, Any]
) -> EventContext:
    context = authorize(session, event_id, actor.id, "event.update")
    crud.update_event(session, context.event, changes=changes)
    logger.info("Event %s updated by %s", event_id, actor.id)
    return context


def delete_event(session: Session, *, event_id: str, actor: User) -> None:
    context = authorize(session, event_id, actor.id, "event.delete")
    session.delete(context.event)
    session.flush()
    logger.info("Event %s deleted by host %s", event_id, actor.id)


def event_detail(session: Session, *, event_id: str, actor: User) -> EventContext:
    return authorize(session, event_id, actor.id, "event.view")


def attendee_counts(session: Session, event_id: str) -> dict[str, int]:
    counts = {status.value.lower(): 0 for status in AttendeeStatus}
    rows = session.execute(
        select(EventAttendee.status, func.count())
        .where(EventAttendee.event_id == event_id)
        .group_by(EventAttendee.status)
    ).all()
    for status, count in rows:
        counts[AttendeeStatus(status).value.lower()] = count
    return counts


def can_view_location(context: EventContext) -> bool:
    if not context.event.require_approval or context.is_host_or_cohost:
        return True
    return context.attendee_status == AttendeeStatus.ACCEPTED


def event_preview(session: Session, *, event_id: str, actor: User) -> dict[str, Any]:
    """Summary shown to anyone holding the event link, members or not."""
    context = resolve_role(session, event_id, actor.id)
    event = context.event
    return {
        "id": event.id,
        "title": event.title,
        "description": event.description,
        "type": event.type.value,
        "status": event.status.value,
        "start_date": event.start_date.isoformat(),
        "end_date": event.end_date.isoformat() if event.end_date else None,
        "cover_image": event.cover_image,
        "location": event.location if can_view_location(context) else None,
        "location_hidden": not can_view_location(context),
        "require_approval": event.require_approval,
        "host": {"id": event.host.id, "name": event.host.name},
        "attendee_counts": attendee_counts(session, event.id),
        "role": context.role.value,
        "attendee_status": (
            context.attendee_status.value if context.attendee_status else None
        ),
    }


def list_my_events(
    session: Session, *, user: User, page: int = 1, per_page: int = 10
) -> EventPage:
    """Events the user hosts, co-hosts or has any attendee record on."""
    page = max(page, 1)
    per_page = max(per_page, 1)
    membership = or_(
        Event.host_id == user.id,
        Event.id.in_(
            select(event_cohosts.c.event_id).where(event_cohosts.c.user_id == user.id)
        ),
        Event.id.in_(
            select(EventAttendee.event_id).where(EventAttendee.user_id == user.id)
        ),
    )
    total = session.scalar(select(func.count()).select_from(Event).where(membership))
    events = session.scalars(
        select(Event)
        .where(membership)
        .order_by(Event.start_date.asc(), Event.id.asc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    ).all()
    items = [resolve_role(session, event.id, user.id) for event in events]
    return EventPage(items=items, page=page, per_page=per_page, total=total or 0)
