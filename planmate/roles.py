"""Role resolution and the event capability table."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from sqlalchemy.orm import Session

from .errors import Forbidden, NotFound
from .models import AttendeeStatus, Event, EventAttendee


class Role(str, enum.Enum):
    HOST = "host"
    COHOST = "cohost"
    ATTENDEE = "attendee"
    NONE = "none"


HOST_ONLY = frozenset({Role.HOST})
HOSTS = frozenset({Role.HOST, Role.COHOST})
MEMBERS = frozenset({Role.HOST, Role.COHOST, Role.ATTENDEE})

# Operation name -> roles allowed to perform it.
CAPABILITIES: dict[str, frozenset[Role]] = {
    "event.view": MEMBERS,
    "event.update": HOSTS,
    "event.delete": HOST_ONLY,
    "attendees.view": HOSTS,
    "attendees.decide": HOSTS,
    "cohosts.invite": HOSTS,
    "cohosts.view": HOSTS,
    "cohosts.revoke": HOST_ONLY,
    "cohosts.remove": HOST_ONLY,
    "days.view": MEMBERS,
    "activities.create": HOSTS,
    "activities.delete": HOSTS,
    "polls.list": MEMBERS,
    "polls.create": HOSTS,
    "polls.update": HOSTS,
}


@dataclass(frozen=True)
class EventContext:
    """The actor's standing on one event."""

    event: Event
    user_id: str
    role: Role
    attendee_status: AttendeeStatus | None = None

    @property
    def is_host_or_cohost(self) -> bool:
        return self.role in HOSTS

    @property
    def is_host(self) -> bool:
        return self.role is Role.HOST


def get_event(session: Session, event_id: str) -> Event:
    event = session.get(Event, event_id)
    if not event:
        raise NotFound("Event not found")
    return event


def resolve_role(session: Session, event_id: str, user_id: str) -> EventContext:
    """Return the user's role on the event; the first matching rule wins.

    An attendee record of any status grants the attendee role.
    """

    event = get_event(session, event_id)
    attendee = session.get(EventAttendee, (event_id, user_id))
    attendee_status = attendee.status if attendee else None
    if event.host_id == user_id:
        role = Role.HOST
    elif event.is_cohost(user_id):
        role = Role.COHOST
    elif attendee is not None:
        role = Role.ATTENDEE
    else:
        role = Role.NONE
    return EventContext(
        event=event, user_id=user_id, role=role, attendee_status=attendee_status
    )


def require(context: EventContext, operation: str, *, message: str = "Forbidden") -> None:
    allowed = CAPABILITIES[operation]
    if context.role not in allowed:
        raise Forbidden(message)


def authorize(
    session: Session,
    event_id: str,
    user_id: str,
    operation: str,
    *,
    message: str = "Forbidden",
) -> EventContext:
    """Resolve the actor's role and check it against ``CAPABILITIES``."""

    context = resolve_role(session, event_id, user_id)
    require(context, operation, message=message)
    return context
