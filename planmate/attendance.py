"""Attendee admission: joining events and host decisions on join requests."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from sqlalchemy import select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from .errors import InvariantViolation, ValidationFailed
from .models import AttendeeStatus, EventAttendee, User
from .roles import authorize, get_event
from .transitions import (
    AttendeeAction,
    can_transition_attendee,
    next_attendee_status,
)
from .utils import utcnow

logger = logging.getLogger("uvicorn.error")

DECISION_ACTIONS = {
    "APPROVE": AttendeeAction.APPROVE,
    "DECLINE": AttendeeAction.DECLINE,
}


@dataclass
class JoinResult:
    attendee: EventAttendee
    reused: bool


@dataclass
class BulkDecisionResult:
    accepted: list[str] = field(default_factory=list)
    declined: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


@dataclass
class AttendeeRoster:
    require_approval: bool
    attendees: list[EventAttendee]

    @property
    def groups(self) -> dict[str, list[EventAttendee]]:
        grouped: dict[str, list[EventAttendee]] = {
            status.value.lower(): [] for status in AttendeeStatus
        }
        for attendee in self.attendees:
            grouped[attendee.status.value.lower()].append(attendee)
        return grouped


def _decision_action(decision: str) -> AttendeeAction:
    try:
        return DECISION_ACTIONS[str(getattr(decision, "value", decision)).upper()]
    except KeyError:
        raise ValidationFailed("Decision must be APPROVE or DECLINE") from None


def join_event(session: Session, *, event_id: str, user: User) -> JoinResult:
    """Join an event, or return the existing pending/accepted record unchanged."""
    event = get_event(session, event_id)
    if event.host_id == user.id:
        raise InvariantViolation("Host is already part of the event")

    action = AttendeeAction.REQUEST if event.require_approval else AttendeeAction.ADMIT
    key = (event_id, user.id)
    attendee = session.get(EventAttendee, key)
    if attendee is None:
        status = next_attendee_status(None, action)
        inserted = session.execute(
            sqlite_insert(EventAttendee.__table__)
            .values(event_id=event_id, user_id=user.id, status=status)
            .on_conflict_do_nothing(index_elements=["event_id", "user_id"])
        ).rowcount
        attendee = session.get(EventAttendee, key, populate_existing=True)
        if inserted:
            logger.info("User %s joined event %s as %s", user.id, event_id, status.value)
            return JoinResult(attendee=attendee, reused=False)

    if attendee.status in {AttendeeStatus.ACCEPTED, AttendeeStatus.PENDING}:
        return JoinResult(attendee=attendee, reused=True)

    status = next_attendee_status(attendee.status, action)
    attendee.status = status
    attendee.last_modified = utcnow()
    session.add(attendee)
    session.flush()
    logger.info("User %s joined event %s as %s", user.id, event_id, status.value)
    return JoinResult(attendee=attendee, reused=False)


def list_pending(
    session: Session, *, event_id: str, actor: User
) -> Sequence[EventAttendee]:
    authorize(session, event_id, actor.id, "attendees.view")
    stmt = (
        select(EventAttendee)
        .where(
            EventAttendee.event_id == event_id,
            EventAttendee.status == AttendeeStatus.PENDING,
        )
        .order_by(EventAttendee.created_at.asc())
    )
    return session.scalars(stmt).all()


def list_attendees(session: Session, *, event_id: str, actor: User) -> AttendeeRoster:
    context = authorize(session, event_id, actor.id, "attendees.view")
    stmt = (
        select(EventAttendee)
        .where(EventAttendee.event_id == event_id)
        .order_by(EventAttendee.created_at.asc())
    )
    return AttendeeRoster(
        require_approval=context.event.require_approval,
        attendees=list(session.scalars(stmt).all()),
    )


def decide(
    session: Session,
    *,
    event_id: str,
    target_user_id: str,
    decision: str,
    actor: User,
) -> EventAttendee:
    """Approve or decline a single pending attendee."""
    authorize(session, event_id, actor.id, "attendees.decide")
    action = _decision_action(decision)
    attendee = session.get(EventAttendee, (event_id, target_user_id))
    attendee_status = next_attendee_status(
        attendee.status if attendee else None,
        action,
        message="Attendee not found or not pending",
    )
    attendee.status = attendee_status
    attendee.last_modified = utcnow()
    session.add(attendee)
    session.flush()
    logger.info(
        "Attendee %s on event %s set to %s by %s",
        target_user_id,
        event_id,
        attendee.status.value,
        actor.id,
    )
    return attendee


def bulk_decide(
    session: Session,
    *,
    event_id: str,
    decisions: Iterable[tuple[str, str]],
    actor: User,
) -> BulkDecisionResult:
    """Apply many decisions; records that are not pending are reported as skipped.

    Later entries for the same user replace earlier ones.
    """
    authorize(session, event_id, actor.id, "attendees.decide")
    requested: dict[str, AttendeeAction] = {}
    for user_id, decision in decisions:
        requested[user_id] = _decision_action(decision)

    result = BulkDecisionResult()
    if not requested:
        return result

    current = {
        attendee.user_id: attendee.status
        for attendee in session.scalars(
            select(EventAttendee).where(
                EventAttendee.event_id == event_id,
                EventAttendee.user_id.in_(list(requested)),
            )
        )
    }
    for user_id, action in requested.items():
        status = current.get(user_id)
        if status is None or not can_transition_attendee(status, action):
            result.skipped.append(user_id)
        elif next_attendee_status(status, action) is AttendeeStatus.ACCEPTED:
            result.accepted.append(user_id)
        else:
            result.declined.append(user_id)

    now = utcnow()
    for user_ids, status in (
        (result.accepted, AttendeeStatus.ACCEPTED),
        (result.declined, AttendeeStatus.DECLINED),
    ):
        if not user_ids:
            continue
        session.execute(
            update(EventAttendee)
            .where(
                EventAttendee.event_id == event_id,
                EventAttendee.user_id.in_(user_ids),
                EventAttendee.status == AttendeeStatus.PENDING,
            )
            .values(status=status, last_modified=now)
        )
    session.flush()
    logger.info(
        "Bulk decision on event %s by %s: %d accepted, %d declined, %d skipped",
        event_id,
        actor.id,
        len(result.accepted),
        len(result.declined),
        len(result.skipped),
    )
    return result
