"""Co-host invitations: invite, accept, decline, revoke and removal."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from .crud import get_user_by_email
from .errors import Forbidden, InvariantViolation, NotFound, ValidationFailed
from .models import CoHostInvite, InviteStatus, User
from .roles import authorize, get_event
from .transitions import InviteAction, next_invite_status
from .utils import normalize_email, utcnow

logger = logging.getLogger("uvicorn.error")


@dataclass
class InviteResult:
    invite: CoHostInvite
    reused: bool


@dataclass
class CoHostRoster:
    cohosts: list[User]
    invites: list[CoHostInvite]


def _get_invite(session: Session, event_id: str, invite_id: str) -> CoHostInvite:
    invite = session.get(CoHostInvite, invite_id)
    if not invite or invite.event_id != event_id:
        raise NotFound("Invite not found")
    return invite


def _ensure_invitee(invite: CoHostInvite, actor: User) -> None:
    if invite.invited_user_id:
        if invite.invited_user_id != actor.id:
            raise Forbidden("This invite is for another user")
    elif normalize_email(actor.email) != invite.invited_email:
        raise Forbidden("This invite is for another email address")


def invite_cohost(
    session: Session, *, event_id: str, email: str, actor: User
) -> InviteResult:
    """Invite an email address to co-host; a pending invite is reused as-is."""
    context = authorize(session, event_id, actor.id, "cohosts.invite")
    event = context.event
    normalized = normalize_email(email)
    if not normalized:
        raise ValidationFailed("Email is required")
    if normalize_email(event.host.email) == normalized:
        raise InvariantViolation("Host is already managing this event")
    if any(normalize_email(user.email) == normalized for user in event.cohosts):
        raise InvariantViolation("User already a co-host")

    stmt = select(CoHostInvite).where(
        CoHostInvite.event_id == event_id,
        CoHostInvite.invited_email == normalized,
        CoHostInvite.status == InviteStatus.PENDING,
    )
    existing = session.scalars(stmt).first()
    if existing:
        return InviteResult(invite=existing, reused=True)

    invited_user = get_user_by_email(session, normalized)
    invite = CoHostInvite(
        event_id=event_id,
        inviter_id=actor.id,
        invited_email=normalized,
        invited_user_id=invited_user.id if invited_user else None,
        status=InviteStatus.PENDING,
    )
    session.add(invite)
    session.flush()
    logger.info("Co-host invite %s created for event %s by %s", invite.id, event_id, actor.id)
    return InviteResult(invite=invite, reused=False)


def accept_invite(
    session: Session, *, event_id: str, invite_id: str, actor: User
) -> CoHostInvite:
    """Accept an invite and join the event's co-hosts in the same transaction."""
    event = get_event(session, event_id)
    invite = _get_invite(session, event_id, invite_id)
    status = next_invite_status(
        invite.status, InviteAction.ACCEPT, message="Invite not pending"
    )
    _ensure_invitee(invite, actor)
    invite.status = status
    invite.responded_at = utcnow()
    if invite.invited_user_id is None:
        invite.invited_user_id = actor.id
    if not event.is_cohost(actor.id):
        event.cohosts.append(actor)
    session.add(invite)
    session.flush()
    logger.info("User %s accepted co-host invite %s for event %s", actor.id, invite.id, event_id)
    return invite


def decline_invite(
    session: Session, *, event_id: str, invite_id: str, actor: User
) -> CoHostInvite:
    get_event(session, event_id)
    invite = _get_invite(session, event_id, invite_id)
    status = next_invite_status(
        invite.status, InviteAction.DECLINE, message="Invite not pending"
    )
    _ensure_invitee(invite, actor)
    invite.status = status
    invite.responded_at = utcnow()
    if invite.invited_user_id is None:
        invite.invited_user_id = actor.id
    session.add(invite)
    session.flush()
    logger.info("User %s declined co-host invite %s for event %s", actor.id, invite.id, event_id)
    return invite


def revoke_invite(
    session: Session, *, event_id: str, invite_id: str, actor: User
) -> CoHostInvite:
    authorize(session, event_id, actor.id, "cohosts.revoke")
    invite = _get_invite(session, event_id, invite_id)
    invite.status = next_invite_status(
        invite.status, InviteAction.REVOKE, message="Cannot revoke non-pending invite"
    )
    invite.responded_at = utcnow()
    session.add(invite)
    session.flush()
    logger.info("Co-host invite %s for event %s revoked", invite.id, event_id)
    return invite


def remove_cohost(
    session: Session, *, event_id: str, user_id: str, actor: User
) -> None:
    """Drop a co-host and mark their latest accepted invite as removed."""
    context = authorize(session, event_id, actor.id, "cohosts.remove")
    event = context.event
    if user_id == event.host_id:
        raise InvariantViolation("Cannot remove host")
    cohost = next((user for user in event.cohosts if user.id == user_id), None)
    if cohost is None:
        raise NotFound("User not a co-host")

    event.cohosts.remove(cohost)
    stmt = (
        select(CoHostInvite)
        .where(
            CoHostInvite.event_id == event_id,
            CoHostInvite.invited_user_id == user_id,
            CoHostInvite.status == InviteStatus.ACCEPTED,
        )
        .order_by(CoHostInvite.created_at.desc())
    )
    latest = session.scalars(stmt).first()
    if latest:
        latest.status = next_invite_status(latest.status, InviteAction.REMOVE)
        latest.responded_at = utcnow()
        session.add(latest)
    session.flush()
    logger.info("User %s removed as co-host of event %s", user_id, event_id)


def list_event_invites(
    session: Session, *, event_id: str, actor: User
) -> CoHostRoster:
    context = authorize(session, event_id, actor.id, "cohosts.view")
    stmt = (
        select(CoHostInvite)
        .where(CoHostInvite.event_id == event_id)
        .order_by(CoHostInvite.created_at.desc())
    )
    return CoHostRoster(
        cohosts=list(context.event.cohosts),
        invites=list(session.scalars(stmt).all()),
    )


def list_my_invites(session: Session, *, actor: User) -> Sequence[CoHostInvite]:
    """Return every invite addressed to the actor's email, newest first."""
    stmt = (
        select(CoHostInvite)
        .options(joinedload(CoHostInvite.event), joinedload(CoHostInvite.inviter))
        .where(CoHostInvite.invited_email == normalize_email(actor.email))
        .order_by(CoHostInvite.created_at.desc())
    )
    return session.scalars(stmt).all()
