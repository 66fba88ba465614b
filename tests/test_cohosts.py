from __future__ import annotations

from datetime import datetime

import pytest

from planmate.cohosts import (
    accept_invite,
    decline_invite,
    invite_cohost,
    list_event_invites,
    list_my_invites,
    remove_cohost,
    revoke_invite,
)
from planmate.errors import (
    Forbidden,
    InvalidState,
    InvariantViolation,
    NotFound,
    ValidationFailed,
)
from planmate.models import InviteStatus
from planmate.roles import Role, resolve_role


def test_invite_accept_remove_round_trip(session, make_user, make_event):
    host, friend = make_user(), make_user()
    event = make_event(host)

    result = invite_cohost(session, event_id=event.id, email=friend.email, actor=host)
    session.commit()
    invite = result.invite
    assert result.reused is False
    assert invite.status is InviteStatus.PENDING
    assert invite.invited_user_id == friend.id
    assert resolve_role(session, event.id, friend.id).role is Role.NONE

    accept_invite(session, event_id=event.id, invite_id=invite.id, actor=friend)
    session.commit()
    assert invite.status is InviteStatus.ACCEPTED
    assert invite.responded_at is not None
    assert resolve_role(session, event.id, friend.id).role is Role.COHOST

    remove_cohost(session, event_id=event.id, user_id=friend.id, actor=host)
    session.commit()
    assert invite.status is InviteStatus.REMOVED
    assert resolve_role(session, event.id, friend.id).role is Role.NONE


def test_pending_invite_is_reused(session, make_user, make_event):
    host = make_user()
    event = make_event(host)

    first = invite_cohost(session, event_id=event.id, email="Pal@Example.com", actor=host)
    session.commit()
    second = invite_cohost(session, event_id=event.id, email="pal@example.com ", actor=host)

    assert second.reused is True
    assert second.invite.id == first.invite.id
    assert first.invite.invited_email == "pal@example.com"


def test_invite_guards(session, make_user, make_event):
    host, friend, guest = make_user(), make_user(), make_user()
    event = make_event(host)
    event.cohosts.append(friend)
    session.commit()

    with pytest.raises(ValidationFailed, match="Email is required"):
        invite_cohost(session, event_id=event.id, email="  ", actor=host)
    with pytest.raises(InvariantViolation, match="Host is already managing"):
        invite_cohost(session, event_id=event.id, email=host.email.upper(), actor=host)
    with pytest.raises(InvariantViolation, match="already a co-host"):
        invite_cohost(session, event_id=event.id, email=friend.email, actor=host)
    with pytest.raises(Forbidden):
        invite_cohost(session, event_id=event.id, email="x@example.com", actor=guest)


def test_cohost_can_invite_but_not_revoke(session, make_user, make_event):
    host, cohost = make_user(), make_user()
    event = make_event(host)
    event.cohosts.append(cohost)
    session.commit()

    invite = invite_cohost(
        session, event_id=event.id, email="new@example.com", actor=cohost
    ).invite
    session.commit()
    assert invite.inviter_id == cohost.id

    with pytest.raises(Forbidden):
        revoke_invite(session, event_id=event.id, invite_id=invite.id, actor=cohost)
    revoked = revoke_invite(session, event_id=event.id, invite_id=invite.id, actor=host)
    assert revoked.status is InviteStatus.REVOKED

    with pytest.raises(InvalidState, match="Cannot revoke non-pending invite"):
        revoke_invite(session, event_id=event.id, invite_id=invite.id, actor=host)


def test_only_the_invitee_may_respond(session, make_user, make_event):
    host, friend, intruder = make_user(), make_user(), make_user()
    event = make_event(host)
    invite = invite_cohost(session, event_id=event.id, email=friend.email, actor=host).invite
    session.commit()

    with pytest.raises(Forbidden):
        accept_invite(session, event_id=event.id, invite_id=invite.id, actor=intruder)
    with pytest.raises(Forbidden):
        decline_invite(session, event_id=event.id, invite_id=invite.id, actor=intruder)
    assert invite.status is InviteStatus.PENDING


def test_unregistered_invitee_is_matched_by_email(session, make_user, make_event):
    host = make_user()
    event = make_event(host)
    invite = invite_cohost(
        session, event_id=event.id, email="Later@Example.com", actor=host
    ).invite
    session.commit()
    assert invite.invited_user_id is None

    latecomer = make_user(email="later@example.com")
    mine = list_my_invites(session, actor=latecomer)
    assert [row.id for row in mine] == [invite.id]
    assert mine[0].event.title == event.title

    accept_invite(session, event_id=event.id, invite_id=invite.id, actor=latecomer)
    session.commit()
    assert invite.invited_user_id == latecomer.id
    assert event.is_cohost(latecomer.id)


def test_decline_and_respond_twice(session, make_user, make_event):
    host, friend = make_user(), make_user()
    event = make_event(host)
    invite = invite_cohost(session, event_id=event.id, email=friend.email, actor=host).invite
    session.commit()

    declined = decline_invite(session, event_id=event.id, invite_id=invite.id, actor=friend)
    session.commit()
    assert declined.status is InviteStatus.DECLINED
    assert not event.is_cohost(friend.id)

    with pytest.raises(InvalidState, match="Invite not pending"):
        accept_invite(session, event_id=event.id, invite_id=invite.id, actor=friend)


def test_invite_must_belong_to_event(session, make_user, make_event):
    host, friend = make_user(), make_user()
    event = make_event(host)
    other = make_event(host, title="Other")
    invite = invite_cohost(session, event_id=event.id, email=friend.email, actor=host).invite
    session.commit()

    with pytest.raises(NotFound, match="Invite not found"):
        accept_invite(session, event_id=other.id, invite_id=invite.id, actor=friend)


def test_removal_marks_latest_accepted_invite(session, make_user, make_event):
    host, friend = make_user(), make_user()
    event = make_event(host)

    first = invite_cohost(session, event_id=event.id, email=friend.email, actor=host).invite
    first.created_at = datetime(2025, 1, 1)
    accept_invite(session, event_id=event.id, invite_id=first.id, actor=friend)
    remove_cohost(session, event_id=event.id, user_id=friend.id, actor=host)
    session.commit()

    second = invite_cohost(session, event_id=event.id, email=friend.email, actor=host).invite
    second.created_at = datetime(2025, 2, 1)
    accept_invite(session, event_id=event.id, invite_id=second.id, actor=friend)
    session.commit()
    assert first.status is InviteStatus.REMOVED
    assert second.status is InviteStatus.ACCEPTED

    remove_cohost(session, event_id=event.id, user_id=friend.id, actor=host)
    session.commit()
    assert second.status is InviteStatus.REMOVED

    roster = list_event_invites(session, event_id=event.id, actor=host)
    assert roster.cohosts == []
    assert [row.id for row in roster.invites] == [second.id, first.id]


def test_remove_guards(session, make_user, make_event):
    host, cohost, stranger = make_user(), make_user(), make_user()
    event = make_event(host)
    event.cohosts.append(cohost)
    session.commit()

    with pytest.raises(InvariantViolation, match="Cannot remove host"):
        remove_cohost(session, event_id=event.id, user_id=host.id, actor=host)
    with pytest.raises(NotFound, match="User not a co-host"):
        remove_cohost(session, event_id=event.id, user_id=stranger.id, actor=host)
    with pytest.raises(Forbidden):
        remove_cohost(session, event_id=event.id, user_id=cohost.id, actor=cohost)

    # Co-hosts added without an invite can still be removed.
    remove_cohost(session, event_id=event.id, user_id=cohost.id, actor=host)
    assert not event.is_cohost(cohost.id)
