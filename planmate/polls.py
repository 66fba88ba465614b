"""Poll engine: creation, visibility, eligibility, voting and result disclosure.

Poll settings are fixed when a poll is created. ``PollConfig`` is the value
object callers pass in, and ``PollUpdate`` (the only input ``update_poll``
accepts) has no settings field, so nothing after creation can change who may
vote or who sees counts.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from .errors import Forbidden, InvalidState, NotFound, ValidationFailed
from .models import (
    AttendeeStatus,
    EventAttendee,
    Poll,
    PollOption,
    PollResponse,
    PollSettings,
    PollStatus,
    ResultVisibility,
    User,
    VoterPermission,
)
from .roles import authorize, resolve_role

logger = logging.getLogger("uvicorn.error")


@dataclass(frozen=True)
class PollConfig:
    allow_multiple_selections: bool = False
    voter_permission: VoterPermission = VoterPermission.ALL_ATTENDEES
    result_visibility: ResultVisibility = ResultVisibility.VISIBLE_TO_ALL

    @classmethod
    def from_row(cls, row: PollSettings | None) -> PollConfig:
        if row is None:
            return cls()
        return cls(
            allow_multiple_selections=bool(row.allow_multiple_selections),
            voter_permission=VoterPermission(row.voter_permission),
            result_visibility=ResultVisibility(row.result_visibility),
        )

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["voter_permission"] = self.voter_permission.value
        data["result_visibility"] = self.result_visibility.value
        return data


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


@dataclass(frozen=True)
class PollUpdate:
    """Fields left as ``UNSET`` are not touched; ``None`` clears the description."""

    title: str | None = UNSET
    description: str | None = UNSET
    status: PollStatus | None = UNSET


def is_poll_visible_to_user(
    voter_permission: VoterPermission,
    is_host_or_cohost: bool,
    attendee_status: AttendeeStatus | None,
) -> bool:
    if is_host_or_cohost:
        return True
    if voter_permission == VoterPermission.HOSTS_ONLY:
        return False
    if voter_permission == VoterPermission.ACCEPTED_ATTENDEES:
        return attendee_status == AttendeeStatus.ACCEPTED
    # Any attendee record counts, including declined ones.
    return attendee_status is not None


def can_see_result_counts(
    result_visibility: ResultVisibility,
    is_host_or_cohost: bool,
    has_voted: bool,
    is_closed: bool,
) -> bool:
    if result_visibility == ResultVisibility.VISIBLE_TO_ALL:
        return True
    if result_visibility == ResultVisibility.VISIBLE_TO_HOSTS_ONLY:
        return is_host_or_cohost
    if result_visibility == ResultVisibility.VISIBLE_AFTER_VOTING:
        return has_voted
    if result_visibility == ResultVisibility.HIDDEN_UNTIL_CLOSED:
        return is_closed
    return False


def check_voting_eligibility(
    session: Session,
    voter_permission: VoterPermission,
    is_host_or_cohost: bool,
    event_id: str,
    user_id: str,
) -> str | None:
    """Return ``None`` when the user may vote, otherwise the reason they may not."""
    if is_host_or_cohost:
        return None
    if voter_permission == VoterPermission.HOSTS_ONLY:
        return "Voting restricted to hosts"
    attendee = session.get(EventAttendee, (event_id, user_id))
    if voter_permission == VoterPermission.ACCEPTED_ATTENDEES:
        if attendee is None or attendee.status != AttendeeStatus.ACCEPTED:
            return "Not eligible to vote"
        return None
    if attendee is None:
        return "Not invited to event"
    return None


def _get_poll(session: Session, event_id: str, poll_id: str) -> Poll:
    poll = session.get(Poll, poll_id)
    if not poll or poll.event_id != event_id:
        raise NotFound("Poll not found")
    return poll


def create_poll(
    session: Session,
    *,
    event_id: str,
    actor: User,
    title: str,
    options: Sequence[str],
    description: str | None = None,
    config: PollConfig | None = None,
) -> Poll:
    authorize(session, event_id, actor.id, "polls.create")
    cleaned_title = (title or "").strip()
    if not cleaned_title:
        raise ValidationFailed("Title is required")
    texts = [(text or "").strip() for text in options]
    if not texts:
        raise ValidationFailed("At least one option is required")
    if any(not text for text in texts):
        raise ValidationFailed("Option text cannot be empty")

    config = config or PollConfig()
    poll = Poll(
        event_id=event_id,
        creator_id=actor.id,
        title=cleaned_title,
        description=(description or "").strip() or None,
        status=PollStatus.OPEN,
        settings=PollSettings(
            allow_multiple_selections=config.allow_multiple_selections,
            voter_permission=config.voter_permission,
            result_visibility=config.result_visibility,
        ),
        options=[PollOption(text=text, order=index) for index, text in enumerate(texts)],
    )
    session.add(poll)
    session.flush()
    logger.info("Created poll %s on event %s with %d options", poll.id, event_id, len(texts))
    return poll


def update_poll(
    session: Session,
    *,
    event_id: str,
    poll_id: str,
    actor: User,
    changes: PollUpdate,
) -> Poll:
    """Change a poll's title, description or status."""
    authorize(session, event_id, actor.id, "polls.update")
    poll = _get_poll(session, event_id, poll_id)
    if changes.title is not UNSET:
        title = (changes.title or "").strip()
        if not title:
            raise ValidationFailed("Title is required")
        poll.title = title
    if changes.description is not UNSET:
        poll.description = (changes.description or "").strip() or None
    if changes.status not in (UNSET, None) and changes.status != poll.status:
        poll.status = PollStatus(changes.status)
        logger.info("Poll %s on event %s is now %s", poll.id, event_id, poll.status.value)
    session.add(poll)
    session.flush()
    return poll


def vote(
    session: Session,
    *,
    poll: Poll,
    user_id: str,
    option_ids: Sequence[str],
    allow_multiple: bool,
) -> list[str]:
    """Replace the user's selections on ``poll`` and return them."""
    if poll.status != PollStatus.OPEN:
        raise InvalidState("Poll is closed")
    if not option_ids:
        raise ValidationFailed("Select at least one option")
    valid_ids = {option.id for option in poll.options}
    if any(option_id not in valid_ids for option_id in option_ids):
        raise ValidationFailed("Invalid option selection")
    if not allow_multiple and len(option_ids) != 1:
        raise ValidationFailed("Multiple selections not allowed")

    selected = list(dict.fromkeys(option_ids))
    mine = (PollResponse.poll_id == poll.id, PollResponse.user_id == user_id)
    if allow_multiple:
        session.execute(
            delete(PollResponse).where(
                *mine, PollResponse.poll_option_id.not_in(selected)
            )
        )
    else:
        session.execute(delete(PollResponse).where(*mine))
    # Options the user already holds hit the unique key and are left as they are.
    keep = sqlite_insert(PollResponse.__table__).on_conflict_do_nothing(
        index_elements=["user_id", "poll_option_id"]
    )
    for option_id in selected:
        session.execute(
            keep.values(poll_id=poll.id, poll_option_id=option_id, user_id=user_id)
        )
    session.flush()
    return selected


def cast_vote(
    session: Session,
    *,
    event_id: str,
    poll_id: str,
    actor: User,
    option_ids: Sequence[str],
) -> list[str]:
    context = resolve_role(session, event_id, actor.id)
    poll = _get_poll(session, event_id, poll_id)
    if poll.status != PollStatus.OPEN:
        raise InvalidState("Poll is closed")
    config = PollConfig.from_row(poll.settings)
    reason = check_voting_eligibility(
        session,
        config.voter_permission,
        context.is_host_or_cohost,
        event_id,
        actor.id,
    )
    if reason:
        raise Forbidden(reason)
    selected = vote(
        session,
        poll=poll,
        user_id=actor.id,
        option_ids=option_ids,
        allow_multiple=config.allow_multiple_selections,
    )
    logger.info("User %s voted on poll %s (%d options)", actor.id, poll.id, len(selected))
    return selected


def format_poll(
    poll: Poll,
    *,
    counts: dict[str, int],
    my_selections: Sequence[str],
    is_host_or_cohost: bool,
) -> dict[str, Any]:
    """Serialize a poll for one viewer; hidden counts are omitted, not zeroed."""
    config = PollConfig.from_row(poll.settings)
    has_voted = bool(my_selections)
    show_counts = can_see_result_counts(
        config.result_visibility,
        is_host_or_cohost,
        has_voted,
        poll.status != PollStatus.OPEN,
    )
    options = []
    for option in poll.options:
        entry: dict[str, Any] = {
            "id": option.id,
            "text": option.text,
            "order": option.order,
        }
        if show_counts:
            entry["count"] = counts.get(option.id, 0)
        options.append(entry)
    return {
        "id": poll.id,
        "event_id": poll.event_id,
        "creator_id": poll.creator_id,
        "title": poll.title,
        "description": poll.description,
        "status": PollStatus(poll.status).value,
        "created_at": poll.created_at.isoformat() if poll.created_at else None,
        "settings": config.as_dict(),
        "options": options,
        "results_visible": show_counts,
        "has_voted": has_voted,
        "my_selections": list(my_selections),
    }


def list_polls(session: Session, *, event_id: str, actor: User) -> list[dict[str, Any]]:
    """Return the event's polls visible to ``actor``, newest first."""
    context = authorize(
        session, event_id, actor.id, "polls.list", message="Not invited to event"
    )
    polls = session.scalars(
        select(Poll)
        .where(Poll.event_id == event_id)
        .order_by(Poll.created_at.desc(), Poll.id.desc())
    ).all()
    visible = [
        poll
        for poll in polls
        if is_poll_visible_to_user(
            PollConfig.from_row(poll.settings).voter_permission,
            context.is_host_or_cohost,
            context.attendee_status,
        )
    ]
    if not visible:
        return []

    poll_ids = [poll.id for poll in visible]
    counts: dict[str, int] = dict(
        session.execute(
            select(PollResponse.poll_option_id, func.count(PollResponse.id))
            .where(PollResponse.poll_id.in_(poll_ids))
            .group_by(PollResponse.poll_option_id)
        ).all()
    )
    selections: dict[str, list[str]] = {}
    for poll_id, option_id in session.execute(
        select(PollResponse.poll_id, PollResponse.poll_option_id).where(
            PollResponse.poll_id.in_(poll_ids), PollResponse.user_id == actor.id
        )
    ):
        selections.setdefault(poll_id, []).append(option_id)

    return [
        format_poll(
            poll,
            counts=counts,
            my_selections=selections.get(poll.id, []),
            is_host_or_cohost=context.is_host_or_cohost,
        )
        for poll in visible
    ]
