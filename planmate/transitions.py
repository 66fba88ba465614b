"""Status transition tables for attendee records and co-host invites.

Each entity has exactly one function mapping ``(current, action)`` to the next
status; every write of an attendee or invite status goes through it.
"""

from __future__ import annotations

import enum

from .errors import InvalidState
from .models import AttendeeStatus, InviteStatus


class AttendeeAction(str, enum.Enum):
    REQUEST = "REQUEST"  # join an approval-gated event
    ADMIT = "ADMIT"  # join an open event
    APPROVE = "APPROVE"
    DECLINE = "DECLINE"


class InviteAction(str, enum.Enum):
    ACCEPT = "ACCEPT"
    DECLINE = "DECLINE"
    REVOKE = "REVOKE"
    REMOVE = "REMOVE"


# ``None`` stands for "no attendee record yet".
ATTENDEE_TRANSITIONS: dict[
    tuple[AttendeeStatus | None, AttendeeAction], AttendeeStatus
] = {
    (None, AttendeeAction.REQUEST): AttendeeStatus.PENDING,
    (None, AttendeeAction.ADMIT): AttendeeStatus.ACCEPTED,
    (AttendeeStatus.DECLINED, AttendeeAction.REQUEST): AttendeeStatus.PENDING,
    (AttendeeStatus.DECLINED, AttendeeAction.ADMIT): AttendeeStatus.ACCEPTED,
    (AttendeeStatus.PENDING, AttendeeAction.APPROVE): AttendeeStatus.ACCEPTED,
    (AttendeeStatus.PENDING, AttendeeAction.DECLINE): AttendeeStatus.DECLINED,
}

INVITE_TRANSITIONS: dict[tuple[InviteStatus, InviteAction], InviteStatus] = {
    (InviteStatus.PENDING, InviteAction.ACCEPT): InviteStatus.ACCEPTED,
    (InviteStatus.PENDING, InviteAction.DECLINE): InviteStatus.DECLINED,
    (InviteStatus.PENDING, InviteAction.REVOKE): InviteStatus.REVOKED,
    (InviteStatus.ACCEPTED, InviteAction.REMOVE): InviteStatus.REMOVED,
}


def can_transition_attendee(
    current: AttendeeStatus | None, action: AttendeeAction
) -> bool:
    return (current, action) in ATTENDEE_TRANSITIONS


def next_attendee_status(
    current: AttendeeStatus | None,
    action: AttendeeAction,
    *,
    message: str | None = None,
) -> AttendeeStatus:
    try:
        return ATTENDEE_TRANSITIONS[(current, action)]
    except KeyError:
        label = current.value if current else "none"
        raise InvalidState(
            message or f"Cannot {action.value.lower()} attendee in state {label}"
        ) from None


def next_invite_status(
    current: InviteStatus,
    action: InviteAction,
    *,
    message: str | None = None,
) -> InviteStatus:
    try:
        return INVITE_TRANSITIONS[(current, action)]
    except KeyError:
        raise InvalidState(
            message or f"Cannot {action.value.lower()} invite in state {current.value}"
        ) from None
