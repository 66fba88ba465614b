"""SQLAlchemy models for planmate."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

from .utils import utcnow

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return utcnow()


def _status(enum_cls: type[enum.Enum]) -> Enum:
    return Enum(enum_cls, native_enum=False, length=32, validate_strings=True)


class EventType(str, enum.Enum):
    ONE_OFF = "ONE_OFF"
    WHOLE_DAY = "WHOLE_DAY"
    MULTI_DAY = "MULTI_DAY"


class EventStatus(str, enum.Enum):
    PLANNING = "PLANNING"
    UPCOMING = "UPCOMING"
    LIVE = "LIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class AttendeeStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"


class InviteStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    REVOKED = "REVOKED"
    REMOVED = "REMOVED"


class PollStatus(str, enum.Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class VoterPermission(str, enum.Enum):
    ALL_ATTENDEES = "ALL_ATTENDEES"
    ACCEPTED_ATTENDEES = "ACCEPTED_ATTENDEES"
    HOSTS_ONLY = "HOSTS_ONLY"


class ResultVisibility(str, enum.Enum):
    VISIBLE_TO_ALL = "VISIBLE_TO_ALL"
    VISIBLE_TO_HOSTS_ONLY = "VISIBLE_TO_HOSTS_ONLY"
    VISIBLE_AFTER_VOTING = "VISIBLE_AFTER_VOTING"
    HIDDEN_UNTIL_CLOSED = "HIDDEN_UNTIL_CLOSED"


event_cohosts = Table(
    "event_cohosts",
    Base.metadata,
    Column(
        "event_id",
        String(36),
        ForeignKey("events.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "user_id",
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(120), nullable=False)
    api_token = Column(String(128), nullable=False, unique=True)
    created_at = Column(DateTime, default=_now, nullable=False)


class Event(Base):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=_uuid)
    host_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    type = Column(_status(EventType), nullable=False)
    status = Column(_status(EventStatus), nullable=False, default=EventStatus.PLANNING)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=True)
    cover_image = Column(String(512), nullable=True)
    require_approval = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)
    last_modified = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    host = relationship("User", foreign_keys=[host_id])
    cohosts = relationship("User", secondary=event_cohosts, order_by="User.email")
    attendees = relationship(
        "EventAttendee", back_populates="event", cascade="all, delete-orphan"
    )
    invites = relationship(
        "CoHostInvite", back_populates="event", cascade="all, delete-orphan"
    )
    days = relationship(
        "Day",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="Day.date",
    )
    polls = relationship("Poll", back_populates="event", cascade="all, delete-orphan")

    def is_cohost(self, user_id: str) -> bool:
        return any(user.id == user_id for user in self.cohosts)


class EventAttendee(Base):
    __tablename__ = "event_attendees"

    event_id = Column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), primary_key=True
    )
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    status = Column(_status(AttendeeStatus), nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)
    last_modified = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    event = relationship("Event", back_populates="attendees")
    user = relationship("User")


class CoHostInvite(Base):
    __tablename__ = "cohost_invites"

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    inviter_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    invited_email = Column(String(255), nullable=False, index=True)
    invited_user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    status = Column(
        _status(InviteStatus), nullable=False, default=InviteStatus.PENDING
    )
    created_at = Column(DateTime, default=_now, nullable=False)
    responded_at = Column(DateTime, nullable=True)

    event = relationship("Event", back_populates="invites")
    inviter = relationship("User", foreign_keys=[inviter_id])
    invited_user = relationship("User", foreign_keys=[invited_user_id])


class Day(Base):
    __tablename__ = "days"
    __table_args__ = (UniqueConstraint("event_id", "date", name="uq_days_event_date"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    date = Column(DateTime, nullable=False)

    event = relationship("Event", back_populates="days")
    activities = relationship(
        "Activity",
        back_populates="day",
        cascade="all, delete-orphan",
        order_by="Activity.start_time",
    )


class Activity(Base):
    __tablename__ = "activities"

    id = Column(String(36), primary_key=True, default=_uuid)
    day_id = Column(
        String(36), ForeignKey("days.id", ondelete="CASCADE"), nullable=False
    )
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)

    day = relationship("Day", back_populates="activities")


class Poll(Base):
    __tablename__ = "polls"

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    creator_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(_status(PollStatus), nullable=False, default=PollStatus.OPEN)
    created_at = Column(DateTime, default=_now, nullable=False)
    last_modified = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    event = relationship("Event", back_populates="polls")
    creator = relationship("User")
    settings = relationship(
        "PollSettings",
        back_populates="poll",
        uselist=False,
        cascade="all, delete-orphan",
    )
    options = relationship(
        "PollOption",
        back_populates="poll",
        cascade="all, delete-orphan",
        order_by="PollOption.order",
    )


class PollSettings(Base):
    """Per-poll settings row, written once when the poll is created."""

    __tablename__ = "poll_settings"

    poll_id = Column(
        String(36), ForeignKey("polls.id", ondelete="CASCADE"), primary_key=True
    )
    allow_multiple_selections = Column(Boolean, default=False, nullable=False)
    voter_permission = Column(
        _status(VoterPermission),
        nullable=False,
        default=VoterPermission.ALL_ATTENDEES,
    )
    result_visibility = Column(
        _status(ResultVisibility),
        nullable=False,
        default=ResultVisibility.VISIBLE_TO_ALL,
    )

    poll = relationship("Poll", back_populates="settings")


class PollOption(Base):
    __tablename__ = "poll_options"

    id = Column(String(36), primary_key=True, default=_uuid)
    poll_id = Column(
        String(36), ForeignKey("polls.id", ondelete="CASCADE"), nullable=False
    )
    text = Column(String(255), nullable=False)
    order = Column("order", Integer, nullable=False)

    poll = relationship("Poll", back_populates="options")
    responses = relationship(
        "PollResponse", back_populates="option", cascade="all, delete-orphan"
    )


class PollResponse(Base):
    __tablename__ = "poll_responses"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "poll_option_id", name="uq_poll_responses_user_option"
        ),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    poll_id = Column(
        String(36), ForeignKey("polls.id", ondelete="CASCADE"), nullable=False
    )
    poll_option_id = Column(
        String(36), ForeignKey("poll_options.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at = Column(DateTime, default=_now, nullable=False)

    option = relationship("PollOption", back_populates="responses")
