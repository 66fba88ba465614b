"""Development helpers for populating fake users, events and polls."""

from __future__ import annotations

import random
from datetime import datetime, timedelta

from faker import Faker
from sqlalchemy.orm import Session

from . import attendance, polls
from .crud import create_event, create_user
from .database import get_session
from .models import Event, EventType, ResultVisibility, User, VoterPermission
from .storage import init_db
from .utils import utcnow

_event_kinds = [
    "Reunion",
    "Road Trip",
    "Birthday Weekend",
    "Offsite",
    "Camping Trip",
    "Game Night",
    "Wedding Weekend",
    "Hackathon",
]
_poll_prompts = [
    ("Which day works best?", None),
    ("Where should we eat?", ["Tacos", "Sushi", "Pizza", "Thai"]),
    ("Pick the activities you're into", ["Hiking", "Kayaking", "Museum", "Karaoke"]),
    ("How are you getting there?", ["Driving", "Train", "Flying"]),
]


def seed_fake_data(
    *,
    user_count: int = 12,
    event_count: int = 4,
    max_attendees_per_event: int = 6,
    polls_per_event: int = 2,
) -> dict[str, int]:
    """Populate the database with synthetic users, events, attendees and polls."""
    if user_count < 2:
        raise ValueError("user_count must be >= 2")
    if event_count < 0:
        raise ValueError("event_count must be >= 0")
    if max_attendees_per_event < 0:
        raise ValueError("max_attendees_per_event must be >= 0")
    if polls_per_event < 0:
        raise ValueError("polls_per_event must be >= 0")

    init_db()
    fake = Faker()
    stats = {"users": 0, "events": 0, "attendees": 0, "polls": 0, "votes": 0}

    with get_session() as session:
        users = [_create_user(session, fake) for _ in range(user_count)]
        stats["users"] = len(users)
        for _ in range(event_count):
            host, *others = random.sample(users, k=len(users))
            event = _create_event(session, fake, host)
            stats["events"] += 1
            guests = others[: random.randint(0, min(max_attendees_per_event, len(others)))]
            stats["attendees"] += _admit_guests(session, event, host, guests)
            for _ in range(polls_per_event):
                stats["votes"] += _create_poll(session, event, host, guests)
                stats["polls"] += 1

    return stats


def _create_user(session: Session, fake: Faker) -> User:
    name = fake.unique.name_nonbinary()
    email = f"{fake.unique.user_name()}@{fake.free_email_domain()}"
    return create_user(session, email=email, name=name)


def _random_start() -> datetime:
    day_offset = random.randint(3, 60)
    hour = random.randint(8, 19)
    base = utcnow().replace(hour=hour, minute=0, second=0, microsecond=0)
    return base + timedelta(days=day_offset)


def _create_event(session: Session, fake: Faker, host: User) -> Event:
    event_type = random.choice(list(EventType))
    start = _random_start()
    end = None
    if event_type == EventType.ONE_OFF:
        end = start + timedelta(hours=random.randint(1, 5))
    elif event_type == EventType.MULTI_DAY:
        end = start + timedelta(days=random.randint(1, 4))
    return create_event(
        session,
        host=host,
        title=f"{fake.city()} {random.choice(_event_kinds)}",
        event_type=event_type,
        start_date=start,
        end_date=end,
        description="\n\n".join(fake.paragraphs(nb=2)),
        location=fake.address().replace("\n", ", "),
        require_approval=random.random() < 0.4,
    )


def _admit_guests(session: Session, event: Event, host: User, guests: list[User]) -> int:
    for guest in guests:
        attendance.join_event(session, event_id=event.id, user=guest)
    if event.require_approval and guests:
        decisions = [
            (guest.id, random.choice(["APPROVE", "APPROVE", "DECLINE"]))
            for guest in guests
            if random.random() < 0.7
        ]
        attendance.bulk_decide(
            session, event_id=event.id, decisions=decisions, actor=host
        )
    return len(guests)


def _create_poll(session: Session, event: Event, host: User, guests: list[User]) -> int:
    title, choices = random.choice(_poll_prompts)
    if choices is None:
        choices = [day.date.strftime("%A %b %d") for day in event.days] or [
            (event.start_date + timedelta(days=offset)).strftime("%A %b %d")
            for offset in range(3)
        ]
    config = polls.PollConfig(
        allow_multiple_selections=random.random() < 0.5,
        voter_permission=random.choice(
            [VoterPermission.ALL_ATTENDEES, VoterPermission.ACCEPTED_ATTENDEES]
        ),
        result_visibility=random.choice(list(ResultVisibility)),
    )
    poll = polls.create_poll(
        session,
        event_id=event.id,
        actor=host,
        title=title,
        options=choices,
        config=config,
    )
    votes = 0
    for voter in [host, *guests]:
        count = random.randint(1, len(poll.options)) if config.allow_multiple_selections else 1
        picks = [option.id for option in random.sample(poll.options, k=count)]
        reason = polls.check_voting_eligibility(
            session, config.voter_permission, voter.id == host.id, event.id, voter.id
        )
        if reason:
            continue
        polls.vote(
            session,
            poll=poll,
            user_id=voter.id,
            option_ids=picks,
            allow_multiple=config.allow_multiple_selections,
        )
        votes += 1
    return votes
