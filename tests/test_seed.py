from __future__ import annotations

import pytest
from sqlalchemy import func, select

from planmate import database
from planmate.models import Event, PollResponse, User
from planmate.seed import seed_fake_data


def test_seed_creates_consistent_data():
    stats = seed_fake_data(
        user_count=6, event_count=3, max_attendees_per_event=4, polls_per_event=2
    )

    session = database.SessionLocal()
    try:
        assert session.scalar(select(func.count()).select_from(User)) == 6
        assert session.scalar(select(func.count()).select_from(Event)) == 3
        votes = session.scalar(select(func.count(func.distinct(PollResponse.user_id))))
    finally:
        session.close()
    assert stats["users"] == 6
    assert stats["events"] == 3
    assert stats["polls"] == 6
    assert stats["votes"] >= 3
    assert votes >= 1


def test_seed_rejects_tiny_user_pool():
    with pytest.raises(ValueError):
        seed_fake_data(user_count=1)
