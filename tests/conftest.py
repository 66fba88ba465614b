"""Shared pytest fixtures for planmate."""

from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path

import pytest
from sqlalchemy.pool import StaticPool

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from planmate import api, database, storage
from planmate.crud import create_event, create_user
from planmate.models import Base, EventType


@pytest.fixture(scope="session", autouse=True)
def configure_in_memory_db():
    """Reuse a single in-memory SQLite database for fast, isolated tests."""

    engine = database.build_engine("sqlite+pysqlite:///:memory:", poolclass=StaticPool)
    session_factory = database.build_session_factory(engine)
    database.engine = engine
    database.SessionLocal = session_factory
    storage.engine = engine
    api.SessionLocal = session_factory
    Base.metadata.create_all(bind=engine)
    yield
    session_factory.remove()


@pytest.fixture(autouse=True)
def clean_database():
    """Reset all tables between tests to guarantee isolation."""

    Base.metadata.drop_all(bind=database.engine)
    Base.metadata.create_all(bind=database.engine)
    yield


@pytest.fixture()
def session():
    db = database.SessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.close()


@pytest.fixture()
def make_user(session):
    counter = {"value": 0}

    def _make(name: str | None = None, email: str | None = None):
        counter["value"] += 1
        index = counter["value"]
        user = create_user(
            session,
            email=email or f"user{index}@example.com",
            name=name or f"User {index}",
        )
        session.commit()
        return user

    return _make


@pytest.fixture()
def make_event(session):
    def _make(host, **overrides):
        fields = {
            "title": "Lake Weekend",
            "event_type": EventType.MULTI_DAY,
            "start_date": datetime(2025, 3, 1, 10, 0),
            "end_date": datetime(2025, 3, 3, 2, 0),
        }
        fields.update(overrides)
        event = create_event(session, host=host, **fields)
        session.commit()
        return event

    return _make
