"""Engine and session factory shared by the API, CLI and background jobs."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import URL, create_engine, make_url
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, scoped_session, sessionmaker
from sqlalchemy.pool import Pool

from .config import settings


def build_engine(url: str | URL, *, poolclass: type[Pool] | None = None) -> Engine:
    options = {"future": True}
    if make_url(url).get_backend_name() == "sqlite":
        options["connect_args"] = {"check_same_thread": False}
    if poolclass is not None:
        options["poolclass"] = poolclass
    return create_engine(url, **options)


def build_session_factory(bind: Engine) -> scoped_session:
    # Objects stay usable after commit; serializers read them post-transaction.
    return scoped_session(
        sessionmaker(bind=bind, autoflush=False, expire_on_commit=False, future=True)
    )


# Built from parts so a % in the path is never read as URL escaping.
DATABASE_URL = URL.create("sqlite", database=str(settings.database_path))
engine = build_engine(DATABASE_URL)
SessionLocal = build_session_factory(engine)


@contextmanager
def get_session() -> Iterator[Session]:
    """Yield a session that commits on success and rolls back on any error.

    Core operations only flush, so everything done inside one ``with`` block
    lands in a single transaction.
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
