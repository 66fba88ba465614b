"""Schema management for the planmate database."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from .config import settings
from .database import engine

logger = logging.getLogger("uvicorn.error")

ALEMBIC_DIR = Path(__file__).resolve().parent / "alembic"


def init_db() -> None:
    for action in upgrade_database(make_backup=False):
        logger.info(action)


def _alembic_config() -> Config:
    config = Config()
    config.set_main_option("script_location", str(ALEMBIC_DIR))
    # Alembic's Config is a ConfigParser, so a literal % must be doubled.
    config.set_main_option("sqlalchemy.url", str(engine.url).replace("%", "%%"))
    return config


def backup_database(db_path: Path) -> Path | None:
    """Copy the SQLite file next to itself as ``<name>.bak``."""
    if not db_path.exists():
        return None
    backup_path = db_path.with_name(db_path.name + ".bak")
    shutil.copy2(db_path, backup_path)
    return backup_path


def schema_state() -> str:
    """Return ``fresh``, ``untracked`` (tables without Alembic) or ``tracked``."""
    inspector = inspect(engine)
    if inspector.has_table("alembic_version"):
        return "tracked"
    if inspector.has_table("events"):
        return "untracked"
    return "fresh"


def upgrade_database(*, make_backup: bool = True) -> list[str]:
    """Bring the schema to the latest Alembic revision.

    Returns the actions taken so callers can report them.
    """
    actions: list[str] = []
    if make_backup:
        backup_path = backup_database(Path(settings.database_path))
        if backup_path:
            actions.append(f"Backup created at {backup_path}")

    state = schema_state()
    config = _alembic_config()
    if state == "untracked":
        command.stamp(config, "head")
        actions.append("Stamped existing database to Alembic head")
    else:
        command.upgrade(config, "head")
        actions.append(
            "Ran Alembic upgrade to head (fresh database)"
            if state == "fresh"
            else "Applied Alembic migrations to head"
        )
    return actions
