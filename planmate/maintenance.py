"""Periodic database housekeeping."""

from __future__ import annotations

import logging

from . import database

# Use uvicorn's error logger so maintenance messages show up with level prefixes.
logger = logging.getLogger("uvicorn.error")


def vacuum_database() -> None:
    """Reclaim free pages in the SQLite file."""
    engine = database.engine
    if engine.dialect.name != "sqlite":
        logger.debug("Skipping VACUUM on %s", engine.dialect.name)
        return
    with engine.connect() as connection:
        connection.execution_options(isolation_level="AUTOCOMMIT").exec_driver_sql(
            "VACUUM"
        )
    logger.info("SQLite VACUUM finished")
