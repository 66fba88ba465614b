"""Background maintenance jobs run while the API is up."""

from __future__ import annotations

import logging
from datetime import timedelta

from apscheduler.schedulers.background import BackgroundScheduler

from .config import settings
from .maintenance import vacuum_database

logger = logging.getLogger("uvicorn.error")

VACUUM_JOB_ID = "sqlite-vacuum"

_scheduler: BackgroundScheduler | None = None


def start_scheduler(interval: timedelta | None = None) -> BackgroundScheduler:
    """Start the maintenance scheduler once per process.

    ``interval`` overrides ``sqlite_vacuum_hours`` from the settings.
    """
    global _scheduler
    if _scheduler and _scheduler.running:
        return _scheduler
    every = interval or settings.vacuum_interval
    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(
        vacuum_database,
        "interval",
        seconds=int(every.total_seconds()),
        id=VACUUM_JOB_ID,
        coalesce=True,
        max_instances=1,
        replace_existing=True,
    )
    scheduler.start()
    logger.info("Maintenance scheduler started; VACUUM every %s", every)
    _scheduler = scheduler
    return scheduler


def stop_scheduler() -> None:
    global _scheduler
    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("Maintenance scheduler stopped")
    _scheduler = None
