"""Scheduler for automatic sync cycles.

This module provides:
- SyncScheduler: Runs SyncCoordinator.run_sync() on a cron schedule

Timer ticks and manual triggers both go through run_sync(), whose
single-flight guard turns an overlapping tick into a no-op.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from todosync.core.config import DEFAULT_INTERVAL_CRON, DEFAULT_TIMEZONE

if TYPE_CHECKING:
    from todosync.client.sync.coordinator import SyncCoordinator
    from todosync.client.sync.types import SyncResult

logger = logging.getLogger(__name__)

JOB_ID = "sync_queue"


class SyncScheduler:
    """Runs sync cycles on a crontab schedule in a background thread."""

    def __init__(
        self,
        coordinator: SyncCoordinator,
        cron: str = DEFAULT_INTERVAL_CRON,
        timezone: str = DEFAULT_TIMEZONE,
    ) -> None:
        """Initialize the scheduler.

        Args:
            coordinator: Coordinator whose run_sync() is invoked.
            cron: Crontab expression (5 fields).
            timezone: Timezone the expression is evaluated in.

        Raises:
            ValueError: If the cron expression is invalid.
        """
        self._coordinator = coordinator
        self._cron = cron
        self._timezone = timezone
        # Validate eagerly so a bad expression fails at startup
        self._trigger = CronTrigger.from_crontab(cron, timezone=timezone)
        self._scheduler: BackgroundScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    def _sync_job(self) -> None:
        """Job function for scheduled sync."""
        try:
            self._coordinator.run_sync()
        except Exception:
            logger.exception("Error during scheduled sync")

    def start(self) -> None:
        """Start the scheduler."""
        if self._scheduler is not None:
            return  # Already running

        self._scheduler = BackgroundScheduler(timezone=self._timezone)
        self._scheduler.add_job(
            self._sync_job,
            trigger=self._trigger,
            id=JOB_ID,
            name="Sync queue replay",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info("Sync scheduler started (schedule: %s, %s)", self._cron, self._timezone)

    def stop(self) -> None:
        """Stop the scheduler."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Sync scheduler stopped")

    def run_now(self) -> SyncResult:
        """Run a sync cycle immediately (manual trigger)."""
        return self._coordinator.run_sync()

    def next_run_time(self) -> datetime | None:
        """Next scheduled run, or None if not started."""
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None
