"""
APScheduler job that keeps the rate table fresh.

The job runs once at start (unless told otherwise) and then on a fixed
interval. max_instances=1 and coalesce=True stop the scheduler itself from
stacking runs; the refresher additionally skips triggers while fetching.
"""

from datetime import datetime
from typing import Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from finanza.currency.refresh import RateRefresher, RefreshOutcome


logger = structlog.get_logger(__name__)

RATE_REFRESH_JOB_ID = "rate_refresh"


class RateRefreshScheduler:
    """Runs RateRefresher.refresh on an interval inside an asyncio loop."""

    def __init__(
        self,
        refresher: RateRefresher,
        interval_seconds: int = 3600,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self._refresher = refresher
        self._interval_seconds = interval_seconds
        self._scheduler = scheduler or AsyncIOScheduler()

    @property
    def scheduler(self) -> AsyncIOScheduler:
        return self._scheduler

    async def run_refresh(self) -> RefreshOutcome:
        """Job body."""
        return await self._refresher.refresh(trigger="scheduled")

    def schedule(self, run_immediately: bool = True) -> None:
        """Register (or replace) the refresh job without starting the scheduler."""
        self._scheduler.add_job(
            self.run_refresh,
            IntervalTrigger(seconds=self._interval_seconds),
            id=RATE_REFRESH_JOB_ID,
            name="Exchange Rate Refresh",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now() if run_immediately else None,
        )

    def start(self, run_immediately: bool = True) -> None:
        """Schedule the job and start the scheduler. Must be called inside a running loop."""
        self.schedule(run_immediately=run_immediately)
        if not self._scheduler.running:
            self._scheduler.start()
        logger.info(
            "rate_refresh_scheduler_started",
            interval_seconds=self._interval_seconds,
            run_immediately=run_immediately,
        )

    def stop(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        logger.info("rate_refresh_scheduler_stopped")
