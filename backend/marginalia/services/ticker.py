"""In-process periodic task runner backed by APScheduler.

A PeriodicTask registers its handler as a cron job on an AsyncIOScheduler
(the top of every hour for the digest) and runs it in a worker thread.
Ticks never overlap: the job is limited to one running instance and missed
runs are coalesced into one.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable

from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from ..srs.time import utc_now

logger = logging.getLogger(__name__)

HOURLY = "0 * * * *"


class PeriodicTask:
    """Runs `handler(now)` on a crontab schedule, one tick at a time."""

    def __init__(
        self,
        name: str,
        handler: Callable[[datetime], Any],
        crontab: str = HOURLY,
        clock: Callable[[], datetime] = utc_now,
        misfire_grace_seconds: int = 300,
    ):
        self.name = name
        self.handler = handler
        self.trigger = CronTrigger.from_crontab(crontab, timezone=timezone.utc)
        self.clock = clock
        self.misfire_grace_seconds = misfire_grace_seconds
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def is_started(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    @property
    def job(self) -> Job | None:
        if self._scheduler is None:
            return None
        return self._scheduler.get_job(self.name)

    def next_tick_after(self, now: datetime) -> datetime:
        return self.trigger.get_next_fire_time(None, now)

    async def run_once(self, now: datetime | None = None) -> Any:
        """Run one tick; errors are logged and never escape."""
        now = now or self.clock()
        try:
            return await asyncio.to_thread(self.handler, now)
        except Exception:
            logger.exception("%s: tick failed", self.name)
            return None

    def start(self) -> None:
        """Schedule the job on the running event loop."""
        if self.is_started:
            return
        scheduler = AsyncIOScheduler(timezone=timezone.utc)
        scheduler.add_job(
            self.run_once,
            self.trigger,
            id=self.name,
            name=self.name,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.misfire_grace_seconds,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info("%s: scheduled, next tick at %s", self.name, self.job.next_run_time)

    async def stop(self) -> None:
        if self._scheduler is None:
            return
        # AsyncIOScheduler defers shutdown to the next loop iteration
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        await asyncio.sleep(0)
        logger.info("%s: stopped", self.name)
