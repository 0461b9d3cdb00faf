"""Daily reminder scheduler.

Keeps a live set of one-shot triggers for *today's* reminders plus one
permanent trigger that rebuilds the live set at local midnight.

Rebuild always re-reads the job store instead of merging with what is in
memory, so the live set after a rebuild is exactly the stored jobs for the
new day that have not yet passed. Jobs registered during the day are armed
immediately through ``add_to_today``. Both paths hold the same lock.
"""
import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Protocol
from zoneinfo import ZoneInfo

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from loguru import logger

from ..errors import StorageFault
from .executor import ReminderExecutor
from .models import ReminderJob
from .schedule import fire_time_on, fires_later_today
from .types import Weekday

logger = logger.bind(module="scheduler.service")

MIDNIGHT_TRIGGER_ID = "midnight-rebuild"
RETRY_TRIGGER_ID = "rebuild-retry"

# Delay before retrying a rebuild whose store read failed
REBUILD_RETRY_SECONDS = 60

# Seconds a live trigger may run late (e.g. armed during its own minute)
LIVE_MISFIRE_GRACE_SECONDS = 60


class WeekdayJobSource(Protocol):
    async def get_jobs_by_weekday(self, weekday: Weekday) -> list[ReminderJob]:
        ...


class DailyScheduler:
    """Materializes today's reminder jobs into live triggers."""

    def __init__(
        self,
        job_store: WeekdayJobSource,
        executor: ReminderExecutor,
        timezone: str = "Asia/Singapore",
        clock: Callable[[], datetime] | None = None,
        scheduler: AsyncIOScheduler | None = None,
    ):
        """Initialize the scheduler.

        Args:
            job_store: Durable source of jobs per weekday
            executor: Runs a job when its trigger fires
            timezone: Local timezone defining "today" and midnight
            clock: Returns the current local time (injectable for tests)
            scheduler: Underlying APScheduler instance
        """
        self.job_store = job_store
        self.executor = executor
        self.tz = ZoneInfo(timezone)
        self.clock = clock or (lambda: datetime.now(self.tz))
        self.scheduler = scheduler or AsyncIOScheduler(timezone=self.tz)
        self._live: dict[str, ReminderJob] = {}
        self._today: Weekday | None = None
        self._lock = asyncio.Lock()

    # ============== Lifecycle ==============

    async def start(self) -> None:
        """Build today's live set, arm the midnight rebuild and start firing."""
        await self.rebuild()
        self.scheduler.add_job(
            self.rebuild,
            CronTrigger(hour=0, minute=0, timezone=self.tz),
            id=MIDNIGHT_TRIGGER_ID,
            name="Rebuild today's reminders",
            replace_existing=True,
            coalesce=True,
            misfire_grace_time=3600,
        )
        self.scheduler.start()
        logger.info("Scheduler started")

    async def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")

    # ============== Live set ==============

    @property
    def today(self) -> Weekday | None:
        return self._today

    def live_jobs(self) -> list[ReminderJob]:
        """Jobs currently armed for today, in arming order."""
        return list(self._live.values())

    async def rebuild(self) -> int:
        """Replace the live set with today's jobs from the store.

        If the store cannot be read, the day still rolls over (yesterday's
        triggers are dropped and same-day additions are accepted) and a
        one-shot retry is armed.

        Returns:
            Number of triggers armed
        """
        async with self._lock:
            now = self.clock()
            today = Weekday.of(now)
            if today != self._today:
                self._disarm_all()
                self._today = today

            try:
                jobs = await self.job_store.get_jobs_by_weekday(today)
            except StorageFault as e:
                logger.error(f"Rebuild for {today.label} failed, retrying in {REBUILD_RETRY_SECONDS}s: {e}")
                self._arm_retry(now)
                return 0

            self._disarm_all()
            armed = sum(1 for job in jobs if self._arm(job, now))
            self._cancel_retry()

        logger.info(f"Rebuilt live triggers for {today.label}: {armed} armed of {len(jobs)} jobs")
        return armed

    async def add_to_today(self, job: ReminderJob) -> bool:
        """Arm a job created during the day without waiting for the next rebuild.

        Returns:
            Whether a trigger was armed. Jobs for another weekday, or whose
            time has already passed today, are left to a later rebuild.
        """
        async with self._lock:
            now = self.clock()
            if job.weekday != Weekday.of(now):
                logger.debug(f"Not arming {job.identity}: not today's weekday")
                return False
            return self._arm(job, now)

    async def remove_from_today(self, job: ReminderJob) -> bool:
        """Disarm a deleted job so it does not fire later today."""
        async with self._lock:
            if job.trigger_id not in self._live:
                return False
            self._disarm(job.trigger_id)
            logger.debug(f"Disarmed {job.identity}")
            return True

    def _arm(self, job: ReminderJob, now: datetime) -> bool:
        if not fires_later_today(job.scheduled_time, now):
            logger.debug(f"Not arming {job.identity}: {job.scheduled_time} already passed today")
            return False

        if job.trigger_id in self._live:
            self._disarm(job.trigger_id)

        run_at = fire_time_on(job.scheduled_time, now.date(), self.tz)
        self.scheduler.add_job(
            self._fire,
            DateTrigger(run_date=run_at, timezone=self.tz),
            args=[job],
            id=job.trigger_id,
            name=job.describe(),
            replace_existing=True,
            misfire_grace_time=LIVE_MISFIRE_GRACE_SECONDS,
        )
        self._live[job.trigger_id] = job
        logger.debug(f"Armed {job.identity} at {run_at.isoformat()}")
        return True

    def _disarm_all(self) -> None:
        for trigger_id in list(self._live):
            self._disarm(trigger_id)

    def _arm_retry(self, now: datetime) -> None:
        self._cancel_retry()
        self.scheduler.add_job(
            self.rebuild,
            DateTrigger(run_date=now + timedelta(seconds=REBUILD_RETRY_SECONDS), timezone=self.tz),
            id=RETRY_TRIGGER_ID,
            name="Retry today's rebuild",
            replace_existing=True,
            misfire_grace_time=3600,
        )

    def _cancel_retry(self) -> None:
        try:
            self.scheduler.remove_job(RETRY_TRIGGER_ID)
        except JobLookupError:
            pass

    def _disarm(self, trigger_id: str) -> None:
        self._live.pop(trigger_id, None)
        try:
            self.scheduler.remove_job(trigger_id)
        except JobLookupError:
            pass  # already fired

    async def _fire(self, job: ReminderJob) -> None:
        async with self._lock:
            self._live.pop(job.trigger_id, None)
        await self.executor.execute(job)
