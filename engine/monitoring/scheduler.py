"""Recurring monitoring jobs.

This module provides:
- Next-run calculation for daily/weekly/monthly schedules
- A scheduler service owning job id -> asyncio task plus last-run metadata

The scheduler is created by the application and passed to whatever needs
it. There is no module-level job registry.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

import structlog

from api.config import MonitoringSettings
from api.exceptions import NotFoundError
from engine.observation.models import utc_now

logger = structlog.get_logger(__name__)

JobHandler = Callable[[], Awaitable[None]]


class ScheduleFrequency(str, Enum):
    """Schedule frequency options."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


DEFAULT_HOUR = 9
DEFAULT_DAY_OF_WEEK = 0  # Monday


def calculate_next_run(
    frequency: ScheduleFrequency,
    hour: int = DEFAULT_HOUR,
    from_time: datetime | None = None,
    day_of_week: int = DEFAULT_DAY_OF_WEEK,
) -> datetime:
    """
    Calculate the next scheduled run time.

    Args:
        frequency: Daily, weekly or monthly
        hour: Hour of day (UTC)
        from_time: Calculate from this time (defaults to now)
        day_of_week: Day of week (0=Monday, 6=Sunday) for weekly and monthly

    Returns:
        The next scheduled run datetime, strictly after from_time
    """
    now = from_time or utc_now()
    today_at_hour = now.replace(hour=hour, minute=0, second=0, microsecond=0)

    if frequency == ScheduleFrequency.DAILY:
        return today_at_hour if today_at_hour > now else today_at_hour + timedelta(days=1)

    if frequency == ScheduleFrequency.WEEKLY:
        days_ahead = (day_of_week - now.weekday()) % 7
        if days_ahead == 0 and today_at_hour <= now:
            days_ahead = 7
        return today_at_hour + timedelta(days=days_ahead)

    # Monthly: first day_of_week of next month
    if now.month == 12:
        next_month = now.replace(year=now.year + 1, month=1, day=1)
    else:
        next_month = now.replace(month=now.month + 1, day=1)
    days_until_target = (day_of_week - next_month.weekday()) % 7
    next_run = next_month + timedelta(days=days_until_target)
    return next_run.replace(hour=hour, minute=0, second=0, microsecond=0)


@dataclass
class ScheduledJob:
    """A recurring job and its run metadata."""

    id: str
    name: str
    frequency: ScheduleFrequency
    handler: JobHandler
    hour: int = DEFAULT_HOUR
    is_running: bool = False
    last_run: datetime | None = None
    last_error: str | None = None
    next_run: datetime | None = None
    run_count: int = 0
    task: asyncio.Task | None = field(default=None, repr=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "frequency": self.frequency.value,
            "hour": self.hour,
            "is_running": self.is_running,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_error": self.last_error,
            "next_run": self.next_run.isoformat() if self.next_run else None,
            "run_count": self.run_count,
        }


class ProbeScheduler:
    """Owns recurring jobs as asyncio tasks."""

    def __init__(
        self,
        settings: MonitoringSettings | None = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings or MonitoringSettings()
        self.clock = clock
        self._sleep = sleep
        self._jobs: dict[str, ScheduledJob] = {}

    def schedule(
        self,
        job_id: str,
        name: str,
        handler: JobHandler,
        frequency: ScheduleFrequency | str | None = None,
        hour: int | None = None,
        start: bool = True,
    ) -> ScheduledJob:
        """
        Register a recurring job, replacing any job with the same id.

        With ``start=False`` the job is registered but only runs via run_now.
        """
        self.stop(job_id)
        job = ScheduledJob(
            id=job_id,
            name=name,
            frequency=ScheduleFrequency(frequency or self.settings.default_frequency),
            handler=handler,
            hour=self.settings.schedule_hour if hour is None else hour,
        )
        job.next_run = calculate_next_run(job.frequency, job.hour, self.clock())
        if start:
            job.task = asyncio.create_task(self._loop(job), name=f"schedule-{job_id}")
        self._jobs[job_id] = job
        logger.info(
            "job_scheduled",
            job_id=job_id,
            frequency=job.frequency.value,
            next_run=job.next_run.isoformat(),
        )
        return job

    async def _loop(self, job: ScheduledJob) -> None:
        while True:
            delay = (job.next_run - self.clock()).total_seconds() if job.next_run else 0
            await self._sleep(max(delay, 0))
            await self._execute(job)
            job.next_run = calculate_next_run(job.frequency, job.hour, self.clock())

    async def _execute(self, job: ScheduledJob) -> bool:
        if job.is_running:
            logger.info("job_run_skipped_overlap", job_id=job.id)
            return False

        job.is_running = True
        job.last_error = None
        try:
            await job.handler()
        except Exception as e:
            job.last_error = str(e)
            logger.exception("job_failed", job_id=job.id, error=str(e))
        finally:
            job.is_running = False
            job.last_run = self.clock()
            job.run_count += 1
        return True

    async def run_now(self, job_id: str) -> bool:
        """Run a job immediately. Returns False if it was already running."""
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFoundError("Job", job_id)
        return await self._execute(job)

    def stop(self, job_id: str) -> bool:
        job = self._jobs.pop(job_id, None)
        if job is None:
            return False
        if job.task is not None:
            job.task.cancel()
        logger.info("job_stopped", job_id=job_id)
        return True

    def get(self, job_id: str) -> ScheduledJob | None:
        return self._jobs.get(job_id)

    def list_jobs(self) -> list[ScheduledJob]:
        return list(self._jobs.values())

    def stop_all(self) -> None:
        for job_id in list(self._jobs):
            self.stop(job_id)
