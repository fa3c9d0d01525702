"""
Background scheduler using APScheduler.

Jobs that must not run twice at once across app instances (owner payouts)
are wrapped with `with_advisory_lock`, which takes a PostgreSQL advisory lock
for the duration of the run. Other databases run single-instance and skip
the lock.

Usage:
    scheduler = get_scheduler()
    scheduler.add_cron_job(run_owner_payouts_job, job_id="owner_payouts", hour=0, minute=0)
    scheduler.start()
"""
import functools
import hashlib
import logging
from typing import Optional, Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.events import EVENT_JOB_EXECUTED, EVENT_JOB_ERROR
from sqlalchemy import text

from salonbook.lib.db import engine

logger = logging.getLogger(__name__)


# Singleton scheduler instance
_scheduler: Optional["SchedulerManager"] = None


def get_lock_key(job_id: str) -> int:
    """
    Consistent integer lock key for pg_advisory_lock, derived from the job id.
    """
    hash_bytes = hashlib.sha256(job_id.encode()).digest()[:8]
    lock_key = int.from_bytes(hash_bytes, byteorder='big', signed=False)
    # Fold into signed int64 range (Postgres bigint)
    if lock_key > 2**63 - 1:
        lock_key = lock_key - 2**64
    return abs(lock_key)


def with_advisory_lock(job_id: str):
    """
    Run the wrapped job only if no other process currently runs it.

    Example:
        @with_advisory_lock("owner_payouts")
        def run_owner_payouts_job():
            ...
    """
    def decorator(func: Callable):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            if engine.dialect.name != "postgresql":
                return func(*args, **kwargs)

            lock_key = get_lock_key(job_id)
            with engine.connect() as conn:
                acquired = conn.execute(
                    text("SELECT pg_try_advisory_lock(:lock_key)"), {"lock_key": lock_key}
                ).scalar()
                conn.commit()
                if not acquired:
                    logger.info(f"Job {job_id} already running (lock {lock_key}), skipping")
                    return None
                try:
                    return func(*args, **kwargs)
                finally:
                    conn.execute(text("SELECT pg_advisory_unlock(:lock_key)"), {"lock_key": lock_key})
                    conn.commit()
                    logger.info(f"Job {job_id} released lock {lock_key}")
        return wrapper
    return decorator


class SchedulerManager:
    """
    Manager for APScheduler with lifecycle management.
    """

    def __init__(self):
        self.scheduler = BackgroundScheduler(
            timezone="UTC",
            job_defaults={
                'coalesce': True,  # Combine missed runs
                'max_instances': 1,  # Only one instance per job
                'misfire_grace_time': 300,
            }
        )

        self.scheduler.add_listener(self._on_job_executed, EVENT_JOB_EXECUTED)
        self.scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)

    def _on_job_executed(self, event):
        logger.info(f"Job {event.job_id} executed successfully")

    def _on_job_error(self, event):
        logger.error(
            f"Job {event.job_id} raised {event.exception.__class__.__name__}: "
            f"{event.exception}",
            exc_info=event.exception
        )

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self) -> None:
        """Start the scheduler."""
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Scheduler started")
        else:
            logger.warning("Scheduler already running")

    def shutdown(self, wait: bool = True) -> None:
        """
        Shutdown the scheduler.

        Args:
            wait: Whether to wait for running jobs to finish
        """
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("Scheduler shutdown")
        else:
            logger.warning("Scheduler not running")

    def add_cron_job(
        self,
        func: Callable,
        job_id: str,
        hour: Optional[int] = None,
        minute: Optional[int] = None,
        day_of_week: Optional[str] = None,
        **kwargs
    ) -> None:
        """
        Add a cron-scheduled job (UTC).

        Args:
            func: Job function
            job_id: Unique job identifier
            hour: Hour to run (0-23)
            minute: Minute to run (0-59)
            day_of_week: Day of week (mon,tue,wed,thu,fri,sat,sun)
            **kwargs: Additional APScheduler job options
        """
        trigger = CronTrigger(
            hour=hour,
            minute=minute,
            day_of_week=day_of_week,
            timezone="UTC"
        )
        self.scheduler.add_job(func, trigger=trigger, id=job_id, replace_existing=True, **kwargs)
        logger.info(f"Added cron job: {job_id} (hour={hour}, minute={minute})")

    def add_interval_job(
        self,
        func: Callable,
        job_id: str,
        seconds: Optional[int] = None,
        minutes: Optional[int] = None,
        hours: Optional[int] = None,
        **kwargs
    ) -> None:
        """Add an interval-scheduled job."""
        if not any([seconds, minutes, hours]):
            raise ValueError("At least one of seconds, minutes, or hours must be specified")

        trigger = IntervalTrigger(
            seconds=seconds or 0,
            minutes=minutes or 0,
            hours=hours or 0,
            timezone="UTC"
        )
        self.scheduler.add_job(func, trigger=trigger, id=job_id, replace_existing=True, **kwargs)
        logger.info(
            f"Added interval job: {job_id} "
            f"(seconds={seconds}, minutes={minutes}, hours={hours})"
        )

    def remove_job(self, job_id: str) -> None:
        self.scheduler.remove_job(job_id)
        logger.info(f"Removed job: {job_id}")

    def get_jobs(self) -> list:
        """Get list of scheduled jobs."""
        return self.scheduler.get_jobs()


def get_scheduler() -> SchedulerManager:
    """Get singleton scheduler instance."""
    global _scheduler
    if _scheduler is None:
        _scheduler = SchedulerManager()
    return _scheduler
