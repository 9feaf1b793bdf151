"""APScheduler-based job scheduler for periodic tasks.

Provides scheduling infrastructure for background maintenance such as the
session expiry sweep.

Design principles:
- Use AsyncIOScheduler so jobs run on the store's event loop
- One instance per job at a time, missed runs coalesced
- Job failures are logged and never unschedule the job
"""

import logging
from typing import Callable

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)


class JobScheduler:
    """APScheduler-based job scheduler for periodic tasks.

    Example:
        scheduler = JobScheduler()
        await scheduler.start()

        # Register periodic job
        scheduler.add_interval_job("session_expiry_sweep", sweep_fn, interval_seconds=600)

        # Shutdown
        await scheduler.shutdown()
    """

    def __init__(self, misfire_grace_time: int = 60) -> None:
        """Initialize job scheduler.

        Args:
            misfire_grace_time: Seconds a late run may still start
        """
        self.scheduler = AsyncIOScheduler(
            timezone="UTC",
            job_defaults={
                "coalesce": True,  # Combine missed runs
                "max_instances": 1,  # One instance at a time
                "misfire_grace_time": misfire_grace_time,
            },
        )

        self.scheduler.add_listener(
            self._on_job_executed,
            EVENT_JOB_EXECUTED | EVENT_JOB_ERROR,
        )

        self._started = False

    @property
    def running(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Start the scheduler.

        Must be called from a running event loop.

        Raises:
            RuntimeError: If scheduler already started
        """
        if self._started:
            raise RuntimeError("Scheduler already started")

        self.scheduler.start()
        self._started = True

        logger.info(
            "Job scheduler started",
            extra={
                "job_count": len(self.scheduler.get_jobs()),
            },
        )

    async def shutdown(self, wait: bool = False) -> None:
        """Shutdown the scheduler.

        Args:
            wait: Whether to wait for running jobs to complete
        """
        if not self._started:
            return

        logger.info("Shutting down job scheduler...")

        self.scheduler.shutdown(wait=wait)
        self._started = False

        logger.info("Job scheduler stopped")

    def add_interval_job(
        self,
        job_id: str,
        job_func: Callable,
        interval_seconds: int,
        name: str | None = None,
    ) -> str:
        """Add (or replace) a job that runs every ``interval_seconds``.

        Args:
            job_id: Stable job identifier
            job_func: Async function to execute
            interval_seconds: Interval between runs

        Returns:
            Job ID
        """
        job = self.scheduler.add_job(
            job_func,
            trigger=IntervalTrigger(seconds=interval_seconds),
            id=job_id,
            name=name or job_id,
            replace_existing=True,
        )

        logger.info(
            f"Added job {job_id} (interval: {interval_seconds}s)",
            extra={
                "job_id": job.id,
                "interval_seconds": interval_seconds,
            },
        )

        return job.id

    def remove_job(self, job_id: str) -> bool:
        """Remove a scheduled job.

        Args:
            job_id: Job identifier

        Returns:
            True if the job existed
        """
        if self.scheduler.get_job(job_id) is None:
            return False

        self.scheduler.remove_job(job_id)
        logger.info(f"Removed job {job_id}", extra={"job_id": job_id})
        return True

    def get_job_status(self, job_id: str) -> dict | None:
        """Get job status.

        Args:
            job_id: Job identifier

        Returns:
            Job status dict or None if job not found
        """
        job = self.scheduler.get_job(job_id)
        if not job:
            return None

        return {
            "id": job.id,
            "name": job.name,
            "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
            "pending": job.pending,
        }

    def _on_job_executed(self, event) -> None:
        if event.exception:
            logger.error(
                f"Job {event.job_id} failed",
                extra={
                    "job_id": event.job_id,
                    "exception": str(event.exception),
                },
                exc_info=event.exception,
            )
        else:
            logger.debug(
                f"Job {event.job_id} executed successfully",
                extra={
                    "job_id": event.job_id,
                    "run_time": event.scheduled_run_time.isoformat()
                    if event.scheduled_run_time
                    else None,
                },
            )


__all__ = ["JobScheduler"]
