"""Periodic deletion of expired session records.

Each run issues one bulk DELETE scoped to the session table for records
whose ``expires`` timestamp is earlier than now. Runs are independent: a
failed sweep is logged and the next scheduled run still happens. Sweeps do
not coordinate with concurrent writes beyond the database's per-statement
atomicity.
"""

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime

from surreal_sessions.infra.jobs.scheduler import JobScheduler
from surreal_sessions.infra.observability.logging import correlation_scope
from surreal_sessions.infra.observability.metrics import record_sweep
from surreal_sessions.infra.surreal.connection import ConnectionManager

SWEEP_JOB_ID = "session_expiry_sweep"

DEFAULT_SWEEP_INTERVAL_SECONDS = 600

SWEEP_STATEMENT = (
    "DELETE type::table($table) WHERE expires != NONE AND expires < $now RETURN BEFORE;"
)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class ExpirySweeper:
    """Delete expired session records on a fixed interval.

    Shares the store's connection manager, so sweeps pass through the same
    readiness gate as regular operations.

    Example:
        sweeper = ExpirySweeper(manager, "usersessions", interval_seconds=600)
        await sweeper.start()
        ...
        await sweeper.stop()
    """

    def __init__(
        self,
        connection: ConnectionManager,
        table_name: str,
        interval_seconds: int = DEFAULT_SWEEP_INTERVAL_SECONDS,
        scheduler: JobScheduler | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        """Initialize expiry sweeper.

        Args:
            connection: Connection manager owning the shared handle
            table_name: Validated session table name
            interval_seconds: Interval between sweeps
            scheduler: Scheduler to register with; a private one is created
                and owned when omitted
            logger: Optional logger; defaults to the module logger
            now: Current-time source, timezone-aware
        """
        self.connection = connection
        self.table_name = table_name
        self.interval_seconds = interval_seconds

        self._scheduler = scheduler
        self._owns_scheduler = scheduler is None
        self._logger = logger if logger is not None else logging.getLogger(__name__)
        self._now = now
        self._started = False

    @property
    def running(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Register the sweep job, starting a private scheduler if needed."""
        if self._started:
            return

        if self._scheduler is None:
            self._scheduler = JobScheduler()
        if not self._scheduler.running:
            await self._scheduler.start()

        self._scheduler.add_interval_job(
            SWEEP_JOB_ID,
            self.sweep_once,
            interval_seconds=self.interval_seconds,
            name=f"Session expiry sweep ({self.table_name})",
        )
        self._started = True

    async def stop(self) -> None:
        """Remove the sweep job and stop a privately owned scheduler."""
        if not self._started or self._scheduler is None:
            return

        self._scheduler.remove_job(SWEEP_JOB_ID)
        if self._owns_scheduler:
            await self._scheduler.shutdown()
            self._scheduler = None
        self._started = False

    async def sweep_once(self) -> int:
        """Delete every record whose expiry has passed.

        Each run logs under a fresh correlation id.

        Returns:
            Number of records deleted (0 when the sweep failed)
        """
        with correlation_scope(str(uuid.uuid4())):
            await self.connection.ensure_ready()

            try:
                deleted = await self.connection.client.query(
                    SWEEP_STATEMENT,
                    {"table": self.table_name, "now": self._now()},
                )
            except Exception as exc:
                record_sweep(success=False)
                self._logger.error(
                    f"Expired session sweep failed: {exc}",
                    extra={"table": self.table_name, "job_id": SWEEP_JOB_ID},
                    exc_info=exc,
                )
                return 0

            count = len(deleted) if isinstance(deleted, list) else 0
            record_sweep(success=True, deleted=count)
            self._logger.debug(
                "Expired session sweep finished",
                extra={"table": self.table_name, "job_id": SWEEP_JOB_ID, "deleted": count},
            )
            return count


__all__ = [
    "ExpirySweeper",
    "SWEEP_JOB_ID",
    "SWEEP_STATEMENT",
    "DEFAULT_SWEEP_INTERVAL_SECONDS",
]
