"""Background jobs: scheduler and the session expiry sweep."""

from surreal_sessions.infra.jobs.scheduler import JobScheduler
from surreal_sessions.infra.jobs.sweeper import ExpirySweeper

__all__ = ["JobScheduler", "ExpirySweeper"]
