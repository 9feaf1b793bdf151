"""Tests for the expired session sweeper."""

import logging
from datetime import UTC, datetime, timedelta

import pytest

from surreal_sessions.infra.jobs.scheduler import JobScheduler
from surreal_sessions.infra.jobs.sweeper import SWEEP_JOB_ID, SWEEP_STATEMENT, ExpirySweeper
from surreal_sessions.infra.observability.logging import correlation_id_var, set_correlation_id
from surreal_sessions.infra.surreal.connection import ConnectionManager

NOW = datetime(2030, 1, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
async def connection(fake_client, settings, clock) -> ConnectionManager:
    manager = ConnectionManager(fake_client, settings, clock=clock)
    await manager.connect()
    return manager


@pytest.fixture
def sweeper(connection: ConnectionManager) -> ExpirySweeper:
    return ExpirySweeper(connection, "session", interval_seconds=60, now=lambda: NOW)


class TestSweepOnce:
    """Tests for a single sweep run."""

    @pytest.mark.asyncio
    async def test_only_expired_records_removed(self, sweeper: ExpirySweeper, fake_client) -> None:
        fake_client.tables["session"] = {
            "old": {"expires": NOW - timedelta(seconds=1)},
            "fresh": {"expires": NOW + timedelta(hours=1)},
            "forever": {"views": 1},
        }

        assert await sweeper.sweep_once() == 1

        assert set(fake_client.tables["session"]) == {"fresh", "forever"}

    @pytest.mark.asyncio
    async def test_statement_binds_table_and_now(
        self, sweeper: ExpirySweeper, fake_client
    ) -> None:
        await sweeper.sweep_once()

        assert fake_client.method_calls("query") == [
            ("query", SWEEP_STATEMENT, {"table": "session", "now": NOW})
        ]

    @pytest.mark.asyncio
    async def test_failure_is_logged_and_next_sweep_runs(
        self, sweeper: ExpirySweeper, fake_client, caplog: pytest.LogCaptureFixture
    ) -> None:
        fake_client.tables["session"] = {"old": {"expires": NOW - timedelta(days=1)}}
        fake_client.fail_on["query"] = RuntimeError("db unavailable")

        with caplog.at_level(logging.ERROR):
            assert await sweeper.sweep_once() == 0

        assert "Expired session sweep failed: db unavailable" in caplog.text
        assert "old" in fake_client.tables["session"]

        del fake_client.fail_on["query"]
        assert await sweeper.sweep_once() == 1
        assert fake_client.tables["session"] == {}

    @pytest.mark.asyncio
    async def test_sweep_reconnects_through_gate(
        self, fake_client, settings, clock
    ) -> None:
        manager = ConnectionManager(fake_client, settings, clock=clock)
        sweeper = ExpirySweeper(manager, "session", now=lambda: NOW)

        assert await sweeper.sweep_once() == 0

        assert fake_client.connect_calls == 1
        assert manager.is_connected is True


    @pytest.mark.asyncio
    async def test_each_run_logs_under_fresh_correlation_id(
        self, sweeper: ExpirySweeper, fake_client
    ) -> None:
        seen: list[str | None] = []
        query = fake_client.query

        async def recording_query(statement, variables=None):
            seen.append(correlation_id_var.get())
            return await query(statement, variables)

        fake_client.query = recording_query
        set_correlation_id("outer")

        await sweeper.sweep_once()
        await sweeper.sweep_once()

        assert len(seen) == 2
        assert None not in seen and "outer" not in seen
        assert seen[0] != seen[1]
        assert correlation_id_var.get() == "outer"


class TestSweeperScheduling:
    """Tests for registering the sweep with the scheduler."""

    @pytest.mark.asyncio
    async def test_owned_scheduler_lifecycle(self, sweeper: ExpirySweeper) -> None:
        await sweeper.start()
        await sweeper.start()

        assert sweeper.running is True
        scheduler = sweeper._scheduler
        assert scheduler is not None and scheduler.running is True
        assert scheduler.get_job_status(SWEEP_JOB_ID) is not None

        await sweeper.stop()

        assert sweeper.running is False
        assert scheduler.running is False

    @pytest.mark.asyncio
    async def test_injected_scheduler_is_left_running(self, connection: ConnectionManager) -> None:
        scheduler = JobScheduler()
        await scheduler.start()
        sweeper = ExpirySweeper(connection, "session", interval_seconds=30, scheduler=scheduler)

        await sweeper.start()
        status = scheduler.get_job_status(SWEEP_JOB_ID)
        assert status is not None
        assert status["name"] == "Session expiry sweep (session)"

        await sweeper.stop()

        assert scheduler.get_job_status(SWEEP_JOB_ID) is None
        assert scheduler.running is True
        await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self, sweeper: ExpirySweeper) -> None:
        await sweeper.stop()
        assert sweeper.running is False
