"""Shared pytest fixtures.

These fixtures live at `tests/` scope so they are available to every test
module.

Key goals:
- Prevent the global settings singleton and the log correlation id from
  leaking state across tests.
- Provide an in-memory stand-in for the SurrealDB client so store,
  connection and sweep behaviour can be exercised without a database.
- Provide a controllable clock for reconnect throttling tests.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any

import pytest

from surreal_sessions.config import StoreSettings, set_settings
from surreal_sessions.infra.observability.logging import correlation_id_var


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDatabaseClient:
    """In-memory ``DatabaseClient`` keeping records per table.

    Understands the statements the session store and sweeper send
    (table definition, count, expired-record delete). Failures can be
    injected per method via ``fail_on`` and for connects via ``fail_connect``.
    """

    def __init__(self) -> None:
        self.tables: dict[str, dict[str, dict[str, Any]]] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.connect_calls = 0
        self.connected = False
        self.fail_connect: BaseException | None = None
        self.fail_on: dict[str, BaseException] = {}
        self.connect_gate: asyncio.Event | None = None
        self.listeners: list[Any] = []

    # Connection lifecycle

    async def connect(self) -> None:
        self.connect_calls += 1
        self.calls.append(("connect",))
        if self.connect_gate is not None:
            await self.connect_gate.wait()
        if self.fail_connect is not None:
            raise self.fail_connect
        self.connected = True

    async def signin(self, credentials: dict[str, str]) -> str:
        self.calls.append(("signin", credentials))
        self._maybe_fail("signin")
        return "token"

    async def authenticate(self, token: str) -> None:
        self.calls.append(("authenticate", token))
        self._maybe_fail("authenticate")

    async def use(self, namespace: str | None, database: str | None) -> None:
        self.calls.append(("use", namespace, database))
        self._maybe_fail("use")

    async def close(self) -> None:
        self.calls.append(("close",))
        self.connected = False

    def add_disconnect_listener(self, listener: Any) -> None:
        self.listeners.append(listener)

    def remove_disconnect_listener(self, listener: Any) -> None:
        self.listeners.remove(listener)

    def drop_connection(self) -> None:
        """Simulate the transport going away."""
        self.connected = False
        for listener in list(self.listeners):
            listener()

    # Data access

    async def select(self, table: str, record_id: str | None = None) -> Any:
        self.calls.append(("select", table, record_id))
        self._maybe_fail("select")
        rows = self.tables.get(table, {})
        if record_id is None:
            return [{**data, "id": rid} for rid, data in rows.items()]
        data = rows.get(record_id)
        return None if data is None else {**data, "id": record_id}

    async def upsert(self, table: str, record_id: str, data: dict[str, Any]) -> Any:
        self.calls.append(("upsert", table, record_id, data))
        self._maybe_fail("upsert")
        self.tables.setdefault(table, {})[record_id] = dict(data)
        return {**data, "id": record_id}

    async def delete(self, table: str, record_id: str | None = None) -> Any:
        self.calls.append(("delete", table, record_id))
        self._maybe_fail("delete")
        rows = self.tables.get(table, {})
        if record_id is None:
            deleted = [{**data, "id": rid} for rid, data in rows.items()]
            rows.clear()
            return deleted
        data = rows.pop(record_id, None)
        return None if data is None else {**data, "id": record_id}

    async def query(self, statement: str, variables: dict[str, Any] | None = None) -> Any:
        variables = variables or {}
        self.calls.append(("query", statement, variables))
        self._maybe_fail("query")

        if statement.startswith("DEFINE"):
            return None

        rows = self.tables.get(variables.get("table", ""), {})
        if statement.startswith("SELECT count()"):
            return [{"count": len(rows)}] if rows else []

        if statement.startswith("DELETE") and "expires" in statement:
            now: datetime = variables["now"]
            expired = [
                rid
                for rid, data in rows.items()
                if data.get("expires") is not None and data["expires"] < now
            ]
            return [{**rows.pop(rid), "id": rid} for rid in expired]

        raise ValueError(f"Unsupported statement: {statement}")

    def method_calls(self, name: str) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == name]

    def _maybe_fail(self, name: str) -> None:
        if name in self.fail_on:
            raise self.fail_on[name]


@pytest.fixture(autouse=True)
def _reset_global_settings() -> None:
    """Ensure the settings singleton does not leak between tests."""
    set_settings(None)
    yield
    set_settings(None)


@pytest.fixture(autouse=True)
def _reset_correlation_id() -> None:
    """Start every test without a correlation id in context."""
    token = correlation_id_var.set(None)
    yield
    correlation_id_var.reset(token)


@pytest.fixture
def settings() -> StoreSettings:
    """Store settings with credentials and namespace selection."""
    return StoreSettings(
        url="ws://localhost:8000/rpc",
        namespace="test",
        database="test",
        username="root",
        password="root",
        table_name="session",
    )


@pytest.fixture
def fake_client() -> FakeDatabaseClient:
    return FakeDatabaseClient()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
