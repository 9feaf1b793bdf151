"""Session storage backed by SurrealDB.

Stores one record per session in a configurable table, keyed by the
structured record id ``(table, session_id)``. Writes are upserts, so a
``set`` or ``touch`` creates or replaces the record.

The payload is stored untouched under the record's ``session`` field, so a
``get`` returns exactly what was written. A sweepable expiry derived from the
payload's ``expires`` value is kept in a separate top-level ``expires`` field.

Every operation first passes the connection manager's readiness gate, which
reconnects (throttled) after a dropped connection. Operations are never
retried: a failure is raised to the caller as ``SessionOperationError``.

Example:
    settings = StoreSettings(
        url="ws://localhost:8000/rpc",
        namespace="test",
        database="test",
        username="root",
        password="root",
        table_name="session",
    )
    store = SurrealSessionStore(settings)
    await store.init()

    await store.set("session-abc", {"views": 1})
    data = await store.get("session-abc")

    await store.destroy("session-abc")
    await store.close()
"""

import inspect
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from surreal_sessions.config import StoreSettings, get_settings, validate_table_name
from surreal_sessions.exceptions import SessionOperationError
from surreal_sessions.infra.jobs.scheduler import JobScheduler
from surreal_sessions.infra.jobs.sweeper import ExpirySweeper
from surreal_sessions.infra.observability.metrics import record_session_operation
from surreal_sessions.infra.surreal.client import DatabaseClient, SurrealClient
from surreal_sessions.infra.surreal.connection import ConnectionManager, ConnectionState

SessionData = dict[str, Any]

# Custom strategies may be plain or coroutine functions
SessionGetter = Callable[[DatabaseClient, str], Any]
SessionSetter = Callable[[DatabaseClient, str, SessionData], Any]

# Only used with a validated (alphanumeric) table name
DEFINE_TABLE_TEMPLATE = (
    "DEFINE TABLE OVERWRITE {table} SCHEMALESS;\n"
    "DEFINE INDEX OVERWRITE {table}_expires ON TABLE {table} FIELDS expires;"
)

COUNT_STATEMENT = "SELECT count() FROM type::table($table) GROUP ALL;"

# Record layout: {"session": <payload as given>, "expires": <UTC datetime>}
SESSION_FIELD = "session"
EXPIRES_FIELD = "expires"


@dataclass(slots=True)
class SessionRecord:
    """A stored session as returned by ``all()``."""

    session_id: str
    data: SessionData


class SessionStore(ABC):
    """Abstract base class for session storage backends.

    Mirrors the capability set a session middleware expects: fetch, upsert,
    refresh, delete, enumerate, count and purge.
    """

    @abstractmethod
    async def init(self) -> None:
        """Connect and prepare the backend. Must be called before use."""

    @abstractmethod
    async def close(self) -> None:
        """Release the connection and stop background work."""

    @abstractmethod
    async def get(self, session_id: str) -> Any:
        """Return the session payload, or None if it does not exist."""

    @abstractmethod
    async def set(self, session_id: str, data: SessionData) -> Any:
        """Create or replace the session payload and return the written result."""

    @abstractmethod
    async def touch(self, session_id: str, data: SessionData) -> Any:
        """Refresh a session. Same semantics as ``set``."""

    @abstractmethod
    async def destroy(self, session_id: str) -> None:
        """Delete a session. Deleting a missing session is not an error."""

    @abstractmethod
    async def length(self) -> int:
        """Return the number of stored sessions."""

    @abstractmethod
    async def all(self) -> list[SessionRecord]:
        """Return every stored session."""

    @abstractmethod
    async def clear(self) -> None:
        """Delete every stored session."""


class SurrealSessionStore(SessionStore):
    """SurrealDB-backed session store sharing one managed connection.

    Optional ``getter``/``setter`` hooks replace the default record fetch and
    upsert for custom schemas. They receive the live database client, the
    session id and (for setters) the payload as given; whatever they return
    is passed back to the caller unchanged.
    """

    def __init__(
        self,
        settings: StoreSettings | None = None,
        *,
        client: DatabaseClient | None = None,
        surreal: Any | None = None,
        getter: SessionGetter | None = None,
        setter: SessionSetter | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        scheduler: JobScheduler | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize session store. Performs no I/O.

        Args:
            settings: Store settings (defaults to the global settings)
            client: Database client override (e.g. a test double)
            surreal: Externally constructed ``AsyncSurreal`` handle to wrap
            getter: Custom fetch strategy
            setter: Custom write strategy
            logger: Optional logger; defaults to the module logger
            scheduler: Scheduler for the expiry sweep (private one if omitted)
            clock: Monotonic clock used for reconnect throttling

        Raises:
            ConfigurationError: If the table name is not purely alphanumeric
        """
        settings = settings if settings is not None else get_settings()

        # Settings built with model_copy()/model_construct() skip validation
        self.table_name = validate_table_name(settings.table_name)
        self.settings = settings

        self._logger = logger if logger is not None else logging.getLogger(__name__)
        self._getter = getter
        self._setter = setter

        self.client: DatabaseClient = (
            client if client is not None else SurrealClient(settings.url, surreal=surreal)
        )
        self.connection = ConnectionManager(
            self.client, settings, logger=self._logger, clock=clock
        )
        self.sweeper: ExpirySweeper | None = None
        if settings.sweep_enabled:
            self.sweeper = ExpirySweeper(
                self.connection,
                self.table_name,
                interval_seconds=settings.sweep_interval_seconds,
                scheduler=scheduler,
                logger=self._logger,
            )

        self._initialized = False
        self._schema_checked = False

    @property
    def connection_state(self) -> ConnectionState:
        return self.connection.state

    async def init(self) -> None:
        """Connect once, bootstrap the table and start the sweeper.

        A failed connect is logged, not raised; later operations retry
        through the readiness gate.
        """
        if self._initialized:
            return
        self._initialized = True

        self.connection.start()
        if await self.connection.connect():
            await self._ensure_table()

        if self.sweeper is not None:
            await self.sweeper.start()

    async def close(self) -> None:
        """Stop the sweeper, unsubscribe from disconnects and close the handle."""
        if not self._initialized:
            return
        self._initialized = False

        if self.sweeper is not None:
            await self.sweeper.stop()
        await self.connection.close()

        self._logger.info("Session store closed", extra={"table": self.table_name})

    async def __aenter__(self) -> "SurrealSessionStore":
        await self.init()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def get(self, session_id: str) -> Any:
        """Fetch a session payload.

        Args:
            session_id: Session identifier

        Returns:
            Session payload (or the custom getter's result), None if missing

        Raises:
            SessionOperationError: If the fetch fails
        """
        operation = "get"
        self._validate_session_id(operation, session_id)
        await self._ready()

        started = time.perf_counter()
        try:
            if self._getter is not None:
                result = await _resolve(self._getter(self.client, session_id))
            else:
                record = await self.client.select(self.table_name, session_id)
                result = _session_payload(record)
        except Exception as e:
            record_session_operation(operation, "error", time.perf_counter() - started)
            raise SessionOperationError(
                f"Failed to retrieve session {session_id}: {e}", operation, session_id
            ) from e

        record_session_operation(
            operation, "miss" if result is None else "hit", time.perf_counter() - started
        )
        self._logger.debug(
            "Session retrieved" if result is not None else "Session not found",
            extra={"session_id": session_id, "table": self.table_name},
        )
        return result

    async def set(self, session_id: str, data: SessionData) -> Any:
        """Create or replace a session record.

        Args:
            session_id: Session identifier
            data: Session payload

        Returns:
            The written payload (or the custom setter's result)

        Raises:
            SessionOperationError: If the write fails
        """
        return await self._write("set", session_id, data)

    async def touch(self, session_id: str, data: SessionData) -> Any:
        """Refresh a session by rewriting it, exactly like ``set``."""
        return await self._write("touch", session_id, data)

    async def destroy(self, session_id: str) -> None:
        """Delete a session record.

        Raises:
            SessionOperationError: If the delete fails
        """
        operation = "destroy"
        self._validate_session_id(operation, session_id)
        await self._ready()

        started = time.perf_counter()
        try:
            await self.client.delete(self.table_name, session_id)
        except Exception as e:
            record_session_operation(operation, "error", time.perf_counter() - started)
            raise SessionOperationError(
                f"Failed to delete session {session_id}: {e}", operation, session_id
            ) from e

        record_session_operation(operation, "success", time.perf_counter() - started)
        self._logger.debug(
            "Session deleted", extra={"session_id": session_id, "table": self.table_name}
        )

    async def length(self) -> int:
        """Count stored sessions.

        Raises:
            SessionOperationError: If the count query fails
        """
        operation = "length"
        await self._ready()

        started = time.perf_counter()
        try:
            rows = await self.client.query(COUNT_STATEMENT, {"table": self.table_name})
            count = int(rows[0]["count"]) if rows else 0
        except Exception as e:
            record_session_operation(operation, "error", time.perf_counter() - started)
            raise SessionOperationError(f"Failed to count sessions: {e}", operation) from e

        record_session_operation(operation, "success", time.perf_counter() - started)
        return count

    async def all(self) -> list[SessionRecord]:
        """List every stored session.

        Raises:
            SessionOperationError: If the table select fails
        """
        operation = "all"
        await self._ready()

        started = time.perf_counter()
        try:
            rows = await self.client.select(self.table_name)
            records = [
                SessionRecord(session_id=str(row["id"]), data=_session_payload(row))
                for row in rows or []
            ]
        except Exception as e:
            record_session_operation(operation, "error", time.perf_counter() - started)
            raise SessionOperationError(f"Failed to list sessions: {e}", operation) from e

        record_session_operation(operation, "success", time.perf_counter() - started)
        return records

    async def clear(self) -> None:
        """Delete every stored session.

        Raises:
            SessionOperationError: If the table delete fails
        """
        operation = "clear"
        await self._ready()

        started = time.perf_counter()
        try:
            await self.client.delete(self.table_name)
        except Exception as e:
            record_session_operation(operation, "error", time.perf_counter() - started)
            raise SessionOperationError(f"Failed to clear sessions: {e}", operation) from e

        record_session_operation(operation, "success", time.perf_counter() - started)
        self._logger.info("Session table cleared", extra={"table": self.table_name})

    async def _write(self, operation: str, session_id: str, data: SessionData) -> Any:
        self._validate_session_id(operation, session_id)
        await self._ready()

        started = time.perf_counter()
        try:
            if self._setter is not None:
                result = await _resolve(self._setter(self.client, session_id, data))
            else:
                written = await self.client.upsert(
                    self.table_name, session_id, build_record(data)
                )
                result = _session_payload(written)
        except Exception as e:
            record_session_operation(operation, "error", time.perf_counter() - started)
            raise SessionOperationError(
                f"Failed to store session {session_id}: {e}", operation, session_id
            ) from e

        record_session_operation(operation, "success", time.perf_counter() - started)
        self._logger.debug(
            "Session stored",
            extra={"session_id": session_id, "table": self.table_name, "operation": operation},
        )
        return result

    async def _ready(self) -> None:
        await self.connection.ensure_ready()
        if self.connection.is_connected and not self._schema_checked:
            await self._ensure_table()

    async def _ensure_table(self) -> None:
        """Best-effort, idempotent table definition."""
        self._schema_checked = True
        try:
            await self.client.query(DEFINE_TABLE_TEMPLATE.format(table=self.table_name))
        except Exception as exc:
            self._logger.error(
                f"Failed to define session table {self.table_name}: {exc}",
                extra={"table": self.table_name},
                exc_info=exc,
            )
            return

        self._logger.info("Session table ready", extra={"table": self.table_name})

    @staticmethod
    def _validate_session_id(operation: str, session_id: str) -> None:
        if not isinstance(session_id, str) or not session_id:
            raise SessionOperationError(
                "Session ID must be a non-empty string", operation, session_id or None
            )


def build_record(data: Mapping[str, Any]) -> dict[str, Any]:
    """Build the record content written for a session payload.

    The payload is stored verbatim under ``session``. When its ``expires``
    value can be read as a point in time, a timezone-aware UTC copy is
    stored alongside as the record's ``expires`` field for the sweep.
    """
    record: dict[str, Any] = {SESSION_FIELD: dict(data)}
    expires_at = session_expiry(data)
    if expires_at is not None:
        record[EXPIRES_FIELD] = expires_at
    return record


def session_expiry(data: Mapping[str, Any]) -> datetime | None:
    """Read a payload's ``expires`` value as an aware UTC datetime.

    Accepts datetimes (naive ones are taken as UTC), epoch seconds and
    ISO-8601 strings. Anything else yields None, so the record is never
    swept.
    """
    value = data.get("expires")
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value, UTC)
        except (OverflowError, OSError, ValueError):
            return None
    return None


def _session_payload(record: Any) -> Any:
    if not isinstance(record, dict):
        return record
    if SESSION_FIELD in record:
        return record[SESSION_FIELD]
    # Flat records written without the envelope
    return {key: value for key, value in record.items() if key != "id"}


async def _resolve(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


__all__ = [
    "SessionStore",
    "SurrealSessionStore",
    "SessionRecord",
    "SessionData",
    "SessionGetter",
    "SessionSetter",
    "build_record",
    "session_expiry",
    "COUNT_STATEMENT",
    "DEFINE_TABLE_TEMPLATE",
    "EXPIRES_FIELD",
    "SESSION_FIELD",
]
