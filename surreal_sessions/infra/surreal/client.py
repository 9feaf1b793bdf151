"""SurrealDB client adapter.

Wraps the async ``surrealdb`` SDK behind the narrow ``DatabaseClient``
interface the session store depends on:

- Structured record identifiers (``RecordID(table, session_id)``), never
  string-interpolated ids
- Record ids converted back to plain session ids on the way out
- Per-statement query results unwrapped to the first statement's rows
- Transport failures turned into a single "disconnected" notification per
  live connection, then re-raised to the caller

The SDK has no lifecycle events, so disconnects are detected from failed
calls rather than pushed by the transport.
"""

import logging
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from surrealdb import AsyncSurreal, RecordID
from websockets.exceptions import ConnectionClosed

logger = logging.getLogger(__name__)

DisconnectListener = Callable[[], None]

# Errors that mean the transport itself is gone
_TRANSPORT_ERRORS: tuple[type[BaseException], ...] = (ConnectionClosed, OSError)


@runtime_checkable
class DatabaseClient(Protocol):
    """Outbound contract consumed by the connection manager and session store."""

    async def connect(self) -> None: ...

    async def signin(self, credentials: dict[str, str]) -> Any: ...

    async def authenticate(self, token: str) -> None: ...

    async def use(self, namespace: str | None, database: str | None) -> None: ...

    async def select(self, table: str, record_id: str | None = None) -> Any: ...

    async def upsert(self, table: str, record_id: str, data: dict[str, Any]) -> Any: ...

    async def delete(self, table: str, record_id: str | None = None) -> Any: ...

    async def query(self, statement: str, variables: dict[str, Any] | None = None) -> Any: ...

    async def close(self) -> None: ...

    def add_disconnect_listener(self, listener: DisconnectListener) -> None: ...

    def remove_disconnect_listener(self, listener: DisconnectListener) -> None: ...


class SurrealClient:
    """``DatabaseClient`` implementation backed by ``surrealdb.AsyncSurreal``.

    A fresh SDK handle is created for every connect attempt unless an
    externally constructed handle was supplied, in which case that handle
    is reused.

    Example:
        client = SurrealClient("ws://localhost:8000/rpc")
        await client.connect()
        await client.signin({"username": "root", "password": "root"})
        await client.use("test", "test")

        await client.upsert("sessions", "abc", {"views": 1})
        record = await client.select("sessions", "abc")

        await client.close()
    """

    def __init__(
        self,
        url: str,
        surreal: Any | None = None,
        handle_factory: Callable[[str], Any] = AsyncSurreal,
    ) -> None:
        """Initialize client adapter.

        Args:
            url: SurrealDB endpoint URL
            surreal: Optional externally constructed SDK handle
            handle_factory: Factory used to build SDK handles from the URL
        """
        self.url = url
        self._handle = surreal
        self._owns_handle = surreal is None
        self._handle_factory = handle_factory
        self._connected = False
        self._listeners: list[DisconnectListener] = []

    @property
    def connected(self) -> bool:
        """Whether the last connect succeeded and no transport failure followed."""
        return self._connected

    def add_disconnect_listener(self, listener: DisconnectListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_disconnect_listener(self, listener: DisconnectListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def connect(self) -> None:
        """Open the transport to the configured URL."""
        if self._owns_handle:
            await self._discard_handle()
            self._handle = self._handle_factory(self.url)

        await self._call(self._require_handle().connect)
        self._connected = True

    async def signin(self, credentials: dict[str, str]) -> Any:
        return await self._call(self._require_handle().signin, credentials)

    async def authenticate(self, token: str) -> None:
        await self._call(self._require_handle().authenticate, token)

    async def use(self, namespace: str | None, database: str | None) -> None:
        await self._call(self._require_handle().use, namespace, database)

    async def select(self, table: str, record_id: str | None = None) -> Any:
        if record_id is None:
            rows = await self._call(self._require_handle().select, table)
            return [_plain_record(row) for row in rows or []]

        result = await self._call(self._require_handle().select, RecordID(table, record_id))
        return _plain_record(_single(result))

    async def upsert(self, table: str, record_id: str, data: dict[str, Any]) -> Any:
        result = await self._call(
            self._require_handle().upsert, RecordID(table, record_id), data
        )
        return _plain_record(_single(result))

    async def delete(self, table: str, record_id: str | None = None) -> Any:
        target: Any = table if record_id is None else RecordID(table, record_id)
        return await self._call(self._require_handle().delete, target)

    async def query(self, statement: str, variables: dict[str, Any] | None = None) -> Any:
        result = await self._call(self._require_handle().query, statement, variables or {})
        return _first_statement_result(result)

    async def close(self) -> None:
        """Close the SDK handle without firing disconnect listeners."""
        self._connected = False
        if self._handle is not None:
            await self._handle.close()
        if self._owns_handle:
            self._handle = None

    async def _call(self, method: Callable[..., Any], *args: Any) -> Any:
        try:
            return await method(*args)
        except _TRANSPORT_ERRORS:
            self._notify_disconnected()
            raise

    def _notify_disconnected(self) -> None:
        if not self._connected:
            return

        self._connected = False
        logger.warning("SurrealDB transport lost", extra={"url": self.url})
        for listener in list(self._listeners):
            listener()

    def _require_handle(self) -> Any:
        if self._handle is None:
            raise ConnectionError("SurrealDB client is not connected. Call connect() first.")
        return self._handle

    async def _discard_handle(self) -> None:
        handle = self._handle
        self._handle = None
        if handle is None:
            return
        try:
            await handle.close()
        except Exception as exc:
            # The old transport is usually already dead at this point
            logger.debug("Error closing stale SurrealDB handle", exc_info=exc)


def _single(result: Any) -> Any:
    if isinstance(result, list):
        return result[0] if result else None
    return result


def _plain_record(record: Any) -> Any:
    if isinstance(record, dict) and isinstance(record.get("id"), RecordID):
        return {**record, "id": record["id"].id}
    return record


def _first_statement_result(result: Any) -> Any:
    # Some SDK versions return one {"status", "result"} entry per statement
    if (
        isinstance(result, list)
        and result
        and all(isinstance(item, dict) and "status" in item and "result" in item for item in result)
    ):
        first = result[0]
        if first["status"] != "OK":
            raise RuntimeError(f"SurrealDB statement failed: {first['result']}")
        return first["result"]
    return result


__all__ = ["DatabaseClient", "DisconnectListener", "SurrealClient"]
