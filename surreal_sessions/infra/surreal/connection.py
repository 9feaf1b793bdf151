"""Connection management for the shared SurrealDB handle.

Owns one long-lived ``DatabaseClient`` and its connection state:

- Cold connect: open transport, apply credentials, select namespace/database
- Disconnect notifications flip the state and trigger a reconnect
- Reconnect attempts are throttled to one per cool-down window so a burst
  of operations noticing the same drop cannot start a connection storm
- ``ensure_ready()`` is the gate every data operation passes through

Connection failures are logged and contained here. Callers proceed and
their own database request reports the error.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from surreal_sessions.config import StoreSettings
from surreal_sessions.exceptions import DatabaseConnectionError
from surreal_sessions.infra.observability.metrics import (
    record_connection_attempt,
    set_connection_up,
)
from surreal_sessions.infra.surreal.client import DatabaseClient

# Minimum time between two connect attempts
RECONNECT_COOLDOWN_SECONDS = 5.0


@dataclass
class ConnectionState:
    """Mutable connection state, owned by ConnectionManager.

    Attributes:
        is_connected: Live connectivity as last observed
        has_connected: Whether any connect ever succeeded (never reset)
        last_connection_attempt: Clock reading of the last attempt, if any
    """

    is_connected: bool = False
    has_connected: bool = False
    last_connection_attempt: float | None = None


class ConnectionManager:
    """Connect, watch and throttle-reconnect a single database handle.

    State is only touched from the event loop thread, so no locking is
    needed beyond coalescing concurrent attempts onto one task.

    Example:
        manager = ConnectionManager(SurrealClient(settings.url), settings)
        manager.start()
        await manager.connect()

        # Before every database request
        await manager.ensure_ready()

        await manager.close()
    """

    def __init__(
        self,
        client: DatabaseClient,
        settings: StoreSettings,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize connection manager.

        Args:
            client: Database client whose connection is managed
            settings: Store settings (credentials, namespace, database)
            logger: Optional logger; defaults to the module logger
            clock: Monotonic clock used for throttling
        """
        self.client = client
        self.settings = settings
        self.state = ConnectionState()

        self._logger = logger if logger is not None else logging.getLogger(__name__)
        self._clock = clock
        self._inflight: asyncio.Task[bool] | None = None
        self._background: set[asyncio.Task[bool]] = set()
        self._listening = False

    @property
    def is_connected(self) -> bool:
        return self.state.is_connected

    def start(self) -> None:
        """Subscribe to disconnect notifications from the client."""
        if not self._listening:
            self.client.add_disconnect_listener(self.on_disconnected)
            self._listening = True

    async def close(self) -> None:
        """Unsubscribe, cancel pending attempts and close the client."""
        if self._listening:
            self.client.remove_disconnect_listener(self.on_disconnected)
            self._listening = False

        pending = [task for task in self._background if not task.done()]
        if self._inflight is not None and not self._inflight.done():
            pending.append(self._inflight)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._background.clear()
        self._inflight = None

        self.state.is_connected = False
        set_connection_up(False)

        try:
            await self.client.close()
        except Exception as exc:
            self._logger.error("Error while closing SurrealDB connection", exc_info=exc)

    async def connect(self) -> bool:
        """Run the full connect sequence.

        Returns:
            True if the connection is usable afterwards
        """
        if self.state.is_connected:
            return True
        return await self._attempt("connect")

    def on_disconnected(self) -> None:
        """Handle a lost-connection notification from the client."""
        self.state.is_connected = False
        set_connection_up(False)
        self._logger.warning(
            "Session store lost its SurrealDB connection, reconnecting",
            extra={"url": self.settings.url},
        )

        task = asyncio.get_running_loop().create_task(self.reconnect())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def reconnect(self) -> bool:
        """Re-run the connect sequence unless throttled.

        Returns:
            True if the connection is usable afterwards, False if the attempt
            failed or was skipped by throttling
        """
        if self.state.is_connected:
            return True

        if self._inflight is not None and not self._inflight.done():
            return await asyncio.shield(self._inflight)

        last_attempt = self.state.last_connection_attempt
        if last_attempt is not None:
            elapsed = self._clock() - last_attempt
            if elapsed < RECONNECT_COOLDOWN_SECONDS:
                self._log_throttled(RECONNECT_COOLDOWN_SECONDS - elapsed)
                record_connection_attempt("reconnect", "throttled")
                return False

        return await self._attempt("reconnect")

    async def ensure_ready(self) -> bool:
        """Make sure a usable connection exists before a database request.

        Never raises for connect failures; the caller's own request will
        fail and report the error.

        Returns:
            True if connected
        """
        if self.state.is_connected:
            return True
        if self.state.last_connection_attempt is None:
            return await self.connect()
        return await self.reconnect()

    async def _attempt(self, kind: str) -> bool:
        if self._inflight is not None and not self._inflight.done():
            return await asyncio.shield(self._inflight)

        self.state.last_connection_attempt = self._clock()
        self._inflight = asyncio.get_running_loop().create_task(self._connect_sequence(kind))
        return await asyncio.shield(self._inflight)

    async def _connect_sequence(self, kind: str) -> bool:
        settings = self.settings
        try:
            await self._open_session()
        except DatabaseConnectionError as exc:
            self.state.is_connected = False
            set_connection_up(False)
            record_connection_attempt(kind, "failure")
            self._logger.error(
                f"Failed to {kind} session store to SurrealDB: {exc}",
                extra={"url": settings.url},
                exc_info=exc.__cause__,
            )
            return False

        self.state.is_connected = True
        self.state.has_connected = True
        set_connection_up(True)
        record_connection_attempt(kind, "success")
        self._logger.info(
            "Session store connected to SurrealDB"
            if kind == "connect"
            else "Session store reconnected to SurrealDB",
            extra={
                "url": settings.url,
                "namespace": settings.namespace,
                "database": settings.database,
            },
        )
        return True

    async def _open_session(self) -> None:
        """Connect, authenticate and select namespace/database.

        Raises:
            DatabaseConnectionError: Naming the step that failed
        """
        settings = self.settings
        step = "connect"
        try:
            await self.client.connect()
            if settings.token is not None:
                step = "authenticate"
                await self.client.authenticate(settings.token.get_secret_value())
            elif settings.credentials is not None:
                step = "signin"
                await self.client.signin(settings.credentials)
            if settings.namespace or settings.database:
                step = "use"
                await self.client.use(settings.namespace, settings.database)
        except Exception as e:
            raise DatabaseConnectionError(f"{step} failed: {e}") from e

    def _log_throttled(self, remaining: float) -> None:
        if self.state.has_connected:
            message = (
                "SurrealDB connection dropped; reconnect throttled, "
                f"next attempt allowed in {remaining:.1f}s"
            )
        else:
            message = (
                "SurrealDB never connected; connect attempt throttled, "
                f"next attempt allowed in {remaining:.1f}s"
            )
        self._logger.info(message, extra={"url": self.settings.url})


__all__ = ["ConnectionManager", "ConnectionState", "RECONNECT_COOLDOWN_SECONDS"]
