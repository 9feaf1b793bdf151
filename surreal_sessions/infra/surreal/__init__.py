"""SurrealDB connectivity for the session store.

Provides the outbound database contract, its SDK-backed implementation and
the connection manager that keeps a single handle usable.
"""

from surreal_sessions.infra.surreal.client import (
    DatabaseClient,
    DisconnectListener,
    SurrealClient,
)
from surreal_sessions.infra.surreal.connection import (
    RECONNECT_COOLDOWN_SECONDS,
    ConnectionManager,
    ConnectionState,
)

__all__ = [
    "DatabaseClient",
    "DisconnectListener",
    "SurrealClient",
    "ConnectionManager",
    "ConnectionState",
    "RECONNECT_COOLDOWN_SECONDS",
]
