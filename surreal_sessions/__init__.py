"""SurrealDB session store - session persistence for web session middleware.

This package stores, retrieves, enumerates, counts and expires session records
in SurrealDB over one long-lived connection with throttled automatic recovery.
"""

__version__ = "0.1.0"
__author__ = "surreal-sessions Contributors"

from surreal_sessions.config import (
    StoreSettings,
    create_settings,
    get_settings,
    load_settings_from_file,
    set_settings,
)
from surreal_sessions.exceptions import (
    ConfigurationError,
    DatabaseConnectionError,
    SessionOperationError,
    SessionStoreError,
)
from surreal_sessions.infra.session import (
    SessionRecord,
    SessionStore,
    SessionStoreCallbacks,
    SurrealSessionStore,
)

__all__ = [
    "StoreSettings",
    "create_settings",
    "__version__",
    "get_settings",
    "load_settings_from_file",
    "set_settings",
    "SessionStoreError",
    "ConfigurationError",
    "DatabaseConnectionError",
    "SessionOperationError",
    "SessionStore",
    "SurrealSessionStore",
    "SessionRecord",
    "SessionStoreCallbacks",
]
