"""Session store infrastructure.

Provides the SurrealDB-backed session repository, its abstract interface
and a completion-callback facade for callback-style middlewares.
"""

from surreal_sessions.infra.session.callbacks import SessionCallback, SessionStoreCallbacks
from surreal_sessions.infra.session.store import (
    SessionData,
    SessionGetter,
    SessionRecord,
    SessionSetter,
    SessionStore,
    SurrealSessionStore,
)

__all__ = [
    "SessionStore",
    "SurrealSessionStore",
    "SessionRecord",
    "SessionData",
    "SessionGetter",
    "SessionSetter",
    "SessionCallback",
    "SessionStoreCallbacks",
]
