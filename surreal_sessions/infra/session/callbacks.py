"""Callback-style facade over the async session store.

Session middlewares written against a completion-callback convention call
``get(sid, cb)``, ``set(sid, data, cb)`` and so on. Each call schedules the
matching store coroutine on the running loop and invokes ``cb(error, result)``
exactly once, with exactly one of the two populated. ``length`` reports the
count in the result slot, never in the error slot. Each operation logs under
its own correlation id unless the caller already set one.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from surreal_sessions.infra.observability.logging import correlation_scope
from surreal_sessions.infra.session.store import SessionData, SessionStore

logger = logging.getLogger(__name__)

SessionCallback = Callable[[BaseException | None, Any], None]


class SessionStoreCallbacks:
    """Adapt a ``SessionStore`` to ``(error, result)`` completion callbacks.

    Example:
        callbacks = SessionStoreCallbacks(store)

        def on_loaded(error, session):
            if error is not None:
                ...
            ...

        callbacks.get("session-abc", on_loaded)
    """

    def __init__(self, store: SessionStore) -> None:
        self.store = store
        self._tasks: set[asyncio.Task[None]] = set()

    def get(self, session_id: str, callback: SessionCallback) -> asyncio.Task[None]:
        return self._dispatch("get", callback, lambda: self.store.get(session_id))

    def set(
        self, session_id: str, data: SessionData, callback: SessionCallback
    ) -> asyncio.Task[None]:
        return self._dispatch("set", callback, lambda: self.store.set(session_id, data))

    def touch(
        self, session_id: str, data: SessionData, callback: SessionCallback
    ) -> asyncio.Task[None]:
        return self._dispatch("touch", callback, lambda: self.store.touch(session_id, data))

    def destroy(self, session_id: str, callback: SessionCallback) -> asyncio.Task[None]:
        return self._dispatch("destroy", callback, lambda: self.store.destroy(session_id))

    def length(self, callback: SessionCallback) -> asyncio.Task[None]:
        return self._dispatch("length", callback, self.store.length)

    def all(self, callback: SessionCallback) -> asyncio.Task[None]:
        return self._dispatch("all", callback, self.store.all)

    def clear(self, callback: SessionCallback) -> asyncio.Task[None]:
        return self._dispatch("clear", callback, self.store.clear)

    def _dispatch(
        self,
        name: str,
        callback: SessionCallback,
        operation: Callable[[], Awaitable[Any]],
    ) -> asyncio.Task[None]:
        # Raises RuntimeError outside a loop, before any coroutine exists
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._complete(name, callback, operation))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _complete(
        self,
        name: str,
        callback: SessionCallback,
        operation: Callable[[], Awaitable[Any]],
    ) -> None:
        with correlation_scope():
            try:
                result = await operation()
            except Exception as exc:
                _invoke(callback, name, exc, None)
            else:
                _invoke(callback, name, None, result)


def _invoke(
    callback: SessionCallback, name: str, error: BaseException | None, result: Any
) -> None:
    try:
        callback(error, result)
    except Exception:
        # Delivered once; a failing callback is not called again
        logger.exception(
            f"Session {name} callback raised", extra={"operation": name}
        )


__all__ = ["SessionCallback", "SessionStoreCallbacks"]
