"""Logging setup for the session store.

Records carry a correlation id taken from a context variable. Store
operations dispatched through ``SessionStoreCallbacks`` and each expiry
sweep run inside ``correlation_scope()``, so every line they log can be
grouped by that id. Output is either one JSON object per line or a plain
text line with the id in the fourth column.
"""

import contextvars
import json
import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from surreal_sessions.config import StoreSettings

NO_CORRELATION_ID = "no-correlation-id"

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(correlation_id)s - %(message)s"

correlation_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id",
    default=None,
)

# ``extra=`` keys the store, connection and sweeper attach to their records
SESSION_LOG_FIELDS = (
    "session_id",
    "table",
    "operation",
    "job_id",
    "url",
    "namespace",
    "database",
    "deleted",
    "interval_seconds",
)

# Third-party loggers capped at WARNING
_QUIET_LOGGERS = ("websockets", "apscheduler")


def _new_correlation_id() -> str:
    return str(uuid.uuid4())


def get_correlation_id() -> str:
    """Return the current correlation id, assigning a fresh one if unset."""
    current = correlation_id_var.get()
    if current:
        return current
    current = _new_correlation_id()
    correlation_id_var.set(current)
    return current


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_var.set(correlation_id)


@contextmanager
def correlation_scope(correlation_id: str | None = None) -> Iterator[str]:
    """Run a block under a correlation id and restore the previous one after.

    Without an explicit id the caller's id is kept when one is set, and a
    new one is generated otherwise.

    Example:
        with correlation_scope() as cid:
            logger.info("Session loaded", extra={"session_id": sid})
    """
    scoped = correlation_id or correlation_id_var.get() or _new_correlation_id()
    token = correlation_id_var.set(scoped)
    try:
        yield scoped
    finally:
        correlation_id_var.reset(token)


class CorrelationIDFilter(logging.Filter):
    """Stamp ``record.correlation_id`` so formatters can rely on it."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get() or NO_CORRELATION_ID  # type: ignore
        return True


class JSONFormatter(logging.Formatter):
    """Render a record as a single JSON line.

    Session fields passed through ``extra=`` are copied when present; values
    JSON cannot encode (datetimes, record ids) are written with ``str()``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = self._base_fields(record)
        entry.update(self._session_fields(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            entry["stack_info"] = record.stack_info
        return json.dumps(entry, default=str)

    @staticmethod
    def _base_fields(record: logging.LogRecord) -> dict[str, Any]:
        return {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", NO_CORRELATION_ID),
        }

    @staticmethod
    def _session_fields(record: logging.LogRecord) -> dict[str, Any]:
        return {
            name: getattr(record, name) for name in SESSION_LOG_FIELDS if hasattr(record, name)
        }


def _build_handler(
    handler: logging.Handler, level: str, formatter: logging.Formatter
) -> logging.Handler:
    handler.setLevel(level)
    handler.addFilter(CorrelationIDFilter())
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: str | None = None,
) -> None:
    """Replace the root handlers with the session store's handlers.

    Args:
        level: Log level name for the root logger and its handlers
        json_format: JSON lines on stderr when True, plain text otherwise
        log_file: Optional path that additionally receives JSON lines
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_formatter = (
        JSONFormatter()
        if json_format
        else logging.Formatter(fmt=TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    )
    root_logger.addHandler(
        _build_handler(logging.StreamHandler(sys.stderr), level, console_formatter)
    )
    if log_file:
        root_logger.addHandler(
            _build_handler(logging.FileHandler(log_file), level, JSONFormatter())
        )

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.debug(
        "Logging configured",
        extra={"level": level, "json_format": json_format, "log_file": log_file},
    )


def setup_logging_from_settings(settings: "StoreSettings") -> None:
    """Configure logging from store settings (log_level, log_format)."""
    setup_logging(level=settings.log_level, json_format=settings.log_format == "json")


__all__ = [
    "NO_CORRELATION_ID",
    "SESSION_LOG_FIELDS",
    "correlation_id_var",
    "correlation_scope",
    "get_correlation_id",
    "set_correlation_id",
    "CorrelationIDFilter",
    "JSONFormatter",
    "setup_logging",
    "setup_logging_from_settings",
]
