"""Prometheus metrics for observability.

Provides metrics collection for session operations, connection recovery
and expiry sweeps.
"""

import logging

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)

# Global registry for metrics
_registry = CollectorRegistry()


# Session Operation Metrics
session_operations_total = Counter(
    "surreal_sessions_operations_total",
    "Total number of session store operations",
    ["operation", "status"],
    registry=_registry,
)

session_operation_duration_seconds = Histogram(
    "surreal_sessions_operation_duration_seconds",
    "Duration of session store operations in seconds",
    ["operation"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
    registry=_registry,
)

# Connection Metrics
connection_attempts_total = Counter(
    "surreal_sessions_connection_attempts_total",
    "Total number of connect/reconnect attempts",
    ["kind", "outcome"],
    registry=_registry,
)

connection_up = Gauge(
    "surreal_sessions_connection_up",
    "Database connection state (1=connected, 0=disconnected)",
    registry=_registry,
)

# Expiry Sweep Metrics
sweeps_total = Counter(
    "surreal_sessions_sweeps_total",
    "Total number of expiry sweeps",
    ["status"],
    registry=_registry,
)

swept_sessions_total = Counter(
    "surreal_sessions_swept_sessions_total",
    "Total number of expired session records deleted by sweeps",
    registry=_registry,
)


def get_registry() -> CollectorRegistry:
    """Get the metrics registry.

    Returns:
        Prometheus collector registry
    """
    return _registry


def get_metrics_text() -> str:
    """Get metrics in Prometheus text format.

    Returns:
        Metrics in Prometheus exposition format
    """
    return generate_latest(_registry).decode("utf-8")


def record_session_operation(operation: str, status: str, duration: float) -> None:
    """Record metrics for a session store operation.

    Args:
        operation: Operation name (get/set/destroy/length/all/clear)
        status: Outcome (hit/miss/success/error)
        duration: Execution duration in seconds
    """
    session_operations_total.labels(operation=operation, status=status).inc()
    session_operation_duration_seconds.labels(operation=operation).observe(duration)


def record_connection_attempt(kind: str, outcome: str) -> None:
    """Record a connect or reconnect attempt.

    Args:
        kind: connect or reconnect
        outcome: success, failure or throttled
    """
    connection_attempts_total.labels(kind=kind, outcome=outcome).inc()


def set_connection_up(connected: bool) -> None:
    """Update the connection state gauge."""
    connection_up.set(1.0 if connected else 0.0)


def record_sweep(success: bool, deleted: int = 0) -> None:
    """Record the outcome of an expiry sweep.

    Args:
        success: Whether the sweep statement succeeded
        deleted: Number of records removed
    """
    sweeps_total.labels(status="success" if success else "error").inc()
    if deleted:
        swept_sessions_total.inc(deleted)


__all__ = [
    "get_registry",
    "get_metrics_text",
    "record_session_operation",
    "record_connection_attempt",
    "set_connection_up",
    "record_sweep",
]
