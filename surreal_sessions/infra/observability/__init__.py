"""Observability infrastructure for the session store.

Provides structured logging and Prometheus metrics for monitoring
connection health and session traffic.
"""

from surreal_sessions.infra.observability.logging import (
    CorrelationIDFilter,
    JSONFormatter,
    correlation_id_var,
    correlation_scope,
    get_correlation_id,
    set_correlation_id,
    setup_logging,
    setup_logging_from_settings,
)
from surreal_sessions.infra.observability.metrics import (
    get_metrics_text,
    get_registry,
    record_connection_attempt,
    record_session_operation,
    record_sweep,
    set_connection_up,
)

__all__ = [
    # Logging
    "correlation_id_var",
    "correlation_scope",
    "get_correlation_id",
    "set_correlation_id",
    "CorrelationIDFilter",
    "JSONFormatter",
    "setup_logging",
    "setup_logging_from_settings",
    # Metrics
    "get_registry",
    "get_metrics_text",
    "record_session_operation",
    "record_connection_attempt",
    "set_connection_up",
    "record_sweep",
]
