"""
Observability Module for Odoo User Provisioning

Provides:
- Structured logging with correlation IDs (organization, user, saga step)
- Metrics collection (sagas, remote calls, warnings, step timings)
"""

from core.observability.metrics import (
    MetricsCollector,
    get_metrics,
    record_saga_started,
    record_saga_completed,
    record_saga_failed,
    record_compensation,
    record_remote_call,
    record_session_refresh,
    record_authentication,
    record_warning,
    record_processing_time,
)

from core.observability.logging import (
    get_logger,
    configure_logging,
    CorrelationContext,
    with_correlation,
)

__all__ = [
    # Metrics
    "MetricsCollector",
    "get_metrics",
    "record_saga_started",
    "record_saga_completed",
    "record_saga_failed",
    "record_compensation",
    "record_remote_call",
    "record_session_refresh",
    "record_authentication",
    "record_warning",
    "record_processing_time",
    # Logging
    "get_logger",
    "configure_logging",
    "CorrelationContext",
    "with_correlation",
]
