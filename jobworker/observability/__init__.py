"""
Observability module.
Contains logging, metrics, and tracing setup.
"""

from jobworker.observability.logging import log_context, setup_logging
from jobworker.observability.metrics import (
    MetricsCollector,
    get_metrics,
    setup_metrics,
)
from jobworker.observability.tracing import get_tracer, setup_tracing

__all__ = [
    "setup_logging",
    "log_context",
    "setup_metrics",
    "get_metrics",
    "MetricsCollector",
    "setup_tracing",
    "get_tracer",
]
