"""
Observability module.
Contains logging, metrics, and tracing setup.
"""

from resilient_queue.observability.logging import get_logger, message_log_context, setup_logging
from resilient_queue.observability.metrics import (
    MetricsCollector,
    get_metrics,
    setup_metrics,
)
from resilient_queue.observability.tracing import get_tracer, setup_tracing

__all__ = [
    "setup_logging",
    "get_logger",
    "message_log_context",
    "setup_metrics",
    "get_metrics",
    "MetricsCollector",
    "setup_tracing",
    "get_tracer",
]
