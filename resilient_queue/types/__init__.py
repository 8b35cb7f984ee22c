"""
Type definitions for the resilient queue.
Contains input/output type definitions for all components, grouped by module.
"""

from resilient_queue.types.health import (
    Alert,
    HealthCheckResult,
    HealthChecksReport,
    HealthMetrics,
    HealthReport,
)
from resilient_queue.types.message import (
    BatchResult,
    MessageContext,
    MessageResult,
    OutgoingMessage,
    ProcessingFailure,
    PublishRequest,
    PublishResult,
    ReceivedMessage,
    SendReceipt,
)
from resilient_queue.types.resilience import (
    CircuitBreakerStatus,
    DedupCacheStats,
    RetryAttempt,
    RetryReport,
)

__all__ = [
    # Message types
    "ReceivedMessage",
    "OutgoingMessage",
    "SendReceipt",
    "MessageContext",
    "MessageResult",
    "ProcessingFailure",
    "BatchResult",
    "PublishRequest",
    "PublishResult",
    # Resilience types
    "CircuitBreakerStatus",
    "RetryAttempt",
    "RetryReport",
    "DedupCacheStats",
    # Health types
    "Alert",
    "HealthCheckResult",
    "HealthChecksReport",
    "HealthMetrics",
    "HealthReport",
]
