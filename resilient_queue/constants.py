"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class CircuitState(StrEnum):
    """
    Circuit breaker states.

    State transitions:
    - CLOSED -> OPEN (failure count reaches threshold)
    - OPEN -> HALF_OPEN (open timeout elapsed, checked on can_execute)
    - HALF_OPEN -> CLOSED (success count reaches threshold)
    - HALF_OPEN -> OPEN (failure count still at or above threshold)
    """

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class ProcessingMode(StrEnum):
    """Message processing strategies."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class DedupStrategy(StrEnum):
    """Strategies for generating deduplication keys."""

    CONTENT = "content"
    TIMESTAMP = "timestamp"
    HYBRID = "hybrid"


class ConsumerState(StrEnum):
    """
    Consumer lifecycle states.

    State transitions:
    - IDLE -> RUNNING (start)
    - RUNNING -> STOPPED (stop observed by the loop)
    - STOPPED -> RUNNING (start again)
    """

    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class HealthStatus(StrEnum):
    """Overall health levels reported by the health monitor."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


# Numeric encoding used for the circuit state gauge
CIRCUIT_STATE_VALUES: dict[CircuitState, int] = {
    CircuitState.CLOSED: 0,
    CircuitState.HALF_OPEN: 1,
    CircuitState.OPEN: 2,
}

# Error names the queue service uses for transient failures
RETRYABLE_ERROR_CODES: frozenset[str] = frozenset(
    {
        "ThrottlingException",
        "ServiceUnavailableException",
        "InternalServerError",
        "NetworkingError",
        "TimeoutError",
    }
)

# System attribute names carried on received messages
ATTR_MESSAGE_GROUP_ID = "MessageGroupId"
ATTR_MESSAGE_DEDUPLICATION_ID = "MessageDeduplicationId"
ATTR_APPROXIMATE_RECEIVE_COUNT = "ApproximateReceiveCount"

# Queue limits
MAX_RECEIVE_BATCH = 10
MAX_WAIT_TIME_SECONDS = 20
MAX_DELAY_SECONDS = 900

# Health thresholds
DEGRADED_FAILURE_RATE = 0.1
MAX_REPORTED_ALERTS = 10

# Metrics names
METRIC_MESSAGES_RECEIVED = "queue_messages_received_total"
METRIC_MESSAGES_PROCESSED = "queue_messages_processed_total"
METRIC_PROCESSING_DURATION = "queue_message_processing_duration_seconds"
METRIC_MESSAGES_DELETED = "queue_messages_deleted_total"
METRIC_DELETE_FAILURES = "queue_message_delete_failures_total"
METRIC_LOOP_ERRORS = "queue_consumer_loop_errors_total"
METRIC_OPERATION_RETRIES = "queue_operation_retries_total"
METRIC_OPERATION_FAILURES = "queue_operation_failures_total"
METRIC_CIRCUIT_STATE = "queue_circuit_breaker_state"
METRIC_DUPLICATES_DETECTED = "queue_duplicates_detected_total"
METRIC_MESSAGES_PUBLISHED = "queue_messages_published_total"

# Trace span names
SPAN_PROCESS_MESSAGE = "process_message"
SPAN_QUEUE_OPERATION = "queue_operation"
SPAN_PUBLISH_MESSAGE = "publish_message"
