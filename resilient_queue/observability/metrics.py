"""
Prometheus metrics collection.
"""

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from resilient_queue.constants import (
    CIRCUIT_STATE_VALUES,
    METRIC_CIRCUIT_STATE,
    METRIC_DELETE_FAILURES,
    METRIC_DUPLICATES_DETECTED,
    METRIC_LOOP_ERRORS,
    METRIC_MESSAGES_DELETED,
    METRIC_MESSAGES_PROCESSED,
    METRIC_MESSAGES_PUBLISHED,
    METRIC_MESSAGES_RECEIVED,
    METRIC_OPERATION_FAILURES,
    METRIC_OPERATION_RETRIES,
    METRIC_PROCESSING_DURATION,
    CircuitState,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the queue consumer and publisher.

    Collects metrics for:
    - Messages received, processed, deleted
    - Per-message processing duration
    - Queue operation retries and failures
    - Circuit breaker state
    - Deduplication and publishing
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.messages_received = Counter(
            METRIC_MESSAGES_RECEIVED,
            "Total number of messages received from the queue",
            registry=self._registry,
        )

        self.messages_processed = Counter(
            METRIC_MESSAGES_PROCESSED,
            "Total number of messages processed",
            ["status"],
            registry=self._registry,
        )

        self.processing_duration = Histogram(
            METRIC_PROCESSING_DURATION,
            "Per-message processing duration in seconds",
            ["status"],
            buckets=(0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
            registry=self._registry,
        )

        self.messages_deleted = Counter(
            METRIC_MESSAGES_DELETED,
            "Total number of messages acknowledged (deleted)",
            registry=self._registry,
        )

        self.delete_failures = Counter(
            METRIC_DELETE_FAILURES,
            "Total number of failed acknowledgements",
            registry=self._registry,
        )

        self.loop_errors = Counter(
            METRIC_LOOP_ERRORS,
            "Total number of consumer loop faults",
            registry=self._registry,
        )

        self.operation_retries = Counter(
            METRIC_OPERATION_RETRIES,
            "Total number of retried queue operations",
            ["operation"],
            registry=self._registry,
        )

        self.operation_failures = Counter(
            METRIC_OPERATION_FAILURES,
            "Total number of queue operations that failed after retries",
            ["operation"],
            registry=self._registry,
        )

        self.circuit_state = Gauge(
            METRIC_CIRCUIT_STATE,
            "Circuit breaker state (0=closed, 1=half-open, 2=open)",
            ["client"],
            registry=self._registry,
        )

        self.duplicates_detected = Counter(
            METRIC_DUPLICATES_DETECTED,
            "Total number of duplicate messages rejected on publish",
            registry=self._registry,
        )

        self.messages_published = Counter(
            METRIC_MESSAGES_PUBLISHED,
            "Total number of publish attempts",
            ["status"],
            registry=self._registry,
        )

    def record_received(self, count: int) -> None:
        """Record messages received in one poll."""
        self.messages_received.inc(count)

    def record_processed(self, success: bool, duration_seconds: float) -> None:
        """Record a processed message."""
        status = "succeeded" if success else "failed"
        self.messages_processed.labels(status=status).inc()
        self.processing_duration.labels(status=status).observe(duration_seconds)

    def record_deleted(self, count: int = 1) -> None:
        """Record acknowledged messages."""
        self.messages_deleted.inc(count)

    def record_delete_failure(self) -> None:
        """Record a failed acknowledgement."""
        self.delete_failures.inc()

    def record_loop_error(self) -> None:
        """Record a consumer loop fault."""
        self.loop_errors.inc()

    def record_retry(self, operation: str) -> None:
        """Record a retried queue operation."""
        self.operation_retries.labels(operation=operation).inc()

    def record_operation_failure(self, operation: str) -> None:
        """Record a queue operation that exhausted its retries."""
        self.operation_failures.labels(operation=operation).inc()

    def set_circuit_state(self, client: str, state: CircuitState) -> None:
        """Update the circuit breaker state gauge."""
        self.circuit_state.labels(client=client).set(CIRCUIT_STATE_VALUES[state])

    def record_duplicate(self) -> None:
        """Record a duplicate rejected on publish."""
        self.duplicates_detected.inc()

    def record_published(self, success: bool) -> None:
        """Record a publish attempt."""
        self.messages_published.labels(status="succeeded" if success else "failed").inc()


def setup_metrics(port: int | None = None) -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Args:
        port: If given, also expose metrics over HTTP on this port.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    if port is not None:
        start_http_server(port, registry=_metrics._registry)
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
