"""
Queue client gated by a circuit breaker and a retry executor.

Every operation checks the breaker before each attempt, runs under the
retry executor, and feeds the outcome back to the breaker. Permanent
errors (bad parameters, invalid receipt handles) are surfaced without
retry and are not counted against the breaker, since they say nothing
about the health of the queue service.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from resilient_queue.constants import SPAN_QUEUE_OPERATION
from resilient_queue.exceptions import CircuitOpenError, PermanentError, is_retryable
from resilient_queue.health.monitor import HealthMonitor
from resilient_queue.observability.metrics import MetricsCollector, get_metrics
from resilient_queue.observability.tracing import get_tracer
from resilient_queue.queue.protocol import QueueTransport
from resilient_queue.resilience.circuit_breaker import CircuitBreaker
from resilient_queue.resilience.retry import RetryExecutor, RetryHooks
from resilient_queue.types.message import OutgoingMessage, ReceivedMessage, SendReceipt
from resilient_queue.types.resilience import CircuitBreakerStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")


class QueueRetryHooks(RetryHooks):
    """Retry strategy for queue operations: retry transient errors only."""

    def __init__(self, operation: str, metrics: MetricsCollector):
        self.operation = operation
        self._metrics = metrics

    def should_retry(self, error: BaseException) -> bool:
        return is_retryable(error)

    def on_retry(self, error: BaseException, attempt: int, delay_ms: int) -> None:
        self._metrics.record_retry(self.operation)
        logger.warning(
            f"Queue {self.operation} retry {attempt}: {error}",
            extra={"operation": self.operation, "attempt": attempt, "delay_ms": delay_ms},
        )

    def on_failure(self, error: BaseException, total_attempts: int) -> None:
        self._metrics.record_operation_failure(self.operation)
        logger.error(
            f"Queue {self.operation} failed after {total_attempts} attempts: {error}",
            extra={"operation": self.operation, "attempts": total_attempts},
        )


class ResilientQueueClient:
    """
    QueueClient implementation wrapping a wire-level transport.

    One circuit breaker and one retry executor are owned per client and
    shared by all of its operations.
    """

    def __init__(
        self,
        transport: QueueTransport,
        circuit_breaker: CircuitBreaker | None = None,
        retry_executor: RetryExecutor | None = None,
        name: str = "queue",
        metrics: MetricsCollector | None = None,
        health_monitor: HealthMonitor | None = None,
    ):
        """
        Initialize the client.

        Args:
            transport: Wire-level queue transport.
            circuit_breaker: Breaker gating every call.
            retry_executor: Executor driving retries.
            name: Client name used in logs and metrics.
            metrics: Metrics collector. Defaults to the global collector.
            health_monitor: Receives circuit state updates, if given.
        """
        self.name = name
        self._transport = transport
        self._breaker = circuit_breaker or CircuitBreaker(name=name)
        self._retry = retry_executor or RetryExecutor()
        self._metrics = metrics or get_metrics()
        self._health_monitor = health_monitor

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def retry_executor(self) -> RetryExecutor:
        return self._retry

    def set_health_monitor(self, health_monitor: HealthMonitor | None) -> None:
        self._health_monitor = health_monitor

    async def send(self, message: OutgoingMessage) -> SendReceipt:
        """Send a message through the breaker and retry gate."""
        return await self._execute("send", lambda: self._transport.send_message(message))

    async def receive(
        self,
        max_messages: int,
        wait_seconds: float,
        visibility_timeout_seconds: int | None = None,
    ) -> list[ReceivedMessage]:
        """Receive messages through the breaker and retry gate."""
        return await self._execute(
            "receive",
            lambda: self._transport.receive_messages(
                max_messages,
                wait_seconds,
                visibility_timeout_seconds,
            ),
        )

    async def delete(self, receipt_handle: str) -> None:
        """Acknowledge a message through the breaker and retry gate."""
        await self._execute("delete", lambda: self._transport.delete_message(receipt_handle))

    async def _execute(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        async def attempt() -> T:
            if not self._breaker.can_execute():
                self._publish_state()
                raise CircuitOpenError()
            try:
                result = await call()
            except PermanentError:
                raise
            except Exception:
                self._breaker.record_failure()
                self._publish_state()
                raise
            self._breaker.record_success()
            self._publish_state()
            return result

        with get_tracer().start_as_current_span(SPAN_QUEUE_OPERATION) as span:
            span.set_attribute("queue.client", self.name)
            span.set_attribute("queue.operation", operation)
            return await self._retry.execute_with_retry(
                attempt,
                QueueRetryHooks(operation, self._metrics),
            )

    def _publish_state(self) -> None:
        state = self._breaker.state
        self._metrics.set_circuit_state(self.name, state)
        if self._health_monitor is not None:
            self._health_monitor.update_circuit_state(state)

    def reset_circuit_breaker(self) -> None:
        """Force the breaker closed."""
        self._breaker.reset()
        self._publish_state()

    def get_status(self) -> CircuitBreakerStatus:
        """Snapshot of the client's circuit breaker."""
        return self._breaker.get_status()
