"""
Consumer process for queue messages.

The consumer long-polls the queue, hands each batch to the processing
engine and acknowledges only the messages whose handler succeeded. Failed
messages stay unacknowledged so the queue redelivers them once their
visibility timeout expires.
"""

import asyncio
import inspect
import logging
import signal
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from resilient_queue.config import Settings, get_settings
from resilient_queue.constants import (
    MAX_RECEIVE_BATCH,
    MAX_WAIT_TIME_SECONDS,
    ConsumerState,
    ProcessingMode,
)
from resilient_queue.consumer.engine import ProcessingConfig, ProcessingEngine
from resilient_queue.consumer.handlers import get_handler
from resilient_queue.exceptions import LoopFault
from resilient_queue.health.monitor import HealthMonitor
from resilient_queue.observability.logging import setup_logging
from resilient_queue.observability.metrics import MetricsCollector, get_metrics, setup_metrics
from resilient_queue.observability.tracing import setup_tracing
from resilient_queue.queue.client import ResilientQueueClient
from resilient_queue.queue.protocol import HealthSink, MessageHandler, QueueClient, QueueTransport
from resilient_queue.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from resilient_queue.resilience.retry import RetryExecutor, RetryPolicy
from resilient_queue.types.message import BatchResult, MessageResult

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class ConsumerConfig(BaseModel):
    """Consumer polling configuration."""

    model_config = ConfigDict(frozen=True)

    max_messages: int = Field(default=10, ge=1, le=MAX_RECEIVE_BATCH)
    wait_time_seconds: int = Field(default=20, ge=0, le=MAX_WAIT_TIME_SECONDS)
    visibility_timeout_seconds: int = Field(default=30, ge=0)
    polling_interval_ms: int = Field(default=1_000, ge=0)
    throttle_delay_ms: int = Field(default=0, ge=0)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ConsumerConfig":
        return cls(
            max_messages=settings.consumer_max_messages,
            wait_time_seconds=settings.consumer_wait_time_seconds,
            visibility_timeout_seconds=settings.consumer_visibility_timeout_seconds,
            polling_interval_ms=settings.consumer_polling_interval_ms,
            throttle_delay_ms=settings.consumer_throttle_delay_ms,
        )


def _is_coroutine_handler(handler: Any) -> bool:
    return inspect.iscoroutinefunction(handler) or inspect.iscoroutinefunction(
        getattr(handler, "__call__", None)
    )


class Consumer:
    """
    Queue consumer that polls for and processes messages.

    Features:
    - Long polling through a breaker and retry gated queue client
    - Acknowledges only successfully handled messages
    - Backs off on loop faults instead of exiting
    - Graceful shutdown on SIGTERM/SIGINT
    """

    def __init__(
        self,
        client: QueueClient,
        engine: ProcessingEngine | None = None,
        config: ConsumerConfig | None = None,
        health_monitor: HealthSink | None = None,
        metrics: MetricsCollector | None = None,
        sleep: Sleep | None = None,
    ):
        """
        Initialize the consumer.

        Args:
            client: Queue client used to receive and delete messages.
            engine: Processing engine. Defaults to ProcessingEngine().
            config: Polling configuration. Defaults to ConsumerConfig().
            health_monitor: Sink for per-message outcomes.
            metrics: Metrics collector. Defaults to the global collector.
            sleep: Coroutine function for idle waits (seconds). Defaults to
                a wait that ``stop()`` interrupts.
        """
        self._client = client
        self._metrics = metrics or get_metrics()
        self._engine = engine or ProcessingEngine(metrics=self._metrics)
        self._config = config or ConsumerConfig()
        self._health_monitor = health_monitor
        self._sleep = sleep

        self._state = ConsumerState.IDLE
        self._running = False
        self._handler: MessageHandler | None = None
        self._stop_event = asyncio.Event()
        self._reset_counters()

    @property
    def state(self) -> ConsumerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def engine(self) -> ProcessingEngine:
        return self._engine

    @property
    def processing_mode(self) -> ProcessingMode:
        return self._engine.mode

    @processing_mode.setter
    def processing_mode(self, mode: ProcessingMode | str) -> None:
        self._engine.set_mode(mode)

    def set_health_monitor(self, health_monitor: HealthSink | None) -> None:
        self._health_monitor = health_monitor

    async def start(self, handler: MessageHandler) -> None:
        """
        Run the polling loop until ``stop()`` is called.

        Args:
            handler: Coroutine function called as ``handler(body, context)``.

        Raises:
            TypeError: If the handler is not a coroutine function.
            RuntimeError: If the consumer is already running.
        """
        if not _is_coroutine_handler(handler):
            raise TypeError("Message handler must be an async callable")
        if self._running:
            raise RuntimeError("Consumer is already running")

        self._handler = handler
        self._running = True
        self._stop_event = asyncio.Event()
        self._state = ConsumerState.RUNNING

        logger.info(
            "Consumer starting",
            extra={
                "max_messages": self._config.max_messages,
                "mode": str(self._engine.mode),
            },
        )

        polling_interval = self._config.polling_interval_ms / 1000

        try:
            while self._running:
                try:
                    received = await self._poll_and_process()

                    if received == 0:
                        await self._pause(polling_interval)
                    elif self._config.throttle_delay_ms > 0:
                        await self._pause(self._config.throttle_delay_ms / 1000)

                except Exception as e:
                    self._loop_errors += 1
                    self._metrics.record_loop_error()
                    logger.exception(f"Error in consumer loop: {e}")
                    await self._pause(polling_interval * 2)
        finally:
            self._running = False
            self._state = ConsumerState.STOPPED
            logger.info("Consumer stopped")

    async def stop(self) -> None:
        """Stop the consumer gracefully; in-flight work finishes first."""
        logger.info("Consumer stopping")
        self._running = False
        self._stop_event.set()

    async def _pause(self, seconds: float) -> None:
        if not self._running:
            return
        if self._sleep is not None:
            await self._sleep(seconds)
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return

    async def _poll_and_process(self) -> int:
        """
        Receive one batch, process it and acknowledge successes.

        Returns:
            Number of messages received.
        """
        try:
            messages = await self._client.receive(
                self._config.max_messages,
                self._config.wait_time_seconds,
                self._config.visibility_timeout_seconds,
            )
        except Exception as e:
            raise LoopFault(f"Failed to receive messages: {e}") from e

        if not messages:
            return 0

        self._messages_received += len(messages)
        self._metrics.record_received(len(messages))
        logger.debug(f"Received {len(messages)} messages")

        batch = await self._engine.process_messages(messages, self._handler)

        await self._acknowledge(batch.succeeded)
        self._report(batch)

        return len(messages)

    async def _acknowledge(self, succeeded: list[MessageResult]) -> None:
        """Delete handled messages; a failed delete leaves the message for redelivery."""
        if not succeeded:
            return

        outcomes = await asyncio.gather(
            *(self._client.delete(result.receipt_handle) for result in succeeded),
            return_exceptions=True,
        )

        deleted = 0
        for result, outcome in zip(succeeded, outcomes):
            if isinstance(outcome, BaseException):
                self._delete_failures += 1
                self._metrics.record_delete_failure()
                logger.error(
                    f"Failed to delete message: {outcome}",
                    extra={"message_id": result.message_id},
                )
            else:
                deleted += 1

        if deleted:
            self._messages_deleted += deleted
            self._metrics.record_deleted(deleted)

    def _report(self, batch: BatchResult) -> None:
        if self._health_monitor is None:
            return
        for result in batch.results:
            if result.success:
                self._health_monitor.record_success(result.processing_time_ms)
            else:
                self._health_monitor.record_failure(result.error or "Unknown error")

    def get_stats(self) -> dict[str, Any]:
        """Consumer counters merged with the engine's processing statistics."""
        return {
            "state": str(self._state),
            "messages_received": self._messages_received,
            "messages_deleted": self._messages_deleted,
            "delete_failures": self._delete_failures,
            "loop_errors": self._loop_errors,
            **self._engine.get_stats(),
        }

    def reset_stats(self) -> None:
        self._reset_counters()
        self._engine.reset_stats()

    def _reset_counters(self) -> None:
        self._messages_received = 0
        self._messages_deleted = 0
        self._delete_failures = 0
        self._loop_errors = 0

    def get_config(self) -> dict[str, Any]:
        return {
            **self._config.model_dump(),
            "processing": self._engine.config.model_dump(mode="json"),
        }


async def run_async(
    transport: QueueTransport,
    handler: MessageHandler | None = None,
) -> None:
    """
    Run a consumer against ``transport`` until SIGTERM/SIGINT.

    Args:
        transport: Wire-level queue transport.
        handler: Message handler. Defaults to the registered handler named
            by ``consumer_handler``.
    """
    settings = get_settings()
    setup_logging()
    metrics = setup_metrics(settings.prometheus_port)
    if settings.tracing_enabled:
        setup_tracing()

    if handler is None:
        handler = get_handler(settings.consumer_handler)
        if handler is None:
            raise ValueError(f"No handler registered: {settings.consumer_handler}")

    health_monitor = HealthMonitor()
    client = ResilientQueueClient(
        transport,
        circuit_breaker=CircuitBreaker(
            CircuitBreakerConfig.from_settings(settings),
            name="consumer",
        ),
        retry_executor=RetryExecutor(RetryPolicy.from_settings(settings)),
        name="consumer",
        metrics=metrics,
        health_monitor=health_monitor,
    )
    consumer = Consumer(
        client,
        engine=ProcessingEngine(ProcessingConfig.from_settings(settings), metrics=metrics),
        config=ConsumerConfig.from_settings(settings),
        health_monitor=health_monitor,
        metrics=metrics,
    )

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(consumer.stop())
        )

    await consumer.start(handler)
