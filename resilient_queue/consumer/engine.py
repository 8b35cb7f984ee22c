"""
Processing engine for received message batches.

Runs a handler over each message either sequentially (input order, one at
a time) or in parallel (batches of ``batch_size`` with at most
``max_concurrency`` handlers in flight). A failing message never aborts
the batch: every message ends up either counted as successful or listed in
the batch result's errors.
"""

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from resilient_queue.config import Settings
from resilient_queue.constants import SPAN_PROCESS_MESSAGE, ProcessingMode
from resilient_queue.exceptions import ProcessingError
from resilient_queue.observability.logging import message_log_context
from resilient_queue.observability.metrics import MetricsCollector, get_metrics
from resilient_queue.observability.tracing import get_tracer
from resilient_queue.queue.protocol import MessageHandler
from resilient_queue.types.message import (
    BatchResult,
    MessageContext,
    MessageResult,
    ReceivedMessage,
)

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class ProcessingConfig(BaseModel):
    """Processing engine configuration."""

    model_config = ConfigDict(frozen=True)

    mode: ProcessingMode = ProcessingMode.SEQUENTIAL
    batch_size: int = Field(default=5, ge=1)
    max_concurrency: int = Field(default=10, ge=1)
    throttle_delay_ms: int = Field(default=0, ge=0)
    handler_timeout_seconds: float | None = Field(default=None, gt=0)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProcessingConfig":
        return cls(
            mode=ProcessingMode(settings.processing_mode),
            batch_size=settings.processing_batch_size,
            max_concurrency=settings.processing_max_concurrency,
            throttle_delay_ms=settings.processing_throttle_delay_ms,
            handler_timeout_seconds=settings.processing_handler_timeout_seconds,
        )


class ProcessingEngine:
    """
    Applies a message handler to batches of received messages.

    Features:
    - Sequential mode preserving input order
    - Parallel mode bounded by batch size and a concurrency semaphore
    - Optional throttle delay between messages or batches
    - Optional per-message handler timeout
    - Rolling processing statistics
    """

    def __init__(
        self,
        config: ProcessingConfig | None = None,
        metrics: MetricsCollector | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.perf_counter,
    ):
        """
        Initialize the engine.

        Args:
            config: Processing configuration. Defaults to ProcessingConfig().
            metrics: Metrics collector. Defaults to the global collector.
            sleep: Coroutine function used for throttle delays (seconds).
            clock: Returns seconds; used to time each message.
        """
        self._config = config or ProcessingConfig()
        self._metrics = metrics or get_metrics()
        self._sleep = sleep
        self._clock = clock
        self.reset_stats()

    @property
    def config(self) -> ProcessingConfig:
        return self._config

    @property
    def mode(self) -> ProcessingMode:
        return self._config.mode

    def set_mode(self, mode: ProcessingMode | str) -> None:
        """Switch between sequential and parallel processing."""
        self.update_config(mode=ProcessingMode(mode))
        logger.info(f"Processing mode set to {self._config.mode}")

    def update_config(self, **changes: Any) -> ProcessingConfig:
        """Replace configuration fields. Values are validated like a new config."""
        self._config = ProcessingConfig.model_validate(
            {**self._config.model_dump(), **changes}
        )
        return self._config

    async def process_messages(
        self,
        messages: list[ReceivedMessage],
        handler: MessageHandler,
        *,
        mode: ProcessingMode | None = None,
        batch_size: int | None = None,
        max_concurrency: int | None = None,
        throttle_delay_ms: int | None = None,
    ) -> BatchResult:
        """
        Process a batch of messages.

        Keyword arguments override the engine configuration for this call and
        are validated like the configuration itself.

        Args:
            messages: Messages as received from the queue.
            handler: Coroutine function called as ``handler(body, context)``.

        Returns:
            BatchResult with per-message outcomes.

        Raises:
            pydantic.ValidationError: If an override is out of range.
        """
        config = self._resolve_config(
            mode=mode,
            batch_size=batch_size,
            max_concurrency=max_concurrency,
            throttle_delay_ms=throttle_delay_ms,
        )
        mode = config.mode
        started = self._clock()

        if mode == ProcessingMode.PARALLEL:
            results = await self._process_parallel(
                messages,
                handler,
                config.batch_size,
                config.max_concurrency,
                config.throttle_delay_ms,
            )
        else:
            results = await self._process_sequential(
                messages, handler, config.throttle_delay_ms
            )

        elapsed_ms = (self._clock() - started) * 1000
        self._last_batch_time_ms = elapsed_ms
        batch = BatchResult.from_results(results, elapsed_ms)

        logger.info(
            f"Processed {batch.total} messages",
            extra={
                "mode": str(mode),
                "successful": batch.successful,
                "failed": batch.failed,
                "duration_ms": round(elapsed_ms, 2),
            },
        )
        return batch

    def _resolve_config(self, **overrides: Any) -> ProcessingConfig:
        overrides = {key: value for key, value in overrides.items() if value is not None}
        if not overrides:
            return self._config
        return ProcessingConfig.model_validate({**self._config.model_dump(), **overrides})

    async def _process_sequential(
        self,
        messages: list[ReceivedMessage],
        handler: MessageHandler,
        throttle_ms: int,
    ) -> list[MessageResult]:
        results = []
        for index, message in enumerate(messages):
            results.append(await self._process_one(message, handler))
            if throttle_ms > 0 and index < len(messages) - 1:
                await self._sleep(throttle_ms / 1000)
        return results

    async def _process_parallel(
        self,
        messages: list[ReceivedMessage],
        handler: MessageHandler,
        batch_size: int,
        max_concurrency: int,
        throttle_ms: int,
    ) -> list[MessageResult]:
        semaphore = asyncio.Semaphore(max_concurrency)

        async def bounded(message: ReceivedMessage) -> MessageResult:
            async with semaphore:
                return await self._process_one(message, handler)

        results: list[MessageResult] = []
        for start in range(0, len(messages), batch_size):
            batch = messages[start:start + batch_size]
            results.extend(await asyncio.gather(*(bounded(message) for message in batch)))

            if throttle_ms > 0 and start + batch_size < len(messages):
                await self._sleep(throttle_ms / 1000)
        return results

    async def _process_one(
        self,
        message: ReceivedMessage,
        handler: MessageHandler,
    ) -> MessageResult:
        """Run the handler for one message; never raises for handler errors."""
        started = self._clock()
        error: str | None = None

        with message_log_context(message.message_id):
            with get_tracer().start_as_current_span(SPAN_PROCESS_MESSAGE) as span:
                span.set_attribute("message.id", message.message_id)
                try:
                    body = self._parse_body(message)
                    context = MessageContext.from_message(message)
                    span.set_attribute("message.receive_count", context.receive_count)
                    await self._invoke(handler, body, context)
                except Exception as e:
                    error = str(e) or type(e).__name__
                    span.record_exception(e)
                    logger.warning(
                        f"Message processing failed: {error}",
                        extra={"message_id": message.message_id},
                    )

        duration_ms = (self._clock() - started) * 1000
        success = error is None
        self._record(success, duration_ms)

        return MessageResult(
            message_id=message.message_id,
            receipt_handle=message.receipt_handle,
            success=success,
            error=error,
            processing_time_ms=duration_ms,
        )

    def _parse_body(self, message: ReceivedMessage) -> Any:
        try:
            return json.loads(message.body)
        except json.JSONDecodeError as e:
            raise ProcessingError(
                f"Invalid JSON body: {e}",
                message_id=message.message_id,
            ) from e

    async def _invoke(
        self,
        handler: MessageHandler,
        body: Any,
        context: MessageContext,
    ) -> None:
        timeout = self._config.handler_timeout_seconds
        if timeout is None:
            await handler(body, context)
            return

        scope = asyncio.timeout(timeout)
        try:
            async with scope:
                await handler(body, context)
        except TimeoutError:
            # A TimeoutError raised by the handler itself is its own failure
            if not scope.expired():
                raise
            raise ProcessingError(
                f"Handler timed out after {timeout}s",
                message_id=context.message_id,
            ) from None

    def _record(self, success: bool, duration_ms: float) -> None:
        if success:
            self._total_processed += 1
        else:
            self._total_failed += 1

        count = self._total_processed + self._total_failed
        self._average_processing_time_ms += (
            duration_ms - self._average_processing_time_ms
        ) / count
        self._metrics.record_processed(success, duration_ms / 1000)

    def get_stats(self) -> dict[str, Any]:
        """Rolling statistics since creation or the last reset."""
        return {
            "total_processed": self._total_processed,
            "total_failed": self._total_failed,
            "average_processing_time_ms": round(self._average_processing_time_ms, 2),
            "last_batch_time_ms": self._last_batch_time_ms,
            "mode": str(self._config.mode),
            "batch_size": self._config.batch_size,
            "max_concurrency": self._config.max_concurrency,
        }

    def reset_stats(self) -> None:
        self._total_processed = 0
        self._total_failed = 0
        self._average_processing_time_ms = 0.0
        self._last_batch_time_ms: float | None = None
