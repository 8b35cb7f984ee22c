"""
Message publisher with publish-side deduplication.

On FIFO queues the deduplication id is derived from the message content
(or supplied by the caller) and also sent to the queue. Every publish is
checked against a local deduplication cache when deduplication is enabled.
"""

import asyncio
import json
import logging
import time
from typing import Any
from uuid import uuid4

from resilient_queue.config import Settings
from resilient_queue.constants import MAX_DELAY_SECONDS, SPAN_PUBLISH_MESSAGE
from resilient_queue.exceptions import (
    DuplicateMessageError,
    MessageValidationError,
    QueueError,
)
from resilient_queue.observability.metrics import MetricsCollector, get_metrics
from resilient_queue.observability.tracing import get_tracer
from resilient_queue.queue.protocol import QueueClient
from resilient_queue.resilience.deduplication import DeduplicationCache, DeduplicationConfig
from resilient_queue.types.message import OutgoingMessage, PublishRequest, PublishResult

logger = logging.getLogger(__name__)


class MessagePublisher:
    """
    Publishes JSON messages through a queue client.

    Features:
    - Input validation before anything is sent
    - Content-derived deduplication ids on FIFO queues
    - Local duplicate rejection within the cache window
    - Concurrent batch publishing
    """

    def __init__(
        self,
        client: QueueClient,
        *,
        fifo: bool = False,
        message_group_id: str | None = None,
        enable_deduplication: bool = True,
        dedup_cache: DeduplicationCache | None = None,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the publisher.

        Args:
            client: Queue client used to send messages.
            fifo: Whether the target queue is a FIFO queue.
            message_group_id: Default group id for FIFO messages.
            enable_deduplication: Reject keys already seen by this publisher.
            dedup_cache: Deduplication cache. Defaults to DeduplicationCache().
            metrics: Metrics collector. Defaults to the global collector.
        """
        self._client = client
        self.fifo = fifo
        self.message_group_id = message_group_id
        self.enable_deduplication = enable_deduplication
        self._dedup = dedup_cache or DeduplicationCache(DeduplicationConfig())
        self._metrics = metrics or get_metrics()

    @classmethod
    def from_settings(
        cls,
        client: QueueClient,
        settings: Settings,
        metrics: MetricsCollector | None = None,
    ) -> "MessagePublisher":
        """Build a publisher and its deduplication cache from settings."""
        return cls(
            client,
            fifo=settings.publisher_fifo,
            message_group_id=settings.publisher_message_group_id,
            enable_deduplication=settings.publisher_enable_deduplication,
            dedup_cache=DeduplicationCache(DeduplicationConfig.from_settings(settings)),
            metrics=metrics,
        )

    @property
    def dedup_cache(self) -> DeduplicationCache:
        return self._dedup

    async def publish(
        self,
        body: dict[str, Any],
        *,
        group_id: str | None = None,
        deduplication_id: str | None = None,
        delay_seconds: int = 0,
        message_attributes: dict[str, str] | None = None,
    ) -> PublishResult:
        """
        Publish a single message.

        Args:
            body: JSON-serializable message body.
            group_id: Group id for FIFO queues. Defaults to the publisher's.
            deduplication_id: Explicit deduplication id.
            delay_seconds: Delivery delay, capped at 900 seconds.
            message_attributes: Extra string attributes.

        Returns:
            PublishResult. Send failures are reported with ``success=False``.

        Raises:
            MessageValidationError: If the body or options are invalid.
            DuplicateMessageError: If the deduplication id was already seen.
        """
        started = time.perf_counter()

        self._validate(body, group_id, delay_seconds)

        effective_group = group_id or self.message_group_id
        if self.fifo and not effective_group:
            raise MessageValidationError("FIFO queues require a message group id")

        payload = json.dumps(body)
        dedup_id = self._deduplication_id(body, effective_group, deduplication_id)
        if self.enable_deduplication and self._dedup.is_duplicate(dedup_id):
            self._metrics.record_duplicate()
            logger.warning("Duplicate message rejected", extra={"deduplication_id": dedup_id})
            raise DuplicateMessageError(dedup_id)

        message = OutgoingMessage(
            body=payload,
            message_attributes=message_attributes or {},
            group_id=effective_group if self.fifo else None,
            deduplication_id=dedup_id if self.fifo else None,
            delay_seconds=min(delay_seconds, MAX_DELAY_SECONDS),
        )

        with get_tracer().start_as_current_span(SPAN_PUBLISH_MESSAGE) as span:
            span.set_attribute("message.deduplication_id", dedup_id)
            try:
                receipt = await self._client.send(message)
            except QueueError as e:
                span.record_exception(e)
                if self.enable_deduplication:
                    self._dedup.discard(dedup_id)
                self._metrics.record_published(False)
                logger.error(
                    f"Failed to publish message: {e}",
                    extra={"deduplication_id": dedup_id, "code": e.code},
                )
                return PublishResult(
                    success=False,
                    deduplication_id=dedup_id,
                    group_id=message.group_id,
                    processing_time_ms=(time.perf_counter() - started) * 1000,
                    error=str(e),
                )

        self._metrics.record_published(True)
        logger.debug("Published message", extra={"message_id": receipt.message_id})

        return PublishResult(
            success=True,
            message_id=receipt.message_id,
            md5_of_body=receipt.md5_of_body,
            deduplication_id=dedup_id,
            group_id=message.group_id,
            processing_time_ms=(time.perf_counter() - started) * 1000,
        )

    async def publish_batch(
        self,
        messages: list[PublishRequest],
        *,
        batch_size: int = 10,
    ) -> list[PublishResult]:
        """
        Publish messages in concurrent groups of ``batch_size``.

        Returns one result per message in input order; validation and
        duplicate errors become failed results instead of raising.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        results: list[PublishResult] = []
        for start in range(0, len(messages), batch_size):
            batch = messages[start:start + batch_size]
            outcomes = await asyncio.gather(
                *(self._publish_request(request) for request in batch),
                return_exceptions=True,
            )
            for outcome in outcomes:
                if isinstance(outcome, Exception):
                    results.append(PublishResult(success=False, error=str(outcome)))
                elif isinstance(outcome, BaseException):
                    raise outcome
                else:
                    results.append(outcome)
        return results

    async def _publish_request(self, request: PublishRequest) -> PublishResult:
        return await self.publish(
            request.body,
            group_id=request.group_id,
            deduplication_id=request.deduplication_id,
            delay_seconds=request.delay_seconds,
            message_attributes=request.message_attributes,
        )

    def _deduplication_id(
        self,
        body: dict[str, Any],
        group_id: str | None,
        explicit_id: str | None,
    ) -> str:
        if explicit_id:
            return explicit_id
        if self.fifo:
            return self._dedup.generate_key(body, group_id=group_id)
        return str(uuid4())

    @staticmethod
    def _validate(body: Any, group_id: Any, delay_seconds: Any) -> None:
        if not body or not isinstance(body, dict):
            raise MessageValidationError("Message body is required and must be a dict")
        if group_id is not None and not isinstance(group_id, str):
            raise MessageValidationError("Message group id must be a string")
        if isinstance(delay_seconds, bool) or not isinstance(delay_seconds, int) or delay_seconds < 0:
            raise MessageValidationError("Delay seconds must be a non-negative integer")
