"""
In-memory queue transport.

A local implementation of QueueTransport for tests and demos. Messages
received but not deleted become visible again once their visibility
timeout expires, which is how failed messages get redelivered.
NOT suitable for production use - no persistence, single process only.
"""

import asyncio
import hashlib
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable
from uuid import uuid4

from resilient_queue.constants import (
    ATTR_APPROXIMATE_RECEIVE_COUNT,
    ATTR_MESSAGE_DEDUPLICATION_ID,
    ATTR_MESSAGE_GROUP_ID,
)
from resilient_queue.exceptions import MessageValidationError, QueueError, ReceiptHandleError
from resilient_queue.types.message import OutgoingMessage, ReceivedMessage, SendReceipt

logger = logging.getLogger(__name__)


@dataclass
class StoredMessage:
    """A message held by the in-memory queue."""

    message_id: str
    message: OutgoingMessage
    available_at: float
    receive_count: int = 0
    sequence_number: int = 0
    attributes: dict[str, str] = field(default_factory=dict)


class InMemoryQueueTransport:
    """
    In-memory implementation of QueueTransport.

    Features:
    - FIFO storage with per-delivery receipt handles
    - Visibility timeout and redelivery of unacknowledged messages
    - Long polling (waits up to ``wait_seconds`` for a message)
    - Delayed delivery via ``delay_seconds``
    """

    def __init__(
        self,
        visibility_timeout_seconds: int = 30,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the in-memory queue.

        Args:
            visibility_timeout_seconds: Default time a received message stays hidden.
            clock: Returns the current time in seconds.
        """
        self._visibility_timeout = visibility_timeout_seconds
        self._clock = clock
        self._available: deque[StoredMessage] = deque()
        self._in_flight: dict[str, tuple[StoredMessage, float]] = {}
        self._message_arrived = asyncio.Event()
        self._sequence = 0
        self._closed = False

    @property
    def available_count(self) -> int:
        return len(self._available)

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    async def send_message(self, message: OutgoingMessage) -> SendReceipt:
        """Store a message and wake any long-polling receiver."""
        if self._closed:
            raise QueueError("Queue is closed", code="QueueDoesNotExist")
        if message.delay_seconds < 0:
            raise MessageValidationError("delay_seconds must be non-negative")

        self._sequence += 1
        stored = StoredMessage(
            message_id=str(uuid4()),
            message=message,
            available_at=self._clock() + message.delay_seconds,
            sequence_number=self._sequence,
        )
        if message.group_id:
            stored.attributes[ATTR_MESSAGE_GROUP_ID] = message.group_id
        if message.deduplication_id:
            stored.attributes[ATTR_MESSAGE_DEDUPLICATION_ID] = message.deduplication_id

        self._available.append(stored)
        self._message_arrived.set()

        logger.debug("Enqueued message", extra={"message_id": stored.message_id})
        return SendReceipt(
            message_id=stored.message_id,
            md5_of_body=hashlib.md5(message.body.encode("utf-8")).hexdigest(),
            sequence_number=str(stored.sequence_number),
        )

    async def receive_messages(
        self,
        max_messages: int,
        wait_seconds: float,
        visibility_timeout_seconds: int | None = None,
    ) -> list[ReceivedMessage]:
        """Receive up to ``max_messages``, waiting up to ``wait_seconds`` for one."""
        if self._closed:
            raise QueueError("Queue is closed", code="QueueDoesNotExist")

        visibility = (
            self._visibility_timeout
            if visibility_timeout_seconds is None
            else visibility_timeout_seconds
        )
        loop = asyncio.get_running_loop()
        deadline = loop.time() + max(wait_seconds, 0)

        while True:
            messages = self._take(max_messages, visibility)
            if messages:
                return messages

            remaining = deadline - loop.time()
            if remaining <= 0:
                return []

            self._message_arrived.clear()
            try:
                await asyncio.wait_for(self._message_arrived.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                return self._take(max_messages, visibility)

    async def delete_message(self, receipt_handle: str) -> None:
        """Acknowledge a received message."""
        if self._in_flight.pop(receipt_handle, None) is None:
            raise ReceiptHandleError(
                f"Receipt handle is invalid: {receipt_handle}",
                code="ReceiptHandleIsInvalid",
            )

    def close(self) -> None:
        self._closed = True

    def _take(self, max_messages: int, visibility_timeout: int) -> list[ReceivedMessage]:
        now = self._clock()
        self._restore_expired(now)

        taken: list[ReceivedMessage] = []
        skipped: list[StoredMessage] = []
        while self._available and len(taken) < max_messages:
            stored = self._available.popleft()
            if stored.available_at > now:
                skipped.append(stored)
                continue

            stored.receive_count += 1
            receipt_handle = uuid4().hex
            self._in_flight[receipt_handle] = (stored, now + visibility_timeout)
            taken.append(
                ReceivedMessage(
                    message_id=stored.message_id,
                    receipt_handle=receipt_handle,
                    body=stored.message.body,
                    attributes={
                        **stored.attributes,
                        ATTR_APPROXIMATE_RECEIVE_COUNT: str(stored.receive_count),
                    },
                    message_attributes=dict(stored.message.message_attributes),
                )
            )

        self._available.extendleft(reversed(skipped))
        return taken

    def _restore_expired(self, now: float) -> None:
        expired = [
            handle
            for handle, (_, visible_at) in self._in_flight.items()
            if visible_at <= now
        ]
        restored = sorted(
            (self._in_flight.pop(handle)[0] for handle in expired),
            key=lambda stored: stored.sequence_number,
        )
        if restored:
            self._available.extendleft(reversed(restored))
            logger.debug("Visibility expired, messages redelivered", extra={"count": len(restored)})
