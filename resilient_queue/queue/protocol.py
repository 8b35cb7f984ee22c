"""
Queue ports: contracts for the wire-level transport, the resilient client
the consumer talks to, message handlers and the health sink.

Transports raise ``QueueError`` subclasses (or errors whose ``code`` names
the failure) so retry classification can tell transient from permanent
failures.
"""

from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

from resilient_queue.types.message import (
    MessageContext,
    OutgoingMessage,
    ReceivedMessage,
    SendReceipt,
)

MessageHandler = Callable[[Any, MessageContext], Awaitable[None]]
"""Async handler: returns normally on success, raises to signal failure."""


@runtime_checkable
class QueueTransport(Protocol):
    """Port: wire-level queue operations. Implementations live outside the core."""

    async def send_message(self, message: OutgoingMessage) -> SendReceipt: ...

    async def receive_messages(
        self,
        max_messages: int,
        wait_seconds: float,
        visibility_timeout_seconds: int | None = None,
    ) -> list[ReceivedMessage]:
        """Long-poll up to ``wait_seconds`` for at most ``max_messages``."""
        ...

    async def delete_message(self, receipt_handle: str) -> None: ...


@runtime_checkable
class QueueClient(Protocol):
    """Port: queue operations as seen by the consumer and publisher."""

    async def send(self, message: OutgoingMessage) -> SendReceipt: ...

    async def receive(
        self,
        max_messages: int,
        wait_seconds: float,
        visibility_timeout_seconds: int | None = None,
    ) -> list[ReceivedMessage]: ...

    async def delete(self, receipt_handle: str) -> None: ...


@runtime_checkable
class HealthSink(Protocol):
    """Port: receives outcome telemetry. The core never reads from it."""

    def record_success(self, duration_ms: float = 0.0) -> None: ...

    def record_failure(self, error: str) -> None: ...
