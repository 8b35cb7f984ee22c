"""
Message-related type definitions for internal use.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field

from resilient_queue.constants import (
    ATTR_APPROXIMATE_RECEIVE_COUNT,
    ATTR_MESSAGE_DEDUPLICATION_ID,
    ATTR_MESSAGE_GROUP_ID,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReceivedMessage(BaseModel):
    """
    A raw message as returned by the queue transport.
    The body is the serialized payload; attributes hold system metadata.
    """

    model_config = ConfigDict(frozen=True)

    message_id: str
    receipt_handle: str
    body: str
    attributes: dict[str, str] = Field(default_factory=dict)
    message_attributes: dict[str, str] = Field(default_factory=dict)


class OutgoingMessage(BaseModel):
    """A message ready to be handed to the queue transport."""

    model_config = ConfigDict(frozen=True)

    body: str
    message_attributes: dict[str, str] = Field(default_factory=dict)
    group_id: str | None = None
    deduplication_id: str | None = None
    delay_seconds: int = 0


class SendReceipt(BaseModel):
    """Acknowledgement returned by the transport for a sent message."""

    message_id: str
    md5_of_body: str | None = None
    sequence_number: str | None = None


@dataclass(frozen=True)
class MessageContext:
    """
    Context passed to message handlers during processing.
    Immutable for the duration of one processing attempt.
    """

    message_id: str
    receipt_handle: str
    message_attributes: Mapping[str, str] = field(default_factory=dict)
    group_id: str | None = None
    deduplication_id: str | None = None
    receive_count: int = 1

    @classmethod
    def from_message(cls, message: ReceivedMessage) -> "MessageContext":
        """Build a context from a received message's metadata."""
        attributes = message.attributes
        return cls(
            message_id=message.message_id,
            receipt_handle=message.receipt_handle,
            message_attributes=MappingProxyType(dict(message.message_attributes)),
            group_id=attributes.get(ATTR_MESSAGE_GROUP_ID),
            deduplication_id=attributes.get(ATTR_MESSAGE_DEDUPLICATION_ID),
            receive_count=int(attributes.get(ATTR_APPROXIMATE_RECEIVE_COUNT, 1)),
        )

    @property
    def is_redelivery(self) -> bool:
        """Check if the queue has delivered this message before."""
        return self.receive_count > 1


class MessageResult(BaseModel):
    """
    Outcome of processing a single message.
    """

    model_config = ConfigDict(frozen=True)

    message_id: str
    receipt_handle: str
    success: bool
    error: str | None = None
    processing_time_ms: float = 0.0


class ProcessingFailure(BaseModel):
    """A failed message entry in a batch result."""

    model_config = ConfigDict(frozen=True)

    message_id: str
    error: str
    timestamp: datetime = Field(default_factory=_utcnow)


class BatchResult(BaseModel):
    """
    Aggregate result of a processing pass over a batch of messages.
    Created fresh per batch and immutable once returned.
    """

    model_config = ConfigDict(frozen=True)

    total: int
    successful: int
    failed: int
    errors: list[ProcessingFailure] = Field(default_factory=list)
    processing_time_ms: float = 0.0
    results: list[MessageResult] = Field(default_factory=list)

    @property
    def succeeded(self) -> list[MessageResult]:
        """Per-message results whose handler completed without raising."""
        return [result for result in self.results if result.success]

    @property
    def failed_message_ids(self) -> list[str]:
        """Message ids that failed processing."""
        return [error.message_id for error in self.errors]

    @classmethod
    def from_results(
        cls,
        results: list[MessageResult],
        processing_time_ms: float,
    ) -> "BatchResult":
        """Aggregate per-message results into a batch result."""
        errors = [
            ProcessingFailure(message_id=result.message_id, error=result.error or "Unknown error")
            for result in results
            if not result.success
        ]
        return cls(
            total=len(results),
            successful=len(results) - len(errors),
            failed=len(errors),
            errors=errors,
            processing_time_ms=processing_time_ms,
            results=results,
        )


class PublishResult(BaseModel):
    """Result of publishing a single message."""

    success: bool
    message_id: str | None = None
    md5_of_body: str | None = None
    deduplication_id: str | None = None
    group_id: str | None = None
    processing_time_ms: float = 0.0
    error: str | None = None


class PublishRequest(BaseModel):
    """One entry of a batch publish."""

    body: dict[str, Any]
    group_id: str | None = None
    deduplication_id: str | None = None
    delay_seconds: int = 0
    message_attributes: dict[str, str] | None = None
