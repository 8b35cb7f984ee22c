"""
Exception hierarchy for queue operations and message processing.

Queue-facing errors carry a ``code`` (the error name reported by the queue
service) so retry classification can tell transient failures from
permanent ones.
"""

import asyncio

from resilient_queue.constants import RETRYABLE_ERROR_CODES


class QueueError(Exception):
    """Base exception for all queue operation errors."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code or type(self).__name__


class TransientError(QueueError):
    """
    Temporary error that should be retried.

    Used for throttling, service unavailability, network failures and
    timeouts reported by the queue service.
    """


class PermanentError(QueueError):
    """
    Error that will not succeed on retry.

    Used for validation failures and bad parameters.
    """


class MessageValidationError(PermanentError):
    """Message body or options failed validation before sending."""


class ReceiptHandleError(PermanentError):
    """The receipt handle is unknown or no longer valid."""


class CircuitOpenError(QueueError):
    """
    The circuit breaker denied execution.

    Surfaced immediately, never retried.
    """

    def __init__(self, message: str = "Circuit breaker is open - operation not allowed"):
        super().__init__(message, code="CircuitOpen")


class DuplicateMessageError(QueueError):
    """A message with the same deduplication key was already published."""

    def __init__(self, deduplication_id: str):
        super().__init__(
            f"Duplicate message detected: {deduplication_id}",
            code="DuplicateMessage",
        )
        self.deduplication_id = deduplication_id


class ProcessingError(Exception):
    """
    Failure to process a single message.

    Captured into the batch result, never propagated out of a batch.
    """

    def __init__(self, message: str, message_id: str | None = None):
        super().__init__(message)
        self.message_id = message_id


class LoopFault(Exception):
    """Failure of the consumer loop's receive plumbing."""


def is_retryable(error: BaseException) -> bool:
    """
    Decide whether a queue operation error is worth retrying.

    Args:
        error: The raised exception.

    Returns:
        True for throttling, service-unavailable, network and timeout
        failures; False for circuit-open and permanent errors.
    """
    if isinstance(error, (CircuitOpenError, PermanentError, DuplicateMessageError)):
        return False
    if isinstance(error, TransientError):
        return True
    code = getattr(error, "code", None) or type(error).__name__
    if code in RETRYABLE_ERROR_CODES or type(error).__name__ in RETRYABLE_ERROR_CODES:
        return True
    return isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError))
