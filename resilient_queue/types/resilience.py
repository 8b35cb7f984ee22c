"""
Resilience-related type definitions: circuit breaker status, retry reports
and deduplication cache statistics.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from resilient_queue.constants import CircuitState


class CircuitBreakerStatus(BaseModel):
    """Point-in-time snapshot of a circuit breaker."""

    model_config = ConfigDict(frozen=True)

    state: CircuitState
    failure_count: int
    success_count: int
    last_failure_time: float | None
    time_since_last_failure_ms: float | None
    can_execute: bool


class RetryAttempt(BaseModel):
    """A single attempt made by the retry executor."""

    attempt: int
    success: bool
    duration_ms: float
    error: str | None = None


class RetryReport(BaseModel):
    """
    Detailed outcome of a retried operation.
    Returned instead of raising, for diagnostics.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    result: Any = None
    attempts: list[RetryAttempt] = Field(default_factory=list)
    total_duration_ms: float = 0.0
    retry_count: int = 0
    error: BaseException | None = None


class DedupCacheStats(BaseModel):
    """Deduplication cache statistics."""

    total_entries: int
    valid_entries: int
    expired_entries: int
    cache_expiry_ms: int
