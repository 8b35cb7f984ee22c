"""
Circuit breaker guarding calls to the queue service.

Failures accumulate for the lifetime of the breaker: successes while
CLOSED do not reset the failure count. Only ``reset()`` or a completed
HALF_OPEN recovery clears it. The success quota needed to close from
HALF_OPEN reuses ``failure_threshold``.
"""

import logging
import threading
import time
from typing import Callable

from pydantic import BaseModel, ConfigDict, Field

from resilient_queue.config import Settings
from resilient_queue.constants import CircuitState
from resilient_queue.types.resilience import CircuitBreakerStatus

logger = logging.getLogger(__name__)


class CircuitBreakerConfig(BaseModel):
    """Circuit breaker thresholds."""

    model_config = ConfigDict(frozen=True)

    failure_threshold: int = Field(default=5, ge=1)
    open_timeout_ms: int = Field(default=60_000, ge=0)

    @classmethod
    def from_settings(cls, settings: Settings) -> "CircuitBreakerConfig":
        return cls(
            failure_threshold=settings.circuit_breaker_failure_threshold,
            open_timeout_ms=settings.circuit_breaker_open_timeout_ms,
        )


class CircuitBreaker:
    """
    Three-state circuit breaker (CLOSED, OPEN, HALF_OPEN).

    State and counters live behind a lock; callers only interact through
    ``can_execute``, ``record_success``, ``record_failure`` and ``reset``
    plus read-only accessors.

    Usage:
        breaker = CircuitBreaker(CircuitBreakerConfig(failure_threshold=3))

        if not breaker.can_execute():
            raise CircuitOpenError()
        try:
            result = await operation()
        except Exception:
            breaker.record_failure()
            raise
        breaker.record_success()
    """

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the circuit breaker.

        Args:
            config: Thresholds. Defaults to CircuitBreakerConfig().
            name: Name used in logs and metrics.
            clock: Returns the current time in seconds.
        """
        self.name = name
        self._config = config or CircuitBreakerConfig()
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time: float | None = None
        self._lock = threading.Lock()

    @property
    def config(self) -> CircuitBreakerConfig:
        return self._config

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    @property
    def success_count(self) -> int:
        with self._lock:
            return self._success_count

    def can_execute(self) -> bool:
        """
        Check whether a call is allowed.

        An OPEN breaker whose timeout has elapsed moves to HALF_OPEN here
        and lets the call through.
        """
        with self._lock:
            return self._can_execute_locked()

    def _can_execute_locked(self) -> bool:
        if self._state == CircuitState.OPEN:
            if self._elapsed_since_failure_ms() > self._config.open_timeout_ms:
                self._state = CircuitState.HALF_OPEN
                self._success_count = 0
                logger.info(
                    "Circuit breaker half-open",
                    extra={"breaker": self.name, "transition": "OPEN->HALF_OPEN"},
                )
                return True
            return False
        return True

    def record_success(self) -> None:
        """Record a successful call."""
        with self._lock:
            self._success_count += 1

            if (
                self._state == CircuitState.HALF_OPEN
                and self._success_count >= self._config.failure_threshold
            ):
                self._state = CircuitState.CLOSED
                self._failure_count = 0
                self._success_count = 0
                logger.info(
                    "Circuit breaker closed",
                    extra={"breaker": self.name, "transition": "HALF_OPEN->CLOSED"},
                )

    def record_failure(self) -> None:
        """Record a failed call."""
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = self._clock()

            if (
                self._state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)
                and self._failure_count >= self._config.failure_threshold
            ):
                previous = self._state
                self._state = CircuitState.OPEN
                logger.warning(
                    "Circuit breaker opened",
                    extra={
                        "breaker": self.name,
                        "transition": f"{previous}->OPEN",
                        "failure_count": self._failure_count,
                        "failure_threshold": self._config.failure_threshold,
                    },
                )

    def reset(self) -> None:
        """Force the breaker to CLOSED and clear all counters."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._success_count = 0
            self._last_failure_time = None
        logger.info("Circuit breaker reset", extra={"breaker": self.name})

    def time_since_last_failure_ms(self) -> float | None:
        """Milliseconds since the last recorded failure, or None."""
        with self._lock:
            if self._last_failure_time is None:
                return None
            return self._elapsed_since_failure_ms()

    def _elapsed_since_failure_ms(self) -> float:
        if self._last_failure_time is None:
            return float("inf")
        return (self._clock() - self._last_failure_time) * 1000

    def get_status(self) -> CircuitBreakerStatus:
        """
        Snapshot of the breaker.

        Computing ``can_execute`` may move an expired OPEN breaker to
        HALF_OPEN, exactly like calling ``can_execute()``.
        """
        with self._lock:
            allowed = self._can_execute_locked()
            since = (
                None
                if self._last_failure_time is None
                else self._elapsed_since_failure_ms()
            )
            return CircuitBreakerStatus(
                state=self._state,
                failure_count=self._failure_count,
                success_count=self._success_count,
                last_failure_time=self._last_failure_time,
                time_since_last_failure_ms=since,
                can_execute=allowed,
            )
