"""
Retry executor with capped exponential backoff.

The delay before retry ``n + 1`` (``n`` counted from 0) is
``min(initial_delay_ms * backoff_multiplier ** n, max_backoff_ms)``.
Retry decisions and notifications go through a ``RetryHooks`` strategy
object instead of loose callbacks.
"""

import asyncio
import logging
import math
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from resilient_queue.config import Settings
from resilient_queue.types.resilience import RetryAttempt, RetryReport

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]
Sleep = Callable[[float], Awaitable[None]]


class RetryPolicy(BaseModel):
    """Retry configuration. Delays are in milliseconds."""

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=3, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    max_backoff_ms: int = Field(default=30_000, ge=0)
    initial_delay_ms: int = Field(default=1_000, ge=0)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.retry_max_retries,
            backoff_multiplier=settings.retry_backoff_multiplier,
            max_backoff_ms=settings.retry_max_backoff_ms,
            initial_delay_ms=settings.retry_initial_delay_ms,
        )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, attempt: int) -> int:
        """Backoff in milliseconds after the 0-based ``attempt``."""
        delay = min(
            self.initial_delay_ms * self.backoff_multiplier**attempt,
            self.max_backoff_ms,
        )
        return math.floor(delay)


class RetryHooks:
    """
    Strategy consulted by the retry executor.

    Subclass and override to classify errors or observe retries. The base
    class retries every error and does nothing on notifications.
    """

    def should_retry(self, error: BaseException) -> bool:
        return True

    def on_retry(self, error: BaseException, attempt: int, delay_ms: int) -> None:
        """Called before sleeping ahead of retry number ``attempt``."""

    def on_failure(self, error: BaseException, total_attempts: int) -> None:
        """Called once when the executor gives up, before re-raising."""


_DEFAULT_HOOKS = RetryHooks()


class RetryExecutor:
    """
    Runs async operations with bounded retries.

    Attempts an operation up to ``max_retries + 1`` times, sleeping with
    exponential backoff between attempts while ``hooks.should_retry``
    allows it.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        """
        Initialize the executor.

        Args:
            policy: Retry policy. Defaults to RetryPolicy().
            sleep: Coroutine function sleeping for a number of seconds.
        """
        self._policy = policy or RetryPolicy()
        self._sleep = sleep

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def update_policy(self, **changes: Any) -> RetryPolicy:
        """Replace policy fields. Values are validated like a new policy."""
        self._policy = RetryPolicy.model_validate(
            {**self._policy.model_dump(), **changes}
        )
        return self._policy

    def calculate_delay(self, attempt: int) -> int:
        """Backoff in milliseconds after the 0-based ``attempt``."""
        return self._policy.delay_for(attempt)

    async def execute_with_retry(
        self,
        operation: Operation[T],
        hooks: RetryHooks | None = None,
    ) -> T:
        """
        Execute ``operation`` with retries.

        Args:
            operation: Zero-argument coroutine function.
            hooks: Retry strategy. Defaults to retrying every error.

        Returns:
            The operation's result.

        Raises:
            The last error raised by the operation once retries are
            exhausted or ``hooks.should_retry`` declines.
        """
        hooks = hooks or _DEFAULT_HOOKS
        policy = self._policy
        attempt = 0

        while True:
            try:
                return await operation()
            except Exception as error:
                attempts_made = attempt + 1
                if attempt < policy.max_retries and hooks.should_retry(error):
                    delay = policy.delay_for(attempt)
                    hooks.on_retry(error, attempts_made, delay)
                    await self._sleep(delay / 1000)
                    attempt += 1
                    continue

                hooks.on_failure(error, attempts_made)
                raise

    async def execute_with_retry_detailed(
        self,
        operation: Operation[T],
        hooks: RetryHooks | None = None,
    ) -> RetryReport:
        """
        Execute ``operation`` with retries and report every attempt.

        Never raises for operation errors; the last error is carried on
        the report instead.
        """
        hooks = hooks or _DEFAULT_HOOKS
        policy = self._policy
        attempts: list[RetryAttempt] = []
        started = time.perf_counter()
        last_error: BaseException | None = None

        for attempt in range(policy.max_attempts):
            attempt_started = time.perf_counter()
            try:
                result = await operation()
            except Exception as error:
                last_error = error
                attempts.append(
                    RetryAttempt(
                        attempt=attempt + 1,
                        success=False,
                        duration_ms=(time.perf_counter() - attempt_started) * 1000,
                        error=str(error),
                    )
                )
                if attempt < policy.max_retries and hooks.should_retry(error):
                    delay = policy.delay_for(attempt)
                    hooks.on_retry(error, attempt + 1, delay)
                    await self._sleep(delay / 1000)
                    continue
                break
            else:
                attempts.append(
                    RetryAttempt(
                        attempt=attempt + 1,
                        success=True,
                        duration_ms=(time.perf_counter() - attempt_started) * 1000,
                    )
                )
                return RetryReport(
                    success=True,
                    result=result,
                    attempts=attempts,
                    total_duration_ms=(time.perf_counter() - started) * 1000,
                    retry_count=attempt,
                )

        if last_error is not None:
            hooks.on_failure(last_error, len(attempts))

        return RetryReport(
            success=False,
            attempts=attempts,
            total_duration_ms=(time.perf_counter() - started) * 1000,
            retry_count=len(attempts) - 1,
            error=last_error,
        )
