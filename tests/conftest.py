"""
Pytest configuration and shared fixtures.
"""

import inspect
import json
from collections.abc import Callable
from typing import Any
from uuid import uuid4

import pytest
from prometheus_client import CollectorRegistry

from resilient_queue.constants import ATTR_APPROXIMATE_RECEIVE_COUNT
from resilient_queue.observability.metrics import MetricsCollector
from resilient_queue.queue.memory import InMemoryQueueTransport
from resilient_queue.types.message import ReceivedMessage


class FakeClock:
    """Manually advanced clock returning seconds."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float = 0.0, *, ms: float = 0.0) -> None:
        self.now += seconds + ms / 1000


class RecordingSleep:
    """Async sleep replacement that records requested delays in seconds."""

    def __init__(self, clock: FakeClock | None = None):
        self.calls: list[float] = []
        self._clock = clock
        self.on_sleep: Callable[[float], Any] | None = None

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self._clock is not None:
            self._clock.advance(seconds)
        if self.on_sleep is not None:
            result = self.on_sleep(seconds)
            if inspect.isawaitable(result):
                await result

    @property
    def calls_ms(self) -> list[int]:
        return [round(seconds * 1000) for seconds in self.calls]


@pytest.fixture
def clock() -> FakeClock:
    """A fake clock starting at an arbitrary non-zero time."""
    return FakeClock()


@pytest.fixture
def sleeper(clock: FakeClock) -> RecordingSleep:
    """A recording sleep that also advances the fake clock."""
    return RecordingSleep(clock)


@pytest.fixture
def registry() -> CollectorRegistry:
    """An isolated Prometheus registry."""
    return CollectorRegistry()


@pytest.fixture
def metrics(registry: CollectorRegistry) -> MetricsCollector:
    """A metrics collector backed by the isolated registry."""
    return MetricsCollector(registry=registry)


@pytest.fixture
def transport(clock: FakeClock) -> InMemoryQueueTransport:
    """An in-memory queue transport driven by the fake clock."""
    return InMemoryQueueTransport(visibility_timeout_seconds=30, clock=clock)


@pytest.fixture
def make_message() -> Callable[..., ReceivedMessage]:
    """Factory for received messages with JSON bodies."""

    def factory(
        message_id: str | None = None,
        body: Any = None,
        *,
        raw_body: str | None = None,
        receive_count: int = 1,
        attributes: dict[str, str] | None = None,
    ) -> ReceivedMessage:
        message_id = message_id or str(uuid4())
        return ReceivedMessage(
            message_id=message_id,
            receipt_handle=f"rh-{message_id}",
            body=raw_body if raw_body is not None else json.dumps(body or {"id": message_id}),
            attributes={
                ATTR_APPROXIMATE_RECEIVE_COUNT: str(receive_count),
                **(attributes or {}),
            },
        )

    return factory
