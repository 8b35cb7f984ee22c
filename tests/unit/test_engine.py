"""
Unit tests for the processing engine.
"""

import asyncio

import pytest
from pydantic import ValidationError

from resilient_queue.constants import ATTR_MESSAGE_GROUP_ID, ProcessingMode
from resilient_queue.consumer.engine import ProcessingConfig, ProcessingEngine
from resilient_queue.types.message import MessageContext


class ConcurrencyTracker:
    """Handler tracking how many invocations are in flight."""

    def __init__(self, fail_ids: set[str] | None = None):
        self.fail_ids = fail_ids or set()
        self.in_flight = 0
        self.max_in_flight = 0
        self.events: list[tuple[str, str]] = []

    async def __call__(self, body: dict, context: MessageContext) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.events.append(("start", context.message_id))
        try:
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            if context.message_id in self.fail_ids:
                raise ValueError(f"boom {context.message_id}")
        finally:
            self.in_flight -= 1
            self.events.append(("end", context.message_id))


class TestProcessingConfig:
    """Tests for processing configuration."""

    def test_defaults(self):
        """Test default configuration."""
        config = ProcessingConfig()

        assert config.mode == ProcessingMode.SEQUENTIAL
        assert config.batch_size == 5
        assert config.max_concurrency == 10
        assert config.throttle_delay_ms == 0
        assert config.handler_timeout_seconds is None

    @pytest.mark.parametrize(
        "field,value",
        [
            ("batch_size", 0),
            ("max_concurrency", 0),
            ("throttle_delay_ms", -1),
            ("handler_timeout_seconds", 0),
        ],
    )
    def test_invalid_values(self, field: str, value: int):
        """Test that out-of-range values are rejected."""
        with pytest.raises(ValidationError):
            ProcessingConfig(**{field: value})


class TestSequentialProcessing:
    """Tests for sequential mode."""

    @pytest.fixture
    def engine(self, metrics, sleeper) -> ProcessingEngine:
        return ProcessingEngine(ProcessingConfig(), metrics=metrics, sleep=sleeper)

    @pytest.mark.asyncio
    async def test_preserves_order(self, engine: ProcessingEngine, make_message):
        """Test messages are handled one at a time in input order."""
        messages = [make_message(f"m{i}") for i in range(5)]
        tracker = ConcurrencyTracker()

        result = await engine.process_messages(messages, tracker)

        starts = [message_id for kind, message_id in tracker.events if kind == "start"]
        assert starts == [f"m{i}" for i in range(5)]
        assert tracker.max_in_flight == 1
        assert result.total == 5
        assert result.successful == 5

    @pytest.mark.asyncio
    async def test_partial_failure_continues(self, engine: ProcessingEngine, make_message):
        """Test a failing message does not abort the rest of the batch."""
        messages = [make_message(f"m{i}") for i in range(4)]
        tracker = ConcurrencyTracker(fail_ids={"m1"})

        result = await engine.process_messages(messages, tracker)

        assert result.total == 4
        assert result.successful == 3
        assert result.failed == 1
        assert result.failed_message_ids == ["m1"]
        assert result.errors[0].error == "boom m1"
        assert [r.message_id for r in result.succeeded] == ["m0", "m2", "m3"]

    @pytest.mark.asyncio
    async def test_throttle_between_messages(self, metrics, sleeper, make_message):
        """Test the throttle delay is applied between messages only."""
        engine = ProcessingEngine(
            ProcessingConfig(throttle_delay_ms=50),
            metrics=metrics,
            sleep=sleeper,
        )

        await engine.process_messages([make_message() for _ in range(3)], ConcurrencyTracker())

        assert sleeper.calls_ms == [50, 50]

    @pytest.mark.asyncio
    async def test_invalid_json_is_a_failure(self, engine: ProcessingEngine, make_message):
        """Test an unparseable body is recorded as failed without calling the handler."""
        tracker = ConcurrencyTracker()

        result = await engine.process_messages([make_message("bad", raw_body="{not json")], tracker)

        assert result.failed == 1
        assert "Invalid JSON body" in result.errors[0].error
        assert tracker.events == []

    @pytest.mark.asyncio
    async def test_handler_receives_body_and_context(self, engine: ProcessingEngine, make_message):
        """Test the handler gets the parsed body and message metadata."""
        seen = []

        async def handler(body, context):
            seen.append((body, context))

        message = make_message(
            "m1",
            {"order": 7},
            receive_count=2,
            attributes={ATTR_MESSAGE_GROUP_ID: "orders"},
        )

        await engine.process_messages([message], handler)

        body, context = seen[0]
        assert body == {"order": 7}
        assert context.message_id == "m1"
        assert context.receipt_handle == "rh-m1"
        assert context.group_id == "orders"
        assert context.receive_count == 2
        assert context.is_redelivery is True

    @pytest.mark.asyncio
    async def test_empty_batch(self, engine: ProcessingEngine):
        """Test an empty batch yields an empty result."""
        result = await engine.process_messages([], ConcurrencyTracker())

        assert result.total == 0
        assert result.successful == 0
        assert result.failed == 0


class TestParallelProcessing:
    """Tests for parallel mode."""

    @pytest.fixture
    def engine(self, metrics, sleeper) -> ProcessingEngine:
        return ProcessingEngine(
            ProcessingConfig(mode=ProcessingMode.PARALLEL, batch_size=2, max_concurrency=2),
            metrics=metrics,
            sleep=sleeper,
        )

    @pytest.mark.asyncio
    async def test_one_failure_in_five(self, engine: ProcessingEngine, make_message):
        """Test 5 messages, batch size 2, message #3 failing."""
        messages = [make_message(f"m{i}") for i in range(1, 6)]
        tracker = ConcurrencyTracker(fail_ids={"m3"})

        result = await engine.process_messages(messages, tracker)

        assert result.total == 5
        assert result.successful == 4
        assert result.failed == 1
        assert len(result.errors) == 1
        assert result.errors[0].message_id == "m3"

    @pytest.mark.asyncio
    async def test_every_message_accounted_once(self, engine: ProcessingEngine, make_message):
        """Test each message id is either a success or an error, never both."""
        messages = [make_message(f"m{i}") for i in range(7)]
        tracker = ConcurrencyTracker(fail_ids={"m0", "m4", "m6"})

        result = await engine.process_messages(messages, tracker)

        succeeded = {r.message_id for r in result.succeeded}
        failed = set(result.failed_message_ids)
        assert succeeded.isdisjoint(failed)
        assert succeeded | failed == {f"m{i}" for i in range(7)}
        assert result.successful + result.failed == result.total

    @pytest.mark.asyncio
    async def test_concurrency_ceiling(self, metrics, sleeper, make_message):
        """Test no more than max_concurrency handlers run at once."""
        engine = ProcessingEngine(
            ProcessingConfig(mode=ProcessingMode.PARALLEL, batch_size=6, max_concurrency=2),
            metrics=metrics,
            sleep=sleeper,
        )
        tracker = ConcurrencyTracker()

        await engine.process_messages([make_message() for _ in range(6)], tracker)

        assert tracker.max_in_flight == 2

    @pytest.mark.asyncio
    async def test_batches_do_not_overlap(self, engine: ProcessingEngine, make_message):
        """Test batch k+1 starts only after batch k has fully resolved."""
        messages = [make_message(f"m{i}") for i in range(4)]
        tracker = ConcurrencyTracker()

        await engine.process_messages(messages, tracker)

        last_end_first_batch = max(
            index
            for index, (kind, message_id) in enumerate(tracker.events)
            if kind == "end" and message_id in {"m0", "m1"}
        )
        first_start_second_batch = min(
            index
            for index, (kind, message_id) in enumerate(tracker.events)
            if kind == "start" and message_id in {"m2", "m3"}
        )
        assert last_end_first_batch < first_start_second_batch

    @pytest.mark.asyncio
    async def test_throttle_between_batches(self, metrics, sleeper, make_message):
        """Test the throttle delay separates batches."""
        engine = ProcessingEngine(
            ProcessingConfig(mode=ProcessingMode.PARALLEL, batch_size=2, throttle_delay_ms=20),
            metrics=metrics,
            sleep=sleeper,
        )

        await engine.process_messages([make_message() for _ in range(5)], ConcurrencyTracker())

        assert sleeper.calls_ms == [20, 20]

    @pytest.mark.asyncio
    async def test_call_overrides(self, metrics, sleeper, make_message):
        """Test per-call options override the configured mode."""
        engine = ProcessingEngine(metrics=metrics, sleep=sleeper)
        tracker = ConcurrencyTracker()

        await engine.process_messages(
            [make_message() for _ in range(4)],
            tracker,
            mode=ProcessingMode.PARALLEL,
            batch_size=4,
            max_concurrency=4,
        )

        assert tracker.max_in_flight == 4

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"batch_size": -1},
            {"batch_size": 0},
            {"max_concurrency": -1},
            {"throttle_delay_ms": -5},
        ],
    )
    async def test_invalid_call_overrides_rejected(
        self, engine: ProcessingEngine, make_message, overrides
    ):
        """Test per-call options are validated like the configuration."""
        tracker = ConcurrencyTracker()
        messages = [make_message() for _ in range(3)]

        with pytest.raises(ValidationError):
            await engine.process_messages(messages, tracker, **overrides)

        assert tracker.events == []


class TestHandlerTimeout:
    """Tests for the optional per-message timeout."""

    @pytest.mark.asyncio
    async def test_timed_out_handler_fails_and_is_cancelled(self, metrics, make_message):
        """Test a hung handler is cancelled and recorded as failed."""
        engine = ProcessingEngine(
            ProcessingConfig(handler_timeout_seconds=0.05),
            metrics=metrics,
        )
        cancelled = []

        async def hung(body, context):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(context.message_id)
                raise

        result = await engine.process_messages([make_message("slow")], hung)

        assert result.failed == 1
        assert "timed out" in result.errors[0].error
        assert cancelled == ["slow"]

    @pytest.mark.asyncio
    async def test_timeout_releases_concurrency_slot(self, metrics, make_message):
        """Test other messages still complete after a timeout."""
        engine = ProcessingEngine(
            ProcessingConfig(
                mode=ProcessingMode.PARALLEL,
                batch_size=3,
                max_concurrency=1,
                handler_timeout_seconds=0.05,
            ),
            metrics=metrics,
        )

        async def handler(body, context):
            if context.message_id == "slow":
                await asyncio.sleep(10)

        messages = [make_message("slow"), make_message("a"), make_message("b")]
        result = await engine.process_messages(messages, handler)

        assert result.successful == 2
        assert result.failed_message_ids == ["slow"]

    @pytest.mark.asyncio
    async def test_handler_timeout_error_is_not_reported_as_engine_timeout(
        self, metrics, make_message
    ):
        """Test a TimeoutError raised by the handler keeps its own message."""
        engine = ProcessingEngine(
            ProcessingConfig(handler_timeout_seconds=5),
            metrics=metrics,
        )

        async def downstream_timeout(body, context):
            raise TimeoutError("payment service timed out")

        result = await engine.process_messages([make_message("m1")], downstream_timeout)

        assert result.failed == 1
        assert result.errors[0].error == "payment service timed out"


class TestEngineStats:
    """Tests for rolling statistics."""

    @pytest.mark.asyncio
    async def test_stats_accumulate_and_reset(self, metrics, sleeper, make_message):
        """Test totals accumulate across batches and reset clears them."""
        engine = ProcessingEngine(metrics=metrics, sleep=sleeper)
        tracker = ConcurrencyTracker(fail_ids={"x"})

        await engine.process_messages([make_message("a"), make_message("x")], tracker)
        await engine.process_messages([make_message("b")], tracker)

        stats = engine.get_stats()
        assert stats["total_processed"] == 2
        assert stats["total_failed"] == 1
        assert stats["average_processing_time_ms"] >= 0
        assert stats["last_batch_time_ms"] is not None

        engine.reset_stats()

        stats = engine.get_stats()
        assert stats["total_processed"] == 0
        assert stats["total_failed"] == 0
        assert stats["last_batch_time_ms"] is None

    @pytest.mark.asyncio
    async def test_processed_metrics(self, metrics, registry, sleeper, make_message):
        """Test per-message outcomes are exported as metrics."""
        engine = ProcessingEngine(metrics=metrics, sleep=sleeper)

        await engine.process_messages(
            [make_message("a"), make_message("x")],
            ConcurrencyTracker(fail_ids={"x"}),
        )

        sample = "queue_messages_processed_total"
        assert registry.get_sample_value(sample, {"status": "succeeded"}) == 1
        assert registry.get_sample_value(sample, {"status": "failed"}) == 1

    def test_set_mode(self, metrics):
        """Test switching modes."""
        engine = ProcessingEngine(metrics=metrics)

        engine.set_mode("parallel")

        assert engine.mode == ProcessingMode.PARALLEL
        with pytest.raises(ValueError):
            engine.set_mode("sideways")
