"""Tests for LogProcessor."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, Mock

import pytest

from ci_anomaly.analysis import TriggerCoordinator
from ci_anomaly.completion import BuildCompletionTracker
from ci_anomaly.errors import PersistenceError
from ci_anomaly.llm import AnalysisClient
from ci_anomaly.models import ConversationKey, StoredMessage
from ci_anomaly.pipeline import LogProcessor, ProcessResult
from ci_anomaly.storage import Storage
from ci_anomaly.temporal import TemporalGate
from conftest import NOW, build_log, final_marker, iso, make_raw_event

TEMPLATE = '{"jobName": "<conversationId>", "buildId": <buildNumber>}'
KEY = ConversationKey("payments-service", 42)


class LateAckStorage(Storage):
    """Storage that commits build logs but returns from append only when released."""

    def __init__(self, db_path: str):
        super().__init__(db_path)
        self.stored = asyncio.Event()
        self.release = asyncio.Event()
        self._holding = False

    def hold_build_logs(self) -> None:
        self._holding = True

    async def append(self, job_name: str, message: StoredMessage) -> None:
        await super().append(job_name, message)
        if self._holding and message.event_type == "build_log_data":
            self.stored.set()
            await self.release.wait()


class TestProcessOutcomes:
    """Tests for per-message outcomes."""

    async def test_fresh_event_is_persisted(self, processor, storage):
        """Test that a valid fresh event is appended to its job's log."""
        result = await processor.process(make_raw_event("code_changes"), now=NOW)

        assert result is ProcessResult.PERSISTED
        messages = await storage.get_messages("payments-service")
        assert len(messages) == 1
        assert messages[0].role == "user"
        assert messages[0].event_type == "code_changes"
        assert messages[0].metadata["build_number"] == 42

    async def test_stale_event_is_not_appended(self, processor, storage):
        """Test that an event 480 seconds old is dropped before the store."""
        raw = build_log(timestamp=iso(NOW - timedelta(seconds=480)))

        result = await processor.process(raw, now=NOW)

        assert result is ProcessResult.REJECTED
        assert await storage.get_messages("payments-service") == []

    async def test_future_event_is_not_appended(self, processor, storage):
        """Test that an event 35 seconds ahead is dropped."""
        raw = build_log(timestamp=iso(NOW + timedelta(seconds=35)))

        assert await processor.process(raw, now=NOW) is ProcessResult.REJECTED
        assert await storage.get_messages("payments-service") == []

    async def test_near_future_event_is_appended(self, processor, storage):
        """Test that an event 20 seconds ahead is accepted."""
        raw = build_log(timestamp=iso(NOW + timedelta(seconds=20)))

        assert await processor.process(raw, now=NOW) is ProcessResult.PERSISTED

    async def test_undecodable_message(self, processor, storage):
        """Test that garbage is dropped without touching the store."""
        result = await processor.process("not json at all", now=NOW)

        assert result is ProcessResult.DECODE_FAILED
        events = await storage.get_trace_events(event_types=["message_decode_failed"])
        assert len(events) == 1

    async def test_rejection_is_traced_with_reason(self, processor, storage):
        """Test that a dropped event leaves a trace with the gate decision."""
        await processor.process(build_log(timestamp="yesterday"), now=NOW)

        events = await storage.get_trace_events(event_types=["message_rejected"])
        assert events[0].data["reason"] == "unparseable"

    async def test_store_failure_is_isolated(self, completion_tracker, tracer):
        """Test that a persistence error fails only this message."""
        store = Mock()
        store.append = AsyncMock(side_effect=PersistenceError("disk full"))
        processor = LogProcessor(TemporalGate(), store, completion_tracker, tracer)

        result = await processor.process(build_log(), now=NOW)

        assert result is ProcessResult.FAILED
        assert completion_tracker.pending_count == 0

    async def test_unexpected_error_is_isolated(self, storage, tracer):
        """Test that any exception in a pass is logged and contained."""
        tracker = Mock()
        tracker.observe = AsyncMock(side_effect=KeyError("boom"))
        processor = LogProcessor(TemporalGate(), storage, tracker, tracer)

        result = await processor.process(build_log(), now=NOW)

        assert result is ProcessResult.FAILED
        assert len(await storage.get_messages("payments-service")) == 1


class TestProcessTriggering:
    """Tests for completion detection through the processor."""

    async def test_complete_build_triggers_once(self, processor, fire):
        """Test the two build logs plus final marker sequence."""
        results = [
            await processor.process(raw, now=NOW)
            for raw in [build_log(), make_raw_event("code_changes"), build_log(), final_marker()]
        ]

        assert results[-1] is ProcessResult.TRIGGERED
        fire.assert_awaited_once_with(KEY)

    async def test_duplicate_marker_does_not_retrigger(self, processor, fire):
        """Test that a redelivered final marker does not call the AI again."""
        for raw in [build_log(), build_log(), final_marker(), final_marker()]:
            await processor.process(raw, now=NOW)

        assert fire.await_count == 1

    async def test_single_build_log_never_triggers(self, processor, fire):
        """Test that one build log plus marker does not fire."""
        for raw in [build_log(), final_marker()]:
            await processor.process(raw, now=NOW)

        fire.assert_not_awaited()

    async def test_stale_marker_does_not_trigger(self, processor, fire):
        """Test that a marker dropped by the gate never reaches the tracker."""
        await processor.process(build_log(), now=NOW)
        await processor.process(build_log(), now=NOW)

        await processor.process(
            final_marker(timestamp=iso(NOW - timedelta(seconds=600))), now=NOW
        )

        fire.assert_not_awaited()

    async def test_build_ready_is_traced(self, processor, storage):
        """Test that reaching READY is recorded."""
        await processor.process(build_log(), now=NOW)
        await processor.process(build_log(), now=NOW)

        events = await storage.get_trace_events(event_types=["build_ready"])
        assert len(events) == 1

    async def test_marker_after_unacknowledged_build_log_triggers(self, clock, tracer, fire):
        """Test that a build log stored but not yet observed still counts for the marker."""
        storage = LateAckStorage(":memory:")
        await storage.init()
        try:
            tracker = BuildCompletionTracker(storage, fire, clock=clock)
            processor = LogProcessor(TemporalGate(), storage, tracker, tracer)
            await processor.process(build_log(), now=NOW)

            storage.hold_build_logs()
            second = asyncio.create_task(processor.process(build_log(), now=NOW))
            await storage.stored.wait()
            result = await processor.process(final_marker(), now=NOW)
            storage.release.set()

            assert result is ProcessResult.TRIGGERED
            assert await second is ProcessResult.PERSISTED
            fire.assert_awaited_once_with(KEY)
            assert tracker.state_of(KEY) is None
        finally:
            await storage.close()


class TestProcessWithAnalysis:
    """Tests wiring the processor to a real coordinator and AI client."""

    @pytest.fixture
    def wired(self, storage, tracer, mock_llm, clock):
        client = AnalysisClient(mock_llm, storage, system_prompt="system")
        coordinator = TriggerCoordinator(client, TEMPLATE, tracer=tracer)
        tracker = BuildCompletionTracker(storage, coordinator.fire_for, clock=clock)
        return LogProcessor(TemporalGate(), storage, tracker, tracer)

    async def test_invalid_then_valid_response(self, wired, mock_llm, storage):
        """Test that one invalid answer leads to exactly two AI calls and success."""
        mock_llm.complete.side_effect = ["I think the build is fine.", '{"anomalies": []}']

        for raw in [build_log(), build_log(), final_marker()]:
            await wired.process(raw, now=NOW)

        assert mock_llm.complete.await_count == 2
        events = await storage.get_trace_events(event_types=["analysis_completed"])
        assert events[0].data["attempts"] == 2

    async def test_failing_ai_does_not_stop_processing(self, wired, mock_llm, storage):
        """Test that two AI failures are absorbed and later messages still flow."""
        mock_llm.complete.side_effect = RuntimeError("AI unavailable")

        for raw in [build_log(), build_log()]:
            await wired.process(raw, now=NOW)
        result = await wired.process(final_marker(), now=NOW)
        later = await wired.process(
            make_raw_event("code_changes", job_name="inventory", build_number=3), now=NOW
        )

        assert result is ProcessResult.TRIGGERED
        assert later is ProcessResult.PERSISTED
        assert mock_llm.complete.await_count == 2
        assert len(await storage.get_trace_events(event_types=["analysis_failed"])) == 1

    async def test_prompt_carries_build_identity(self, wired, mock_llm):
        """Test that the rendered prompt names the job and build."""
        for raw in [build_log(), build_log(), final_marker()]:
            await wired.process(raw, now=NOW)

        turns = mock_llm.complete.await_args.kwargs["messages"]
        assert turns[-1]["content"].endswith('{"jobName": "payments-service", "buildId": 42}')
