"""Pytest configuration and fixtures."""

import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

NOW = datetime(2025, 3, 14, 12, 0, 0, tzinfo=timezone.utc)


def iso(moment: datetime) -> str:
    """Format an instant the way the CI emitter does."""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def make_raw_event(
    event_type: str = "build_log_data",
    job_name: str = "payments-service",
    build_number: int = 42,
    timestamp: str | None = None,
    **fields,
) -> str:
    """Serialize one inbound event as it arrives on the queue."""
    payload = {
        "type": event_type,
        "timestamp": timestamp or iso(NOW - timedelta(seconds=5)),
        "job_name": job_name,
        "build_number": build_number,
        **fields,
    }
    return json.dumps(payload)


def build_log(**kwargs) -> str:
    kwargs.setdefault("data", {"raw_log": "Started by user admin"})
    return make_raw_event("build_log_data", **kwargs)


def final_marker(**kwargs) -> str:
    kwargs.setdefault("data", {"source": "build_log", "secrets": {}})
    return make_raw_event("secret_detection", **kwargs)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest_asyncio.fixture
async def storage():
    """Create in-memory storage for testing."""
    from ci_anomaly.storage import Storage

    st = Storage(":memory:")
    await st.init()
    yield st
    await st.close()


@pytest.fixture
def tracer(storage):
    """Create Tracer backed by the in-memory storage."""
    from ci_anomaly.tracing import Tracer

    return Tracer(storage)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_llm():
    """Create mock LLM provider returning a valid analysis."""
    llm = Mock()
    llm.complete = AsyncMock(return_value='{"summary": "ok", "anomalies": []}')
    return llm


@pytest.fixture
def fire():
    """Completion-tracker callback recording fired keys."""
    return AsyncMock(return_value=None)


@pytest.fixture
def completion_tracker(storage, fire, clock):
    """Create BuildCompletionTracker over the in-memory storage."""
    from ci_anomaly.completion import BuildCompletionTracker

    return BuildCompletionTracker(storage, fire, ttl_seconds=900.0, clock=clock)


@pytest.fixture
def processor(storage, completion_tracker, tracer):
    """Create LogProcessor with default freshness window."""
    from ci_anomaly.pipeline import LogProcessor
    from ci_anomaly.temporal import TemporalGate

    return LogProcessor(
        gate=TemporalGate(),
        store=storage,
        tracker=completion_tracker,
        tracer=tracer,
    )
