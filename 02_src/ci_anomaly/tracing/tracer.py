"""Tracer implementation for recording pipeline outcomes as TraceEvents."""

import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Protocol

from ..errors import PersistenceError
from ..logging_config import get_logger
from ..models import TraceEvent
from ..storage import IStorage

logger = get_logger(__name__)


class ITracer(Protocol):
    """Creating TraceEvents for the observability API."""

    async def track(self, event_type: str, actor: str, data: dict) -> None:
        """Create TraceEvent and save to Storage."""
        ...


class Tracer:
    """Records one TraceEvent per pipeline outcome."""

    def __init__(self, storage: IStorage):
        self._storage = storage

    async def track(self, event_type: str, actor: str, data: dict) -> None:
        """Create TraceEvent and save to Storage."""
        trace_event = TraceEvent(
            id=str(uuid.uuid4()),
            event_type=event_type,
            actor=actor,
            data=data,
            timestamp=datetime.now(timezone.utc),
        )
        try:
            await self._storage.save_trace_event(trace_event)
        except (PersistenceError, sqlite3.Error) as e:
            # Tracing never decides the outcome of a message
            logger.warning("Failed to record trace event %s: %s", event_type, e)
