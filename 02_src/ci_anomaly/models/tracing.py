"""Tracing and observability data models."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class TraceEvent:
    """A single pipeline outcome, kept for the observability API."""

    id: str
    event_type: str  # e.g. "message_persisted", "analysis_failed"
    actor: str  # component that created this event
    data: dict  # self-contained details for display
    timestamp: datetime
