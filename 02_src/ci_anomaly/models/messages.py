"""Persisted conversation message models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal


@dataclass
class StoredMessage:
    """A single entry in a job's append-only conversation log."""

    id: str
    conversation_id: str  # job name
    build_number: int
    role: Literal["user", "assistant"]
    content: str  # serialized event JSON, analysis prompt or analysis response
    created_at: datetime
    event_type: str | None = None  # discriminator; None for prompt/analysis entries
    metadata: dict[str, Any] = field(default_factory=dict)
    sequence: int | None = None  # arrival order, assigned by the store
