"""One processing pass per inbound message: decode, gate, persist, observe."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol

from ..completion import BuildCompletionTracker, BuildState
from ..decoding import decode
from ..errors import DecodeError, PersistenceError
from ..logging_config import get_logger
from ..models import EventType, LogEvent, StoredMessage
from ..storage import IConversationStore
from ..temporal import GateDecision, TemporalGate
from ..tracing import ITracer

logger = get_logger(__name__)

ACTOR = "log_processor"


class ProcessResult(str, Enum):
    """What happened to one inbound message."""

    DECODE_FAILED = "decode_failed"
    REJECTED = "rejected"
    PERSISTED = "persisted"
    TRIGGERED = "triggered"
    FAILED = "failed"


class ILogProcessor(Protocol):
    """Handles one raw inbound message."""

    async def process(self, raw: str | bytes, now: datetime | None = None) -> ProcessResult:
        """Run the message through the pipeline."""
        ...


class LogProcessor:
    """Wires the decoder, temporal gate, store and completion tracker."""

    def __init__(
        self,
        gate: TemporalGate,
        store: IConversationStore,
        tracker: BuildCompletionTracker,
        tracer: ITracer | None = None,
    ):
        self._gate = gate
        self._store = store
        self._tracker = tracker
        self._tracer = tracer

    async def process(self, raw: str | bytes, now: datetime | None = None) -> ProcessResult:
        """
        Run one message through the pipeline.

        Failures are logged, traced and isolated to this message; nothing is
        raised to the caller.
        """
        try:
            event = decode(raw)
        except DecodeError as e:
            logger.warning("Dropping undecodable message: %s", e)
            await self._trace("message_decode_failed", {"error": str(e)})
            return ProcessResult.DECODE_FAILED

        log_extra = {
            "job_name": event.job_name,
            "build_number": event.build_number,
            "event_type": event.event_type.value,
        }

        try:
            decision = self._gate.evaluate(event, now)
            if decision is not GateDecision.ACCEPTED:
                await self._trace(
                    "message_rejected",
                    {**self._describe(event), "reason": decision.value},
                )
                return ProcessResult.REJECTED

            await self._store.append(event.job_name, self._to_message(event))
            await self._trace("message_persisted", self._describe(event))

            fired = await self._tracker.observe(event)
            if (
                event.event_type is EventType.BUILD_LOG
                and self._tracker.state_of(event.key) is BuildState.READY
            ):
                await self._trace("build_ready", self._describe(event))
        except PersistenceError as e:
            logger.error("Failed to persist %s event: %s", event.event_type.value, e, extra=log_extra)
            await self._trace("message_failed", {**self._describe(event), "error": str(e)})
            return ProcessResult.FAILED
        except Exception as e:
            logger.error(
                "Unexpected error while processing %s event: %s",
                event.event_type.value,
                e,
                exc_info=True,
                extra=log_extra,
            )
            await self._trace("message_failed", {**self._describe(event), "error": str(e)})
            return ProcessResult.FAILED

        return ProcessResult.TRIGGERED if fired else ProcessResult.PERSISTED

    @staticmethod
    def _to_message(event: LogEvent) -> StoredMessage:
        return StoredMessage(
            id=str(uuid.uuid4()),
            conversation_id=event.job_name,
            build_number=event.build_number,
            role="user",
            content=event.to_json(),
            created_at=datetime.now(timezone.utc),
            event_type=event.event_type.value,
            metadata={"build_number": event.build_number},
        )

    @staticmethod
    def _describe(event: LogEvent) -> dict:
        return {
            "job_name": event.job_name,
            "build_number": event.build_number,
            "event_type": event.event_type.value,
            "timestamp": event.timestamp,
        }

    async def _trace(self, event_type: str, data: dict) -> None:
        if self._tracer:
            await self._tracer.track(event_type, ACTOR, data)
