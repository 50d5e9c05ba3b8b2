"""Per-build completion state machine deciding when to trigger analysis.

A build is *ready* once both its initial and final build-log chunks are in
the conversation store. The secret scan of the final build-log chunk (the
final marker) then fires the analysis for a ready build exactly once and
removes its entry.

Every observation on a key runs under that key's lock, so the
count -> transition and check -> fire -> remove sequences are atomic with
respect to duplicate deliveries of the same build's events. Different keys
never wait on each other.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable

from ..logging_config import get_logger
from ..models import ConversationKey, EventType, LogEvent
from ..storage import IConversationStore

logger = get_logger(__name__)

# An initial and a final build-log chunk
REQUIRED_BUILD_LOGS = 2
DEFAULT_TTL_SECONDS = 900.0

FireCallback = Callable[[ConversationKey], Awaitable[object]]


class BuildState(str, Enum):
    """Logical completion state of one build."""

    INCOMPLETE = "incomplete"
    READY = "ready"


@dataclass
class BuildCompletionState:
    """Tracker entry for one build."""

    key: ConversationKey
    state: BuildState
    updated_at: float  # clock() of the last observation


@dataclass
class _LockSlot:
    lock: asyncio.Lock
    users: int = 0


class _KeyLocks:
    """Per-key locks, discarded once no task holds or waits on them."""

    def __init__(self):
        self._slots: dict[ConversationKey, _LockSlot] = {}

    @asynccontextmanager
    async def hold(self, key: ConversationKey) -> AsyncIterator[None]:
        slot = self._slots.get(key)
        if slot is None:
            slot = self._slots[key] = _LockSlot(asyncio.Lock())
        slot.users += 1
        try:
            async with slot.lock:
                yield
        finally:
            slot.users -= 1
            if slot.users == 0:
                del self._slots[key]

    def in_use(self, key: ConversationKey) -> bool:
        return key in self._slots


class BuildCompletionTracker:
    """In-memory completion tracker keyed by (job name, build number)."""

    def __init__(
        self,
        store: IConversationStore,
        fire: FireCallback,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        required_build_logs: int = REQUIRED_BUILD_LOGS,
    ):
        self._store = store
        self._fire = fire
        self._ttl = ttl_seconds
        self._clock = clock
        self._required_build_logs = required_build_logs
        self._states: dict[ConversationKey, BuildCompletionState] = {}
        # Keys that already fired, kept until TTL so late duplicates cannot re-fire
        self._fired: dict[ConversationKey, float] = {}
        self._locks = _KeyLocks()

    @property
    def pending_count(self) -> int:
        """Number of builds currently tracked."""
        return len(self._states)

    def state_of(self, key: ConversationKey) -> BuildState | None:
        """Current state of a build, or None if it has no entry."""
        entry = self._states.get(key)
        return entry.state if entry else None

    def has_fired(self, key: ConversationKey) -> bool:
        """Whether analysis was already triggered for this build."""
        return key in self._fired

    async def observe(self, event: LogEvent) -> bool:
        """
        Feed an event that has already been appended to the store.

        Returns:
            True if this observation triggered the analysis.
        """
        if event.event_type is EventType.BUILD_LOG:
            await self._observe_build_log(event.key)
            return False
        if event.is_final_marker:
            return await self._observe_final_marker(event.key)
        return False

    async def _observe_build_log(self, key: ConversationKey) -> None:
        async with self._locks.hold(key):
            if key in self._fired:
                logger.debug("Ignoring build log for %s: analysis already triggered", key)
                return

            count = await self._store.count_by_type(
                key.job_name, key.build_number, EventType.BUILD_LOG.value
            )
            now = self._clock()
            entry = self._states.get(key)
            if entry is None:
                entry = BuildCompletionState(key, BuildState.INCOMPLETE, now)
                self._states[key] = entry

            if count >= self._required_build_logs and entry.state is BuildState.INCOMPLETE:
                entry.state = BuildState.READY
                logger.info(
                    "Detected %s build logs for %s, build is ready",
                    count,
                    key,
                    extra={"job_name": key.job_name, "build_number": key.build_number},
                )
            entry.updated_at = now

    async def _observe_final_marker(self, key: ConversationKey) -> bool:
        async with self._locks.hold(key):
            if key in self._fired:
                logger.info("Ignoring duplicate final marker for %s", key)
                return False

            if not await self._is_ready(key):
                logger.info(
                    "Final marker for %s arrived before the build logs were complete",
                    key,
                    extra={"job_name": key.job_name, "build_number": key.build_number},
                )
                return False

            try:
                await self._fire(key)
            finally:
                self._states.pop(key, None)
                self._fired[key] = self._clock()
            return True

    async def _is_ready(self, key: ConversationKey) -> bool:
        entry = self._states.get(key)
        if entry is not None and entry.state is BuildState.READY:
            return True

        # A build log can be stored before its own worker has observed it
        count = await self._store.count_by_type(
            key.job_name, key.build_number, EventType.BUILD_LOG.value
        )
        if count < self._required_build_logs:
            return False
        logger.info(
            "Final marker for %s found %s stored build logs, build is ready",
            key,
            count,
            extra={"job_name": key.job_name, "build_number": key.build_number},
        )
        return True

    def evict_stale(self) -> list[ConversationKey]:
        """
        Drop entries and fired markers not touched within the TTL.

        Builds whose final build-log chunk never arrives would otherwise stay
        tracked forever. Keys with an operation in flight are skipped.

        Returns:
            Keys whose incomplete/ready entry was evicted.
        """
        cutoff = self._clock() - self._ttl

        evicted = [
            key
            for key, entry in self._states.items()
            if entry.updated_at < cutoff and not self._locks.in_use(key)
        ]
        for key in evicted:
            logger.info("Evicting stale %s tracker entry for %s", self._states[key].state.value, key)
            del self._states[key]

        expired = [key for key, fired_at in self._fired.items() if fired_at < cutoff]
        for key in expired:
            del self._fired[key]

        return evicted

    def clear(self) -> None:
        """Forget all tracked builds."""
        self._states.clear()
        self._fired.clear()
