"""Application bootstrap and lifecycle management."""

import asyncio
import os
import sqlite3
import time
from typing import Callable, Protocol

from .analysis import TriggerCoordinator, load_prompt_template
from .completion import BuildCompletionTracker
from .config import Settings, load_settings, resolve_db_path
from .errors import PersistenceError
from .llm import AnalysisClient, ILLMProvider, LLMProvider
from .logging_config import get_logger
from .pipeline import LogProcessor
from .storage import IStorage, Storage
from .temporal import TemporalGate
from .tracing import ITracer, Tracer
from .transport import MessageQueue, QueueConsumer, UnknownQueueError

logger = get_logger(__name__)


class IApplication(Protocol):
    """Bootstrap and lifecycle."""

    @property
    def storage(self) -> IStorage:
        """Persistent storage."""
        ...

    async def start(self) -> None:
        """Initialize components in dependency order."""
        ...

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        ...

    async def reset(self) -> None:
        """Reset data between test runs."""
        ...

    async def publish(self, queue_name: str, raw: str | bytes) -> None:
        """Hand a raw message to the inbound queue."""
        ...

    def status(self) -> dict:
        """Snapshot of queue depth and tracker state."""
        ...


class Application:
    """Main application bootstrap."""

    def __init__(
        self,
        db_path: str | None = None,
        settings: Settings | None = None,
        llm_provider: ILLMProvider | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        env_db_path = os.getenv("DATABASE_URL") if db_path is None else db_path
        self._db_path = resolve_db_path(env_db_path)
        self._settings = settings or load_settings()
        self._clock = clock

        # Components (will be initialized in start())
        self._storage: IStorage | None = None
        self._tracer: ITracer | None = None
        self._llm: ILLMProvider | None = llm_provider
        self._coordinator: TriggerCoordinator | None = None
        self._completion: BuildCompletionTracker | None = None
        self._processor: LogProcessor | None = None
        self._queue: MessageQueue | None = None
        self._consumer: QueueConsumer | None = None
        self._maintenance: list[asyncio.Task] = []

    async def start(self) -> None:
        """Initialize components in dependency order."""
        logger.info("Starting application")
        settings = self._settings

        # 1. Prompts (fail fast on a broken deployment)
        prompt_template = load_prompt_template(settings.prompt_template_path)
        system_prompt = load_prompt_template(settings.system_prompt_path)

        # 2. Storage (no dependencies)
        self._storage = Storage(self._db_path)
        await self._storage.init()
        logger.info("Storage initialized")

        # 3. Tracer (depends on Storage)
        self._tracer = Tracer(self._storage)

        # 4. LLMProvider (no internal dependencies)
        if self._llm is None:
            self._llm = LLMProvider()
        logger.info("LLM provider initialized")

        # 5. AI client and coordinator (depend on LLM, Storage, Tracer)
        client = AnalysisClient(
            llm_provider=self._llm,
            store=self._storage,
            system_prompt=system_prompt,
            history_limit=settings.history_limit,
        )
        self._coordinator = TriggerCoordinator(
            client,
            prompt_template,
            tracer=self._tracer,
            timeout_seconds=settings.ai_timeout_seconds,
        )

        # 6. Completion tracker (depends on Storage + coordinator)
        self._completion = BuildCompletionTracker(
            self._storage,
            self._coordinator.fire_for,
            ttl_seconds=settings.tracker_ttl_seconds,
            clock=self._clock,
        )

        # 7. Processor (depends on everything above)
        self._processor = LogProcessor(
            gate=TemporalGate(
                max_age_seconds=settings.max_age_seconds,
                future_gap_seconds=settings.future_gap_seconds,
            ),
            store=self._storage,
            tracker=self._completion,
            tracer=self._tracer,
        )

        # 8. Inbound queue and its workers
        self._queue = MessageQueue()
        self._queue.declare(settings.queue_name, settings.queue_max_size)
        self._consumer = QueueConsumer(
            self._queue,
            settings.queue_name,
            self._processor.process,
            worker_count=settings.worker_count,
        )
        await self._consumer.start()

        # 9. Maintenance
        self._maintenance = [
            asyncio.create_task(
                self._every(settings.tracker_sweep_interval_seconds, self.sweep_tracker),
                name="tracker-sweep",
            ),
            asyncio.create_task(
                self._every(settings.prune_interval_seconds, self.prune_store),
                name="store-prune",
            ),
        ]
        logger.info("All components initialized successfully")

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        tasks, self._maintenance = self._maintenance, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        if self._consumer:
            await self._consumer.stop()
        if self._storage:
            await self._storage.close()
            logger.info("Storage closed")

    async def reset(self) -> None:
        """Reset data between test runs."""
        # 1. Pause workers and drop queued messages
        if self._consumer:
            await self._consumer.stop()
        if self._queue:
            dropped = self._queue.drain(self._settings.queue_name)
            if dropped:
                logger.info("Dropped %s queued messages", dropped)

        # 2. Clear storage and tracked builds
        if self._storage:
            await self._storage.clear()
            logger.info("Storage cleared")
        if self._completion:
            self._completion.clear()

        # 3. Restart workers
        if self._consumer:
            await self._consumer.start()
            logger.info("Reset complete")

    async def publish(self, queue_name: str, raw: str | bytes) -> None:
        """
        Hand a raw message to the inbound queue.

        Raises:
            UnknownQueueError: if queue_name is not the configured queue.
        """
        if queue_name != self._settings.queue_name:
            raise UnknownQueueError(f"Queue {queue_name!r} is not consumed")
        await self.queue.publish(queue_name, raw)

    def status(self) -> dict:
        """Snapshot of queue depth and tracker state."""
        return {
            "queue": self._settings.queue_name,
            "queue_depth": self.queue.depth(self._settings.queue_name),
            "workers_running": bool(self._consumer and self._consumer.running),
            "pending_builds": self.completion_tracker.pending_count,
        }

    async def sweep_tracker(self) -> None:
        """Evict tracker entries that outlived the TTL."""
        for key in self.completion_tracker.evict_stale():
            if self._tracer:
                await self._tracer.track(
                    "tracker_evicted",
                    "completion_tracker",
                    {"job_name": key.job_name, "build_number": key.build_number},
                )

    async def prune_store(self) -> None:
        """Keep only the newest messages of each conversation."""
        deleted = await self.storage.prune_old_messages(
            self._settings.max_messages_per_conversation
        )
        if deleted:
            logger.info("Pruned %s old messages", deleted)

    async def _every(self, interval: float, job: Callable) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await job()
            except (PersistenceError, sqlite3.Error) as e:
                logger.error("Maintenance job %s failed: %s", job.__name__, e)

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def storage(self) -> IStorage:
        """Get storage instance."""
        if not self._storage:
            raise RuntimeError("Application not started")
        return self._storage

    @property
    def tracer(self) -> ITracer:
        """Get tracer instance."""
        if not self._tracer:
            raise RuntimeError("Application not started")
        return self._tracer

    @property
    def queue(self) -> MessageQueue:
        """Get inbound queue instance."""
        if not self._queue:
            raise RuntimeError("Application not started")
        return self._queue

    @property
    def processor(self) -> LogProcessor:
        """Get log processor instance."""
        if not self._processor:
            raise RuntimeError("Application not started")
        return self._processor

    @property
    def completion_tracker(self) -> BuildCompletionTracker:
        """Get build-completion tracker instance."""
        if not self._completion:
            raise RuntimeError("Application not started")
        return self._completion
