"""In-process named message queues and the worker pool draining them."""

import asyncio
from typing import Awaitable, Callable, Protocol

from ..logging_config import get_logger

logger = get_logger(__name__)

MessageHandler = Callable[[str | bytes], Awaitable[object]]


class UnknownQueueError(LookupError):
    """Raised when publishing to a queue that was never declared."""


class IMessageQueue(Protocol):
    """Named point-to-point queues of raw inbound messages."""

    def declare(self, queue_name: str, max_size: int = 0) -> None:
        """Create the queue if it does not exist yet."""
        ...

    async def publish(self, queue_name: str, raw: str | bytes) -> None:
        """Enqueue a raw message, waiting while the queue is full."""
        ...


class MessageQueue:
    """Bounded asyncio queues addressed by name."""

    def __init__(self):
        self._queues: dict[str, asyncio.Queue] = {}

    def declare(self, queue_name: str, max_size: int = 0) -> None:
        """Create the queue if it does not exist yet."""
        if queue_name not in self._queues:
            self._queues[queue_name] = asyncio.Queue(maxsize=max_size)
            logger.info("Declared queue %s (max size %s)", queue_name, max_size or "unbounded")

    def get(self, queue_name: str) -> asyncio.Queue:
        """Get a declared queue."""
        try:
            return self._queues[queue_name]
        except KeyError:
            raise UnknownQueueError(f"Queue {queue_name!r} is not declared") from None

    def has_queue(self, queue_name: str) -> bool:
        return queue_name in self._queues

    async def publish(self, queue_name: str, raw: str | bytes) -> None:
        """Enqueue a raw message, waiting while the queue is full."""
        await self.get(queue_name).put(raw)

    def depth(self, queue_name: str) -> int:
        """Number of messages waiting in the queue."""
        return self.get(queue_name).qsize()

    async def join(self, queue_name: str) -> None:
        """Wait until every published message has been handled."""
        await self.get(queue_name).join()

    def drain(self, queue_name: str) -> int:
        """Discard waiting messages. Returns how many were dropped."""
        queue = self.get(queue_name)
        dropped = 0
        while True:
            try:
                queue.get_nowait()
            except asyncio.QueueEmpty:
                return dropped
            queue.task_done()
            dropped += 1


class QueueConsumer:
    """Fixed pool of workers, each taking one message at a time."""

    def __init__(
        self,
        queue: MessageQueue,
        queue_name: str,
        handler: MessageHandler,
        worker_count: int = 4,
    ):
        if worker_count <= 0:
            raise ValueError("worker_count must be positive")
        self._queue = queue
        self._queue_name = queue_name
        self._handler = handler
        self._worker_count = worker_count
        self._workers: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    async def start(self) -> None:
        """Start the worker tasks."""
        if self._workers:
            return
        source = self._queue.get(self._queue_name)
        self._workers = [
            asyncio.create_task(self._work(source, n), name=f"{self._queue_name}-worker-{n}")
            for n in range(self._worker_count)
        ]
        logger.info("Started %s workers on queue %s", self._worker_count, self._queue_name)

    async def stop(self) -> None:
        """Cancel the workers and wait for them to exit."""
        workers, self._workers = self._workers, []
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        if workers:
            logger.info("Stopped workers on queue %s", self._queue_name)

    async def _work(self, source: asyncio.Queue, number: int) -> None:
        while True:
            raw = await source.get()
            try:
                await self._handler(raw)
            except Exception as e:
                # A failing message must not take the worker down
                logger.error(
                    "Worker %s on %s failed to handle a message: %s",
                    number,
                    self._queue_name,
                    e,
                    exc_info=True,
                )
            finally:
                source.task_done()
