"""Inbound transport module."""

from .queue import (
    IMessageQueue,
    MessageHandler,
    MessageQueue,
    QueueConsumer,
    UnknownQueueError,
)

__all__ = [
    "IMessageQueue",
    "MessageHandler",
    "MessageQueue",
    "QueueConsumer",
    "UnknownQueueError",
]
