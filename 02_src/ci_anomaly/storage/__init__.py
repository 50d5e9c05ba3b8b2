"""Storage module."""

from .storage import MAX_CONTENT_LENGTH, IConversationStore, IStorage, Storage

__all__ = ["MAX_CONTENT_LENGTH", "IConversationStore", "IStorage", "Storage"]
