"""CI log-event ingestion and anomaly analysis pipeline."""

from .analysis import BoundedRetry, IAnalysisClient, TriggerCoordinator
from .app import Application, IApplication
from .completion import BuildCompletionTracker, BuildState
from .decoding import decode
from .errors import (
    AnalysisError,
    ConfigurationError,
    DecodeError,
    PersistenceError,
    PipelineError,
)
from .llm import AnalysisClient, ILLMProvider, LLMProvider
from .models import (
    AnalysisOutcome,
    AnalysisRouting,
    ConversationKey,
    EventType,
    LogEvent,
    StoredMessage,
    TraceEvent,
)
from .pipeline import LogProcessor, ProcessResult
from .storage import IConversationStore, IStorage, Storage
from .temporal import GateDecision, TemporalGate
from .tracing import ITracer, Tracer
from .transport import MessageQueue, QueueConsumer

__all__ = [
    # Application
    "Application",
    "IApplication",
    # Models
    "EventType",
    "LogEvent",
    "ConversationKey",
    "StoredMessage",
    "TraceEvent",
    "AnalysisRouting",
    "AnalysisOutcome",
    # Errors
    "PipelineError",
    "DecodeError",
    "PersistenceError",
    "AnalysisError",
    "ConfigurationError",
    # Components
    "decode",
    "GateDecision",
    "TemporalGate",
    "IConversationStore",
    "IStorage",
    "Storage",
    "BuildState",
    "BuildCompletionTracker",
    "BoundedRetry",
    "IAnalysisClient",
    "TriggerCoordinator",
    "ILLMProvider",
    "LLMProvider",
    "AnalysisClient",
    "LogProcessor",
    "ProcessResult",
    "ITracer",
    "Tracer",
    "MessageQueue",
    "QueueConsumer",
]
