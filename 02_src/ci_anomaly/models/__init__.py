"""Core data models for the CI anomaly pipeline."""

from .events import (
    FINAL_MARKER_SOURCE,
    AdditionalInfoAgent,
    AdditionalInfoController,
    BuildLogData,
    CodeChanges,
    ConversationKey,
    DependencyData,
    EventType,
    LogEvent,
    ScanResult,
    SecretDetection,
)
from .analysis import AnalysisOutcome, AnalysisRouting
from .messages import StoredMessage
from .tracing import TraceEvent

__all__ = [
    # Events
    "EventType",
    "ConversationKey",
    "LogEvent",
    "BuildLogData",
    "SecretDetection",
    "DependencyData",
    "CodeChanges",
    "AdditionalInfoAgent",
    "AdditionalInfoController",
    "ScanResult",
    "FINAL_MARKER_SOURCE",
    # Analysis
    "AnalysisRouting",
    "AnalysisOutcome",
    # Messages
    "StoredMessage",
    # Tracing
    "TraceEvent",
]
