"""Build-completion tracking module."""

from .tracker import (
    REQUIRED_BUILD_LOGS,
    BuildCompletionState,
    BuildCompletionTracker,
    BuildState,
    FireCallback,
)

__all__ = [
    "REQUIRED_BUILD_LOGS",
    "BuildCompletionState",
    "BuildCompletionTracker",
    "BuildState",
    "FireCallback",
]
