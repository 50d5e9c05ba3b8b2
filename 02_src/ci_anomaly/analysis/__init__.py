"""Analysis triggering module."""

from .coordinator import (
    IAnalysisClient,
    TriggerCoordinator,
    is_valid_json,
    load_prompt_template,
    render_prompt,
)
from .retry import BoundedRetry, RetryOutcome, UnacceptableResult

__all__ = [
    "IAnalysisClient",
    "TriggerCoordinator",
    "is_valid_json",
    "load_prompt_template",
    "render_prompt",
    "BoundedRetry",
    "RetryOutcome",
    "UnacceptableResult",
]
