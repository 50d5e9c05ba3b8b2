"""Analysis request/result data models."""

from dataclasses import dataclass


@dataclass(frozen=True)
class AnalysisRouting:
    """Routing parameters the AI client uses to pull the build's history."""

    job_name: str
    build_number: int


@dataclass(frozen=True)
class AnalysisOutcome:
    """Result of one triggered analysis, successful or not."""

    job_name: str
    build_number: int
    attempts: int
    text: str | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.text is not None
