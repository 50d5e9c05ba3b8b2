"""Trigger coordinator: runs the AI analysis of a completed build."""

import asyncio
import json
from pathlib import Path
from typing import Protocol

from ..errors import AnalysisError, ConfigurationError
from ..logging_config import get_logger
from ..models import AnalysisOutcome, AnalysisRouting, ConversationKey
from ..tracing import ITracer
from .retry import BoundedRetry

logger = get_logger(__name__)

JOB_PLACEHOLDER = "<conversationId>"
BUILD_PLACEHOLDER = "<buildNumber>"
DEFAULT_TIMEOUT_SECONDS = 120.0


class IAnalysisClient(Protocol):
    """Stateless request/response AI call."""

    async def analyze(self, prompt: str, routing: AnalysisRouting) -> str:
        """Return analysis text for the prompt, using routing to pull history."""
        ...


def load_prompt_template(path: str | Path) -> str:
    """
    Read the analysis prompt template.

    Raises:
        ConfigurationError: if the file is missing, unreadable or empty.
    """
    try:
        template = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read prompt template {path}: {e}") from e
    if not template.strip():
        raise ConfigurationError(f"Prompt template {path} is empty")
    return template


def render_prompt(template: str, job_name: str, build_number: int) -> str:
    """Substitute the build's identity into the prompt template."""
    return template.replace(JOB_PLACEHOLDER, job_name).replace(
        BUILD_PLACEHOLDER, str(build_number)
    )


def is_valid_json(text: str | None) -> bool:
    """Structural check only: does the text parse as JSON."""
    if text is None or not text.strip():
        return False
    try:
        json.loads(text)
    except ValueError:
        return False
    return True


class TriggerCoordinator:
    """Builds the analysis request, calls the AI client and retries once."""

    def __init__(
        self,
        client: IAnalysisClient,
        prompt_template: str,
        tracer: ITracer | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        retry: BoundedRetry | None = None,
    ):
        self._client = client
        self._template = prompt_template
        self._tracer = tracer
        self._timeout = timeout_seconds
        self._retry = retry or BoundedRetry(max_attempts=2)

    async def fire(self, job_name: str, build_number: int) -> AnalysisOutcome:
        """
        Run the analysis for one build.

        Never raises: a failed analysis is logged and reported in the
        returned outcome.
        """
        prompt = render_prompt(self._template, job_name, build_number)
        routing = AnalysisRouting(job_name=job_name, build_number=build_number)
        log_extra = {"job_name": job_name, "build_number": build_number}

        logger.info(
            "Generating build analysis for %s#%s", job_name, build_number, extra=log_extra
        )

        async def attempt() -> str:
            try:
                return await asyncio.wait_for(
                    self._client.analyze(prompt, routing), timeout=self._timeout
                )
            except asyncio.TimeoutError as e:
                raise AnalysisError(
                    f"AI call timed out after {self._timeout:g}s"
                ) from e

        result = await self._retry.run(
            attempt, is_valid_json, label=f"analysis of {job_name}#{build_number}"
        )

        if result.succeeded:
            logger.debug("AI response for %s#%s: %s", job_name, build_number, result.value)
            outcome = AnalysisOutcome(
                job_name=job_name,
                build_number=build_number,
                attempts=result.attempts,
                text=result.value,
            )
            await self._trace("analysis_completed", outcome)
            return outcome

        logger.error(
            "All %s AI attempts failed for build %s#%s: %s",
            result.attempts,
            job_name,
            build_number,
            result.error,
            extra=log_extra,
        )
        outcome = AnalysisOutcome(
            job_name=job_name,
            build_number=build_number,
            attempts=result.attempts,
            error=str(result.error),
        )
        await self._trace("analysis_failed", outcome)
        return outcome

    async def fire_for(self, key: ConversationKey) -> AnalysisOutcome:
        """Completion-tracker callback form of fire()."""
        return await self.fire(key.job_name, key.build_number)

    async def _trace(self, event_type: str, outcome: AnalysisOutcome) -> None:
        if not self._tracer:
            return
        await self._tracer.track(
            event_type,
            "trigger_coordinator",
            {
                "job_name": outcome.job_name,
                "build_number": outcome.build_number,
                "attempts": outcome.attempts,
                "error": outcome.error,
            },
        )
