"""Bounded retry combinator for async calls."""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

from ..logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class UnacceptableResult(Exception):
    """The call completed but its result failed the acceptance predicate."""

    def __init__(self, value: object):
        super().__init__("Result rejected by acceptance check")
        self.value = value


@dataclass(frozen=True)
class RetryOutcome(Generic[T]):
    """What a bounded retry run ended with."""

    value: T | None
    attempts: int
    error: Exception | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class BoundedRetry:
    """Runs an async action up to ``max_attempts`` times until its result is acceptable."""

    def __init__(
        self,
        max_attempts: int = 2,
        delay_seconds: float = 0.0,
        sleeper: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.delay_seconds = delay_seconds
        self._sleeper = sleeper

    async def run(
        self,
        action: Callable[[], Awaitable[T]],
        is_acceptable: Callable[[T], bool],
        label: str = "call",
    ) -> RetryOutcome[T]:
        """
        Call ``action`` until it returns an acceptable value or attempts run out.

        Exceptions raised by ``action`` and unacceptable results both count as
        a failed attempt. Cancellation is never retried.
        """
        last_error: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                value = await action()
                if not is_acceptable(value):
                    raise UnacceptableResult(value)
                return RetryOutcome(value=value, attempts=attempt)
            except Exception as e:
                last_error = e
                logger.warning(
                    "%s attempt %s/%s failed: %s", label, attempt, self.max_attempts, e
                )

            if attempt < self.max_attempts:
                if self.delay_seconds > 0:
                    await self._sleeper(self.delay_seconds)
                logger.info("Retrying %s", label)

        return RetryOutcome(value=None, attempts=self.max_attempts, error=last_error)
