"""Freshness window check on event timestamps."""

import re
from datetime import datetime, timedelta, timezone
from enum import Enum

from ..logging_config import get_logger
from ..models import LogEvent

logger = get_logger(__name__)

DEFAULT_MAX_AGE_SECONDS = 420.0
DEFAULT_FUTURE_GAP_SECONDS = 30.0

_COMPACT_OFFSET = re.compile(r"([+-])(\d{2})(\d{2})$")
_ISO_TIMESTAMP = re.compile(
    r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})"
    r"(?:\.(\d{1,9}))?"
    r"(Z|[+-]\d{2}:\d{2})$"
)


def parse_timestamp(value: str | None) -> datetime | None:
    """
    Parse an ISO-8601 timestamp to an aware datetime.

    Accepts 0-9 fractional-second digits (truncated to microseconds) and
    offsets written as ``Z``, ``+HH:MM`` or ``+HHMM``.

    Returns:
        The parsed instant, or None if the value is not a valid timestamp.
    """
    if not value:
        return None

    normalized = _COMPACT_OFFSET.sub(r"\1\2:\3", value.strip())
    match = _ISO_TIMESTAMP.match(normalized)
    if not match:
        return None

    moment, fraction, offset = match.groups()
    if offset == "Z":
        offset = "+00:00"
    elif int(offset[1:3]) > 18 or int(offset[4:6]) > 59:
        return None
    if fraction:
        # fromisoformat before 3.11 takes exactly 3 or 6 digits
        moment += "." + fraction[:6].ljust(6, "0")

    try:
        return datetime.fromisoformat(moment + offset)
    except ValueError:
        return None


class GateDecision(str, Enum):
    """Outcome of the freshness check."""

    ACCEPTED = "accepted"
    UNPARSEABLE = "unparseable"
    FUTURE = "future"
    STALE = "stale"


class TemporalGate:
    """Drops events that are too old or dated too far in the future."""

    def __init__(
        self,
        max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS,
        future_gap_seconds: float = DEFAULT_FUTURE_GAP_SECONDS,
    ):
        self._max_age = timedelta(seconds=max_age_seconds)
        self._future_gap = timedelta(seconds=future_gap_seconds)

    def evaluate(self, event: LogEvent, now: datetime | None = None) -> GateDecision:
        """Classify the event's timestamp against the freshness window."""
        if now is None:
            now = datetime.now(timezone.utc)

        log_extra = {"job_name": event.job_name, "build_number": event.build_number}

        instant = parse_timestamp(event.timestamp)
        if instant is None:
            logger.warning(
                "Could not parse timestamp %r, dropping %s event",
                event.timestamp,
                event.event_type.value,
                extra=log_extra,
            )
            return GateDecision.UNPARSEABLE

        if instant > now + self._future_gap:
            logger.info(
                "Dropping future-dated %s event (timestamp: %s, now: %s)",
                event.event_type.value,
                instant.isoformat(),
                now.isoformat(),
                extra=log_extra,
            )
            return GateDecision.FUTURE

        age = now - instant
        if age > self._max_age:
            logger.info(
                "Dropping stale %s event (timestamp: %s, age: %.1fs)",
                event.event_type.value,
                instant.isoformat(),
                age.total_seconds(),
                extra=log_extra,
            )
            return GateDecision.STALE

        logger.debug(
            "Accepted %s event, age %.3fs",
            event.event_type.value,
            age.total_seconds(),
            extra=log_extra,
        )
        return GateDecision.ACCEPTED

    def accept(self, event: LogEvent, now: datetime | None = None) -> bool:
        """Return True if the event is fresh enough to process."""
        return self.evaluate(event, now) is GateDecision.ACCEPTED
