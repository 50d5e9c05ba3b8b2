"""Raw queue message decoding and classification."""

import json
from typing import Any

from ..errors import DecodeError
from ..logging_config import get_logger
from ..models import (
    AdditionalInfoAgent,
    AdditionalInfoController,
    BuildLogData,
    CodeChanges,
    DependencyData,
    EventType,
    LogEvent,
    ScanResult,
    SecretDetection,
)
from .payload import inflate_payload

logger = get_logger(__name__)

# Upper bound on string-escaping layers peeled off a single message
MAX_UNESCAPE_DEPTH = 5

ENVELOPE_FIELDS = frozenset({"type", "timestamp", "job_name", "build_number"})


def unescape(raw: str, max_depth: int = MAX_UNESCAPE_DEPTH) -> str:
    """
    Peel JSON string-escaping layers off a raw message.

    While the trimmed value is a quoted JSON string, replace it with its
    decoded content, at most ``max_depth`` times. A layer that fails to
    decode stops the loop and the last good value is returned.
    """
    current = raw.strip()
    depth = 0
    while (
        depth < max_depth
        and len(current) >= 2
        and current.startswith('"')
        and current.endswith('"')
    ):
        try:
            value = json.loads(current)
        except json.JSONDecodeError as e:
            logger.debug("Stopped unescaping at depth %s: %s", depth, e)
            break
        current = value.strip()
        depth += 1
    return current


def variant_for(type_name: str) -> type[LogEvent]:
    """Map a discriminator to its event class."""
    try:
        event_type = EventType(type_name)
    except ValueError:
        raise DecodeError(f"Unknown event type: {type_name!r}") from None

    match event_type:
        case EventType.BUILD_LOG:
            return BuildLogData
        case EventType.SECRET_DETECTION:
            return SecretDetection
        case EventType.DEPENDENCY_DATA:
            return DependencyData
        case EventType.CODE_CHANGES:
            return CodeChanges
        case EventType.AGENT_INFO:
            return AdditionalInfoAgent
        case EventType.CONTROLLER_INFO:
            return AdditionalInfoController
        case EventType.SAST_SCAN:
            return ScanResult
        case _:
            raise DecodeError(f"Unhandled event type: {type_name!r}")


def decode(raw: str | bytes) -> LogEvent:
    """
    Turn a raw queue message into a typed event.

    Args:
        raw: Message body, possibly wrapped in several layers of JSON
             string-escaping and/or a single-element array.

    Returns:
        The decoded event, with compressed payload fields inflated.

    Raises:
        DecodeError: if the message is malformed or cannot be classified.
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"Message is not valid UTF-8: {e}") from e

    text = unescape(raw)
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Invalid JSON: {e}") from e

    obj = _select_event_object(document)

    if "type" not in obj:
        raise DecodeError("Missing 'type' property")
    type_name = obj["type"]
    if not isinstance(type_name, str):
        raise DecodeError(f"'type' must be a string, got {type(type_name).__name__}")

    variant = variant_for(type_name)
    event = _build_event(variant, obj)
    inflate_payload(event)
    return event


def _select_event_object(document: Any) -> dict[str, Any]:
    """Unwrap an array-wrapped event; reject anything that is not an object."""
    if isinstance(document, list):
        if not document:
            raise DecodeError("Empty JSON array received")
        document = document[0]
        if not isinstance(document, dict):
            raise DecodeError("First array element is not a JSON object")
        return document
    if isinstance(document, dict):
        return document
    raise DecodeError(
        f"Invalid JSON structure: expected object or array, got {type(document).__name__}"
    )


def _build_event(variant: type[LogEvent], obj: dict[str, Any]) -> LogEvent:
    known = set(ENVELOPE_FIELDS)
    kwargs: dict[str, Any] = {
        "timestamp": _require_str(obj, "timestamp"),
        "job_name": _require_str(obj, "job_name"),
        "build_number": _require_build_number(obj),
    }

    for wire_name, attr in variant.wire_fields:
        known.add(wire_name)
        if wire_name not in obj:
            continue
        value = obj[wire_name]
        if wire_name == "data" and value is not None and not isinstance(value, dict):
            raise DecodeError(f"'data' must be an object for {variant.event_type.value}")
        kwargs[attr] = value

    kwargs["extra"] = {name: value for name, value in obj.items() if name not in known}
    return variant(**kwargs)


def _require_str(obj: dict[str, Any], name: str) -> str:
    value = obj.get(name)
    if not isinstance(value, str) or not value.strip():
        raise DecodeError(f"Missing or invalid '{name}'")
    return value


def _require_build_number(obj: dict[str, Any]) -> int:
    value = obj.get("build_number")
    # bool is an int subclass
    if isinstance(value, bool):
        raise DecodeError("Missing or invalid 'build_number'")
    if isinstance(value, int):
        number = value
    elif isinstance(value, str) and value.strip().isdecimal():
        number = int(value.strip())
    else:
        raise DecodeError("Missing or invalid 'build_number'")
    if number < 0:
        raise DecodeError(f"'build_number' must be non-negative, got {number}")
    return number
