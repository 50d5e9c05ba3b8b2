"""Inflation of gzip-compressed event payload fields.

Large fields are shipped as base64-encoded gzip with a sibling
``<field>_compressed: true`` flag. The decoded event carries the plain value
and the flag is cleared, so the persisted form is readable as-is.
"""

import base64
import binascii
import json
import re
import zlib
from typing import Any

from ..errors import DecodeError
from ..models import (
    BuildLogData,
    CodeChanges,
    DependencyData,
    LogEvent,
    SecretDetection,
)

_XML_INTER_TAG_WHITESPACE = re.compile(r">\s+<")

# Matches the conversation store's per-message content limit
MAX_INFLATED_BYTES = 10_000_000


def gunzip_base64(encoded: str, max_bytes: int = MAX_INFLATED_BYTES) -> str:
    """
    Decode a base64 string and gunzip it to UTF-8 text.

    Output is capped at ``max_bytes`` while inflating.

    Raises:
        DecodeError: if the payload is corrupt, truncated or inflates past
            ``max_bytes``.
    """
    try:
        compressed = base64.b64decode(encoded, validate=True)
        if not compressed:
            return ""
        inflater = zlib.decompressobj(wbits=31)
        raw = inflater.decompress(compressed, max_bytes + 1)
    except (binascii.Error, zlib.error) as e:
        raise DecodeError(f"Corrupt compressed payload: {e}") from e

    if len(raw) > max_bytes:
        raise DecodeError(f"Compressed payload inflates past {max_bytes} bytes")
    if not inflater.eof:
        raise DecodeError("Corrupt compressed payload: truncated gzip stream")
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"Corrupt compressed payload: {e}") from e


def inflate_payload(event: LogEvent) -> None:
    """Replace compressed fields of ``event.data`` with their plain values."""
    data = getattr(event, "data", None)
    if not data:
        return

    data = dict(data)
    match event:
        case BuildLogData():
            _inflate_text(data, "raw_log")
        case SecretDetection():
            _inflate_text(data, "content")
            _inflate_json(data, "secrets", dict, empty={})
        case CodeChanges():
            _inflate_json(data, "changes", list, empty=[])
        case DependencyData():
            _inflate_text(data, "plugin_info")
            build_file = data.get("build_file")
            if isinstance(build_file, dict):
                build_file = dict(build_file)
                if _inflate_text(build_file, "content"):
                    build_file["content"] = minify_xml(build_file["content"])
                data["build_file"] = build_file
        case _:
            return
    event.data = data


def minify_xml(xml: str) -> str:
    """Drop whitespace between tags of a build file."""
    return _XML_INTER_TAG_WHITESPACE.sub("><", xml.strip())


def _is_compressed(container: dict[str, Any], name: str) -> bool:
    return container.get(f"{name}_compressed") is True and isinstance(
        container.get(name), str
    )


def _inflate_text(container: dict[str, Any], name: str) -> bool:
    if not _is_compressed(container, name):
        return False
    container[name] = gunzip_base64(container[name])
    container[f"{name}_compressed"] = False
    return True


def _inflate_json(
    container: dict[str, Any], name: str, expected: type, empty: Any
) -> None:
    if not _is_compressed(container, name):
        return
    text = gunzip_base64(container[name]) if container[name] else ""
    if not text.strip():
        value = empty
    else:
        try:
            value = json.loads(text)
        except json.JSONDecodeError as e:
            raise DecodeError(f"Compressed '{name}' is not valid JSON: {e}") from e
        if not isinstance(value, expected):
            raise DecodeError(
                f"Compressed '{name}' must decode to {expected.__name__}"
            )
    container[name] = value
    container[f"{name}_compressed"] = False
