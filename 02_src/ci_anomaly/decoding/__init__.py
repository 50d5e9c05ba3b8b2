"""Decoding module."""

from .decoder import MAX_UNESCAPE_DEPTH, decode, unescape, variant_for
from .payload import gunzip_base64, inflate_payload

__all__ = [
    "MAX_UNESCAPE_DEPTH",
    "decode",
    "unescape",
    "variant_for",
    "gunzip_base64",
    "inflate_payload",
]
