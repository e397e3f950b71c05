"""Truncation descriptors for oversized string content."""

from __future__ import annotations

from typing import Any

PREVIEW_LENGTH = 1000
HASH_SAMPLE_LENGTH = 1000

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    value = abs(value)
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return sign + "".join(reversed(digits))


def simple_hash(text: str) -> str:
    """
    Cheap rolling hash over the first 1000 characters.

    For spot-verifying a preview against its source, not for integrity.
    Wraps to a signed 32-bit integer at each step and renders in base 36.
    """
    h = 0
    for ch in text[:HASH_SAMPLE_LENGTH]:
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return to_base36(h)


def truncation_descriptor(text: str, context: str = "unknown") -> dict[str, Any]:
    """Replace an oversized string with a structured placeholder."""
    preview = text[:PREVIEW_LENGTH]
    return {
        "truncated": True,
        "originalLength": len(text),
        "originalSize": len(text),
        "truncatedLength": len(preview),
        "context": context,
        "preview": preview,
        "contentHash": simple_hash(text),
    }


def is_truncation_descriptor(value: Any) -> bool:
    """True for dicts produced by truncation_descriptor()."""
    return isinstance(value, dict) and value.get("truncated") is True and "preview" in value


__all__ = [
    "PREVIEW_LENGTH",
    "to_base36",
    "simple_hash",
    "truncation_descriptor",
    "is_truncation_descriptor",
]
