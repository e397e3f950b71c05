"""Event payload sanitization for the capture path."""

from __future__ import annotations

import logging
from typing import Any

from ..serialization.truncation import truncation_descriptor

logger = logging.getLogger(__name__)


def sanitize_content(value: Any, max_length: int, context: str = "unknown") -> Any:
    """Replace a string over ``max_length`` with a truncation descriptor."""
    if isinstance(value, str) and len(value) > max_length:
        logger.warning(f"Content truncated for {context}: {len(value)} characters")
        return truncation_descriptor(value, context)
    return value


def sanitize_payload(value: Any, max_length: int, context: str = "root") -> Any:
    """
    Recursively sanitize an event payload.

    Strings are bounded by ``max_length``; dicts and lists are walked with
    each key name used as the descriptor context. Other values pass through.
    """
    if isinstance(value, str):
        return sanitize_content(value, max_length, context)
    if isinstance(value, dict):
        return {key: sanitize_payload(item, max_length, str(key)) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [sanitize_payload(item, max_length, context) for item in value]
    return value


__all__ = ["sanitize_content", "sanitize_payload"]
