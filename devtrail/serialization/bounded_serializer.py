"""
BoundedSerializer - size- and depth-safe JSON encoding.

Preprocesses arbitrary Python data into a bounded JSON-compatible tree,
estimates its encoded size before encoding, and guards the whole operation
with a CircuitBreaker so repeated pathological inputs stop costing work.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from datetime import date, datetime
from enum import Enum
from pathlib import PurePath
from typing import Any

from pydantic import BaseModel

from ..errors import CapacityError
from .circuit_breaker import CircuitBreaker
from .truncation import truncation_descriptor

logger = logging.getLogger(__name__)

# Absolute ceiling on an encoded result, in characters.
MAX_ENCODED_LENGTH = 2**28

CIRCULAR_MARKER = "[Circular Reference]"
MAX_DEPTH_MARKER = "[Max depth exceeded]"


def _utc_timestamp() -> str:
    return datetime.now().astimezone().isoformat()


class BoundedSerializer:
    """
    Safe ``json.dumps`` replacement with bounds and a circuit breaker.

    Pipeline:
    1. Preprocess: depth limit, cycle markers, array/key truncation,
       oversized string leaves replaced by truncation descriptors.
    2. Estimate size; over ``max_string_length`` emits a compact summary.
    3. Encode; a result over 2**28 characters is a handled CapacityError.

    Any successful encode resets the breaker's failure counter.
    """

    def __init__(
        self,
        max_string_length: int = 100 * 1024 * 1024,
        max_content_length: int = 10 * 1024,
        max_array_items: int = 1000,
        max_depth: int = 10,
        circuit_breaker_threshold: int = 5,
        circuit_breaker_timeout: float = 60.0,
        breaker: CircuitBreaker | None = None,
    ):
        self.max_string_length = max_string_length
        self.max_content_length = max_content_length
        self.max_array_items = max_array_items
        self.max_depth = max_depth
        self.breaker = breaker or CircuitBreaker(
            threshold=circuit_breaker_threshold,
            timeout=circuit_breaker_timeout,
            name="serialization",
        )
        self.last_error: str | None = None

    @classmethod
    def from_config(cls, config: Any) -> "BoundedSerializer":
        """Build from a SerializerConfig."""
        return cls(
            max_string_length=config.max_string_length,
            max_content_length=config.max_content_length,
            max_array_items=config.max_array_items,
            max_depth=config.max_depth,
            circuit_breaker_threshold=config.circuit_breaker_threshold,
            circuit_breaker_timeout=config.circuit_breaker_timeout,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def failures(self) -> int:
        return self.breaker.failures

    def is_circuit_open(self) -> bool:
        return self.breaker.is_open()

    def safe_stringify(self, data: Any, indent: int | None = None) -> str:
        """
        Encode ``data`` to JSON without ever raising.

        Returns either the encoded data, an oversized-data summary, or a
        standard error payload. ``last_error`` is None only for the first.
        """
        if self.breaker.is_open():
            logger.warning("Circuit breaker is open, skipping serialization")
            self.last_error = "circuit_open"
            return json.dumps(
                {
                    "error": "Serialization circuit breaker active",
                    "timestamp": _utc_timestamp(),
                    "circuitOpen": True,
                }
            )

        try:
            processed = self.preprocess(data)

            estimated = self.estimate_size(processed)
            if estimated > self.max_string_length:
                logger.warning(
                    f"Data too large for serialization: {estimated} bytes estimated, summarizing"
                )
                return self._handle_oversized(processed, estimated)

            result = json.dumps(processed, indent=indent, ensure_ascii=False)

            if len(result) > MAX_ENCODED_LENGTH:
                raise CapacityError(
                    f"Serialized string too large: {len(result)} characters",
                    length=len(result),
                )

            self.breaker.record_success()
            self.last_error = None
            return result

        except (CapacityError, TypeError, ValueError, OverflowError, RecursionError, MemoryError) as e:
            self._handle_error(e, data)
            return self._error_response(e)

    def batch_serialize(self, items: list[Any], batch_size: int = 10) -> list[dict[str, Any]]:
        """Serialize ``items`` in slices, reporting per-slice success."""
        results = []
        for start in range(0, len(items), batch_size):
            batch = items[start : start + batch_size]
            encoded = self.safe_stringify(batch)
            span = f"{start}-{start + len(batch) - 1}"
            if self.last_error is None:
                results.append({"success": True, "data": encoded, "range": span})
            else:
                results.append({"success": False, "error": self.last_error, "range": span})
        return results

    # ------------------------------------------------------------------
    # Preprocessing
    # ------------------------------------------------------------------

    def preprocess(self, data: Any) -> Any:
        """Walk ``data`` into a bounded, JSON-compatible tree."""
        return self._process(data, depth=0, ancestors=set(), context="root")

    def _normalize(self, obj: Any) -> Any:
        """Convert common non-JSON leaves and models into plain structures."""
        if isinstance(obj, BaseModel):
            return obj.model_dump(mode="json", by_alias=True)
        if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
            return {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, PurePath):
            return str(obj)
        if isinstance(obj, bytes):
            return obj.decode("utf-8", errors="replace")
        return obj

    def _process(self, obj: Any, depth: int, ancestors: set[int], context: str) -> Any:
        obj = self._normalize(obj)

        if obj is None or isinstance(obj, (bool, int, float)):
            return obj

        if isinstance(obj, str):
            if len(obj) > self.max_content_length:
                logger.debug(
                    f"Truncated large string in {context}: {len(obj)} -> preview"
                )
                return truncation_descriptor(obj, context)
            return obj

        if not isinstance(obj, (dict, list, tuple, set, frozenset)):
            return repr(obj)

        if depth > self.max_depth:
            return MAX_DEPTH_MARKER

        marker = id(obj)
        if marker in ancestors:
            return CIRCULAR_MARKER
        ancestors.add(marker)

        try:
            if isinstance(obj, dict):
                return self._process_mapping(obj, depth, ancestors)
            return self._process_sequence(list(obj), depth, ancestors, context)
        finally:
            ancestors.discard(marker)

    def _process_sequence(
        self, items: list[Any], depth: int, ancestors: set[int], context: str
    ) -> list[Any]:
        overflow = len(items) - self.max_array_items
        if overflow > 0:
            logger.warning(
                f"Array too large: {len(items)} items, truncating to {self.max_array_items}"
            )
            items = items[: self.max_array_items]

        processed = [self._process(item, depth + 1, ancestors, context) for item in items]
        if overflow > 0:
            processed.append(f"[... {overflow} more items truncated]")
        return processed

    def _process_mapping(self, obj: dict[Any, Any], depth: int, ancestors: set[int]) -> dict[str, Any]:
        processed: dict[str, Any] = {}
        total = len(obj)
        for index, (key, value) in enumerate(obj.items()):
            if index >= self.max_array_items:
                processed["...truncated"] = f"{total - index} more keys"
                break
            key_str = key if isinstance(key, str) else str(self._normalize(key))
            processed[key_str] = self._process(value, depth + 1, ancestors, key_str)
        return processed

    # ------------------------------------------------------------------
    # Size estimation and oversized handling
    # ------------------------------------------------------------------

    def estimate_size(self, obj: Any) -> int:
        """Rough UTF-16 byte estimate of the encoded form."""
        if obj is None:
            return 4
        if isinstance(obj, bool):
            return 5
        if isinstance(obj, (int, float)):
            return 8
        if isinstance(obj, str):
            return len(obj) * 2
        if isinstance(obj, list):
            return 10 + sum(self.estimate_size(item) for item in obj)
        if isinstance(obj, dict):
            return 20 + sum(
                len(str(key)) * 2 + self.estimate_size(value) + 10 for key, value in obj.items()
            )
        return 100

    def _handle_oversized(self, data: Any, estimated: int) -> str:
        summary = {
            "type": "oversized_data_summary",
            "timestamp": _utc_timestamp(),
            "originalType": _type_name(data),
            "estimatedSize": estimated,
            "error": "Data too large for serialization",
            "summary": self._data_summary(data),
        }
        self.breaker.record_failure()
        self.last_error = "oversized"
        # Samples are already preprocessed; encoding them is bounded.
        return json.dumps(summary, indent=2, ensure_ascii=False)

    def _data_summary(self, data: Any) -> dict[str, Any]:
        if isinstance(data, list):
            return {
                "length": len(data),
                "firstItems": [_sample(item) for item in data[:3]],
                "lastItems": [_sample(item) for item in data[-3:]],
                "types": sorted({_type_name(item) for item in data}),
            }

        if isinstance(data, dict):
            keys = list(data.keys())
            types: dict[str, int] = {}
            for key in keys[:100]:
                name = _type_name(data[key])
                types[name] = types.get(name, 0) + 1
            return {"keyCount": len(keys), "keys": keys[:10], "types": types}

        return {"type": _type_name(data), "length": len(str(data))}

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------

    def _handle_error(self, error: BaseException, data: Any) -> None:
        self.breaker.record_failure()
        self.last_error = f"{type(error).__name__}: {error}"
        logger.error(
            f"Serialization error: {error} "
            f"(type={type(error).__name__}, failures={self.breaker.failures}, "
            f"data_type={_type_name(data)})"
        )

    def _error_response(self, error: BaseException) -> str:
        return json.dumps(
            {
                "error": "Serialization failed",
                "message": str(error),
                "type": type(error).__name__,
                "timestamp": _utc_timestamp(),
                "circuitOpen": self.breaker.state == "OPEN",
                "failures": self.breaker.failures,
            },
            indent=2,
        )


def _type_name(value: Any) -> str:
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return type(value).__name__


def _sample(item: Any) -> Any:
    """Keep summary samples small: containers collapse to a type tag."""
    if isinstance(item, (list, dict)):
        return f"[{_type_name(item)} of {len(item)}]"
    if isinstance(item, str) and len(item) > 200:
        return item[:200]
    return item


def stringify(data: Any, **options: Any) -> str:
    """One-shot safe serialization with a fresh serializer."""
    return BoundedSerializer(**options).safe_stringify(data)


__all__ = ["BoundedSerializer", "stringify", "MAX_ENCODED_LENGTH", "CIRCULAR_MARKER"]
