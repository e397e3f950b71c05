"""Error taxonomy for devtrail.

Every user-visible failure is rendered as a JSON object with ``type``,
``severity`` and ``message``. Capture-path code contains these errors and
degrades; integrity-path code returns them as structured records.
"""

from __future__ import annotations

from typing import Any


class DevtrailError(Exception):
    """Base class for devtrail failures."""

    type: str = "error"
    severity: str = "high"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Render as a structured error record."""
        record: dict[str, Any] = {
            "type": self.type,
            "severity": self.severity,
            "message": self.message,
        }
        record.update(self.details)
        return record


class ValidationError(DevtrailError):
    """Missing or malformed required fields."""

    type = "validation"
    severity = "high"


class CorruptionError(DevtrailError):
    """Parse failure or structural mismatch in a persisted record."""

    type = "corruption"
    severity = "critical"


class CapacityError(DevtrailError):
    """Size, array or depth bound exceeded. Resolved by truncation."""

    type = "capacity"
    severity = "medium"


class CircuitOpenError(DevtrailError):
    """Operation skipped because its circuit breaker is open."""

    type = "circuit_open"
    severity = "warning"


class RecoveryExhaustedError(DevtrailError):
    """No backup and no partial recovery possible."""

    type = "complete_loss"
    severity = "critical"


def error_record(error_type: str, severity: str, message: str, **extra: Any) -> dict[str, Any]:
    """Build a plain error record without raising."""
    record: dict[str, Any] = {"type": error_type, "severity": severity, "message": message}
    record.update(extra)
    return record


__all__ = [
    "DevtrailError",
    "ValidationError",
    "CorruptionError",
    "CapacityError",
    "CircuitOpenError",
    "RecoveryExhaustedError",
    "error_record",
]
