"""Bounded serialization: size-safe JSON encoding behind a circuit breaker."""

from .bounded_serializer import BoundedSerializer, stringify
from .circuit_breaker import CircuitBreaker
from .truncation import is_truncation_descriptor, simple_hash, truncation_descriptor

__all__ = [
    "BoundedSerializer",
    "CircuitBreaker",
    "stringify",
    "simple_hash",
    "truncation_descriptor",
    "is_truncation_descriptor",
]
