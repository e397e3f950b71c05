"""CircuitBreaker - failure-counting guard with a cooldown."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class CircuitBreaker:
    """
    Failure-counting guard owned by a single serializer or verifier.

    Opens after ``threshold`` consecutive failures. While open, the guarded
    operation class is skipped. Once ``timeout`` seconds have elapsed since
    opening, the next ``is_open()`` call closes it and zeroes the counter.
    """

    threshold: int = 5
    timeout: float = 60.0
    name: str = "circuit"
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    failures: int = field(default=0, init=False)
    opened_at: float | None = field(default=None, init=False)

    @property
    def state(self) -> str:
        """'OPEN' or 'CLOSED' without triggering the timeout reset."""
        return "OPEN" if self.opened_at is not None else "CLOSED"

    def is_open(self) -> bool:
        """Check the breaker, closing it if the cooldown has elapsed."""
        if self.opened_at is None:
            return False

        if self.clock() - self.opened_at >= self.timeout:
            self.opened_at = None
            self.failures = 0
            logger.info(f"{self.name} circuit breaker reset")
            return False

        return True

    def record_failure(self) -> None:
        """Count a failure and open the breaker at the threshold."""
        self.failures += 1
        if self.failures >= self.threshold and self.opened_at is None:
            self.opened_at = self.clock()
            logger.warning(
                f"{self.name} circuit breaker opened after {self.failures} consecutive failures"
            )

    def record_success(self) -> None:
        """Any success clears the consecutive-failure count."""
        self.failures = 0

    def reset(self) -> None:
        """Return to the initial closed state."""
        self.failures = 0
        self.opened_at = None


__all__ = ["CircuitBreaker"]
