"""Exceptions raised by ``CircuitBreaker.call``.

``gate`` never raises for a rejection; it returns a ``CircuitOpen`` outcome.
"""

from __future__ import annotations

from resilient_random.outcomes import CircuitOpen


class CircuitBreakerError(Exception):
    """Base exception for the circuit breaker package."""


class CircuitOpenError(CircuitBreakerError):
    """A call was rejected without running because the circuit is open.

    Attributes:
        breaker_name: Name of the rejecting breaker.
        retry_after: Seconds until the next probe may run. Zero while another
            breaker instance holds the probe.
    """

    def __init__(self, breaker_name: str, retry_after: float) -> None:
        self.breaker_name = breaker_name
        self.retry_after = retry_after
        super().__init__(
            f"circuit_open: {breaker_name} retry_after={retry_after:g}s"
        )

    @classmethod
    def from_outcome(cls, outcome: CircuitOpen) -> CircuitOpenError:
        return cls(outcome.breaker_name, retry_after=outcome.retry_after)
