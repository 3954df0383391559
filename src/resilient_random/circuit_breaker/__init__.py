"""Async circuit breaker with a rolling failure-ratio window.

Key behavior notes:
  - The breaker opens when, inside the rolling sampling period, the window
    holds at least ``minimum_throughput`` outcomes and the failure ratio is at
    or above ``failure_ratio``.
  - Half-open probing is conservative: at most one in-flight probe per
    breaker. Callers of the same instance wait for the probe and re-evaluate.
  - A probe success closes the circuit and clears the window; a probe
    failure reopens it and restarts the open duration.
  - An attempt abandoned mid-flight by cancellation counts as one failure.
    A cancellation before the call started records nothing, and as a probe
    it returns the circuit to ``OPEN`` so that a later call probes again.
"""

from resilient_random.circuit_breaker.breaker import CircuitBreaker
from resilient_random.circuit_breaker.config import CircuitBreakerConfig
from resilient_random.circuit_breaker.exceptions import (
    CircuitBreakerError,
    CircuitOpenError,
)
from resilient_random.circuit_breaker.metrics import (
    BreakerListener,
    LoggingBreakerListener,
)
from resilient_random.circuit_breaker.state import BreakerSnapshot, CircuitState
from resilient_random.circuit_breaker.storage import (
    AbstractBreakerStorage,
    InMemoryBreakerStorage,
)

__all__ = [
    "AbstractBreakerStorage",
    "BreakerListener",
    "BreakerSnapshot",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitOpenError",
    "CircuitState",
    "InMemoryBreakerStorage",
    "LoggingBreakerListener",
]
