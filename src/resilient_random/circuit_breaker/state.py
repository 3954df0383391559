"""Breaker state tag and read-only snapshots of the rolling window."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class CircuitState(StrEnum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class BreakerSnapshot:
    """Breaker state plus the window counts it was evaluated against.

    ``failure_count`` and ``sample_count`` only cover outcomes inside the
    sampling period at the time the snapshot was taken.
    """

    name: str
    state: CircuitState
    failure_count: int
    sample_count: int
    last_failure_at: datetime | None
    opened_at: datetime | None

    @property
    def failure_ratio(self) -> float:
        if not self.sample_count:
            return 0.0
        return self.failure_count / self.sample_count

    def seconds_until_probe(self, now: datetime, open_duration: float) -> float:
        """Remaining cool-down before an ``OPEN`` breaker admits a probe."""
        if self.opened_at is None:
            return 0.0
        elapsed = (now - self.opened_at).total_seconds()
        return max(open_duration - elapsed, 0.0)
