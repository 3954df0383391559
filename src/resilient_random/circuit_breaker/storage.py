"""State storage for circuit breakers.

Storage is decoupled from breaker logic. Each operation that both records an
outcome and evaluates a transition runs under a single lock acquisition, so
concurrent callers never observe a recorded outcome without its evaluation.

The rolling failure window keeps one ``(timestamp, failed)`` entry per
recorded attempt. Entries older than the sampling period are pruned before
every evaluation and snapshot.
"""

import asyncio
import sys
import threading
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from resilient_random.circuit_breaker.config import CircuitBreakerConfig
from resilient_random.circuit_breaker.state import BreakerSnapshot, CircuitState


def _utcnow() -> datetime:
    return datetime.now(UTC)


class AbstractBreakerStorage(ABC):
    """Abstract breaker storage interface."""

    @abstractmethod
    async def get_state(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig | None = None,
    ) -> BreakerSnapshot:
        """Return the current breaker snapshot for ``name``.

        When ``config`` is given, stale window entries are pruned first.
        """

    @abstractmethod
    async def record_outcome(
        self,
        name: str,
        *,
        failed: bool,
        probe: bool,
        config: CircuitBreakerConfig,
    ) -> tuple[CircuitState, BreakerSnapshot]:
        """Record one attempt outcome and evaluate transitions atomically.

        Returns:
            The state before recording and the updated snapshot.
        """

    @abstractmethod
    async def try_begin_probe(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig,
    ) -> tuple[bool, BreakerSnapshot]:
        """Move ``OPEN`` to ``HALF_OPEN`` once the open duration has elapsed.

        Returns:
            Whether this caller won the transition, and the current snapshot.
        """

    @abstractmethod
    async def abandon_probe(self, name: str) -> BreakerSnapshot:
        """Return a ``HALF_OPEN`` breaker to ``OPEN`` without recording."""

    @abstractmethod
    async def force_open(self, name: str) -> BreakerSnapshot:
        """Force breaker ``name`` into ``OPEN`` state."""

    @abstractmethod
    async def reset(self, name: str) -> BreakerSnapshot:
        """Reset breaker ``name`` to a healthy ``CLOSED`` state."""


@dataclass
class _BreakerRecord:
    state: CircuitState = CircuitState.CLOSED
    window: deque[tuple[datetime, bool]] = field(default_factory=deque)
    last_failure_at: datetime | None = None
    opened_at: datetime | None = None

    def prune(self, now: datetime, sampling_period: float) -> None:
        horizon = now - timedelta(seconds=sampling_period)
        while self.window and self.window[0][0] <= horizon:
            self.window.popleft()

    def open(self, now: datetime) -> None:
        self.state = CircuitState.OPEN
        self.opened_at = now

    def close(self) -> None:
        self.state = CircuitState.CLOSED
        self.window.clear()
        self.last_failure_at = None
        self.opened_at = None

    def snapshot(self, name: str) -> BreakerSnapshot:
        failures = sum(1 for _, failed in self.window if failed)
        return BreakerSnapshot(
            name=name,
            state=self.state,
            failure_count=failures,
            sample_count=len(self.window),
            last_failure_at=self.last_failure_at,
            opened_at=self.opened_at,
        )


class InMemoryBreakerStorage(AbstractBreakerStorage):
    """In-memory storage with per-breaker cooperative + optional thread locks."""

    def __init__(self) -> None:
        """Initialize in-memory record and lock registries."""
        self._records: dict[str, _BreakerRecord] = defaultdict(_BreakerRecord)
        self._async_locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._thread_locks: dict[str, threading.Lock] = defaultdict(threading.Lock)
        is_gil_enabled = getattr(sys, "_is_gil_enabled", None)
        self._gil_enabled = True if is_gil_enabled is None else bool(is_gil_enabled())

    @asynccontextmanager
    async def _locked(self, name: str) -> AsyncIterator[None]:
        async_lock = self._async_locks[name]
        if self._gil_enabled:
            await async_lock.acquire()
            try:
                yield
            finally:
                async_lock.release()
            return

        thread_lock = self._thread_locks[name]
        thread_lock.acquire()
        try:
            await async_lock.acquire()
        except BaseException:
            thread_lock.release()
            raise
        try:
            yield
        finally:
            async_lock.release()
            thread_lock.release()

    async def get_state(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig | None = None,
    ) -> BreakerSnapshot:
        """Return the current snapshot, creating a default record if missing."""
        async with self._locked(name):
            record = self._records[name]
            if config is not None:
                record.prune(_utcnow(), config.sampling_period)
            return record.snapshot(name)

    async def record_outcome(
        self,
        name: str,
        *,
        failed: bool,
        probe: bool,
        config: CircuitBreakerConfig,
    ) -> tuple[CircuitState, BreakerSnapshot]:
        """Append one outcome to the window, then evaluate the threshold.

        Only the probe resolves ``HALF_OPEN``. Outcomes of attempts admitted
        before the circuit opened are still counted but never transition it.
        """
        async with self._locked(name):
            now = _utcnow()
            record = self._records[name]
            previous = record.state
            record.prune(now, config.sampling_period)
            record.window.append((now, failed))
            if failed:
                record.last_failure_at = now

            if probe:
                if previous == CircuitState.HALF_OPEN:
                    if failed:
                        record.open(now)
                    else:
                        record.close()
            elif previous == CircuitState.CLOSED:
                snapshot = record.snapshot(name)
                if (
                    snapshot.sample_count >= config.minimum_throughput
                    and snapshot.failure_ratio >= config.failure_ratio
                ):
                    record.open(now)
            return previous, record.snapshot(name)

    async def try_begin_probe(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig,
    ) -> tuple[bool, BreakerSnapshot]:
        """Compare-and-set ``OPEN`` to ``HALF_OPEN`` after the open duration."""
        async with self._locked(name):
            now = _utcnow()
            record = self._records[name]
            if record.state != CircuitState.OPEN:
                return False, record.snapshot(name)
            snapshot = record.snapshot(name)
            if snapshot.seconds_until_probe(now, config.open_duration) > 0:
                return False, snapshot
            record.state = CircuitState.HALF_OPEN
            return True, record.snapshot(name)

    async def abandon_probe(self, name: str) -> BreakerSnapshot:
        """Reopen without restarting the cool-down so the next caller probes."""
        async with self._locked(name):
            record = self._records[name]
            if record.state == CircuitState.HALF_OPEN:
                record.state = CircuitState.OPEN
            return record.snapshot(name)

    async def force_open(self, name: str) -> BreakerSnapshot:
        """Force the circuit open and restart the open-duration window."""
        async with self._locked(name):
            record = self._records[name]
            record.open(_utcnow())
            return record.snapshot(name)

    async def reset(self, name: str) -> BreakerSnapshot:
        """Reset breaker state and clear the failure window."""
        async with self._locked(name):
            record = self._records[name]
            record.close()
            return record.snapshot(name)
