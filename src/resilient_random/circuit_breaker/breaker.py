"""Core circuit breaker implementation."""

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, datetime
from typing import ParamSpec

from resilient_random.circuit_breaker.config import CircuitBreakerConfig
from resilient_random.circuit_breaker.exceptions import CircuitOpenError
from resilient_random.circuit_breaker.metrics import BreakerListener
from resilient_random.circuit_breaker.state import BreakerSnapshot, CircuitState
from resilient_random.circuit_breaker.storage import (
    AbstractBreakerStorage,
    InMemoryBreakerStorage,
)
from resilient_random.outcomes import (
    AttemptOutcome,
    Cancelled,
    CircuitOpen,
    Failure,
    Success,
    TimedOut,
    counts_as_failure,
)

P = ParamSpec("P")

Attempt = Callable[[], Awaitable[AttemptOutcome]]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class _ProbeTracker:
    """Let callers of one breaker instance wait for its in-flight probe."""

    def __init__(self) -> None:
        self._resolved: asyncio.Event | None = None

    @property
    def in_flight(self) -> bool:
        return self._resolved is not None

    def start(self) -> None:
        self._resolved = asyncio.Event()

    def finish(self) -> None:
        resolved = self._resolved
        self._resolved = None
        if resolved is not None:
            resolved.set()

    async def wait(self, cancel_event: asyncio.Event | None = None) -> bool:
        """Wait for the local probe; return false if ``cancel_event`` wins."""
        resolved = self._resolved
        if resolved is None:
            return True
        if cancel_event is None:
            await resolved.wait()
            return True
        if cancel_event.is_set():
            return False

        probe_done = asyncio.create_task(resolved.wait())
        cancelled = asyncio.create_task(cancel_event.wait())
        try:
            await asyncio.wait(
                {probe_done, cancelled}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            probe_done.cancel()
            cancelled.cancel()
        return resolved.is_set()


def _failure_exception(outcome: AttemptOutcome) -> Exception:
    if isinstance(outcome, Failure):
        return outcome.cause
    if isinstance(outcome, TimedOut):
        return TimeoutError(f"attempt exceeded {outcome.timeout:g}s")
    if isinstance(outcome, Cancelled):
        return TimeoutError("attempt abandoned on cancellation")
    return RuntimeError(f"unexpected outcome: {outcome!r}")


class CircuitBreaker:
    """Stateful gate around a dangerous async operation.

    The breaker opens when the failure ratio inside the rolling sampling
    window reaches the configured threshold, provided the window holds at
    least ``minimum_throughput`` samples. After ``open_duration`` a single
    probe is let through; concurrent callers of the same instance wait for
    it to resolve and then re-evaluate.
    """

    def __init__(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig | None = None,
        storage: AbstractBreakerStorage | None = None,
        listeners: Sequence[BreakerListener] | None = None,
    ) -> None:
        """Build a circuit breaker with optional custom dependencies.

        Args:
            name: Unique breaker name used for storage and metrics.
            config: Breaker behavior configuration. Defaults to
                ``CircuitBreakerConfig()``.
            storage: State storage backend. Defaults to in-memory storage.
            listeners: Optional listener hooks for breaker events.
        """
        self.name = name
        self.config = CircuitBreakerConfig() if config is None else config
        self._storage = InMemoryBreakerStorage() if storage is None else storage
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._probe = _ProbeTracker()

    async def snapshot(self) -> BreakerSnapshot:
        """Return the current breaker snapshot with a pruned window."""
        return await self._storage.get_state(self.name, config=self.config)

    async def _emit_state_change(self, old: CircuitState, new: CircuitState) -> None:
        for listener in self._listeners:
            try:
                await listener.on_state_change(self.name, old, new)
            except Exception:
                continue

    async def _emit_call_rejected(self) -> None:
        for listener in self._listeners:
            try:
                await listener.on_call_rejected(self.name)
            except Exception:
                continue

    async def _emit_call_succeeded(self, elapsed: float) -> None:
        for listener in self._listeners:
            try:
                await listener.on_call_succeeded(self.name, elapsed)
            except Exception:
                continue

    async def _emit_call_failed(self, exc: Exception, elapsed: float) -> None:
        for listener in self._listeners:
            try:
                await listener.on_call_failed(self.name, exc, elapsed)
            except Exception:
                continue

    async def _reject(self, retry_after: float) -> CircuitOpen:
        await self._emit_call_rejected()
        return CircuitOpen(breaker_name=self.name, retry_after=retry_after)

    async def gate(
        self,
        attempt: Attempt,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> AttemptOutcome:
        """Run ``attempt`` if the circuit allows it and record its outcome.

        Args:
            attempt: Zero-argument coroutine factory returning an outcome.
                Exceptions it raises are recorded as ``Failure`` outcomes.
                If the calling task is cancelled while ``attempt`` runs, one
                failed sample is recorded before the cancellation propagates.
            cancel_event: Ends a wait for another caller's probe early.

        Returns:
            The attempt's outcome, ``CircuitOpen`` when the call was rejected
            without running ``attempt``, or ``Cancelled`` when
            ``cancel_event`` fired while waiting for a probe.
        """
        while True:
            snapshot = await self._storage.get_state(self.name, config=self.config)

            if snapshot.state == CircuitState.OPEN:
                retry_after = snapshot.seconds_until_probe(
                    _utcnow(), self.config.open_duration
                )
                if retry_after > 0:
                    return await self._reject(retry_after)
                began, _ = await self._storage.try_begin_probe(
                    self.name, config=self.config
                )
                if began:
                    return await self._run_probe(attempt)
                continue

            if snapshot.state == CircuitState.HALF_OPEN:
                if not self._probe.in_flight:
                    return await self._reject(0.0)
                if not await self._probe.wait(cancel_event):
                    return Cancelled()
                continue

            return await self._run_recorded(attempt)

    async def call(
        self,
        func: Callable[P, Awaitable[int]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> int:
        """Invoke an async callable under circuit breaker protection.

        Raises:
            CircuitOpenError: When the circuit is open and the call is rejected.
            Exception: Whatever ``func`` raised when it failed.
        """

        async def _attempt() -> AttemptOutcome:
            return Success(await func(*args, **kwargs))

        outcome = await self.gate(_attempt)
        if isinstance(outcome, Success):
            return outcome.value
        if isinstance(outcome, CircuitOpen):
            raise CircuitOpenError.from_outcome(outcome)
        raise _failure_exception(outcome)

    @staticmethod
    async def _invoke(attempt: Attempt) -> AttemptOutcome:
        try:
            return await attempt()
        except Exception as exc:
            return Failure.from_exception(exc)

    async def _record_abandoned(self, *, probe: bool, start: float) -> None:
        elapsed = max(time.monotonic() - start, 0.0)
        previous, updated = await self._storage.record_outcome(
            self.name, failed=True, probe=probe, config=self.config
        )
        await self._emit_call_failed(
            _failure_exception(Cancelled(started=True)), elapsed
        )
        if updated.state != previous:
            await self._emit_state_change(previous, updated.state)

    async def _run_recorded(self, attempt: Attempt) -> AttemptOutcome:
        start = time.monotonic()
        try:
            outcome = await self._invoke(attempt)
        except asyncio.CancelledError:
            await self._record_abandoned(probe=False, start=start)
            raise
        elapsed = max(time.monotonic() - start, 0.0)
        failed = counts_as_failure(outcome)
        if not failed and not isinstance(outcome, Success):
            return outcome

        previous, updated = await self._storage.record_outcome(
            self.name, failed=failed, probe=False, config=self.config
        )
        if failed:
            await self._emit_call_failed(_failure_exception(outcome), elapsed)
        else:
            await self._emit_call_succeeded(elapsed)
        if updated.state != previous:
            await self._emit_state_change(previous, updated.state)
        return outcome

    async def _run_probe(self, attempt: Attempt) -> AttemptOutcome:
        self._probe.start()
        resolved = False
        try:
            await self._emit_state_change(CircuitState.OPEN, CircuitState.HALF_OPEN)
            start = time.monotonic()
            try:
                outcome = await self._invoke(attempt)
            except asyncio.CancelledError:
                await self._record_abandoned(probe=True, start=start)
                resolved = True
                raise
            elapsed = max(time.monotonic() - start, 0.0)

            failed = counts_as_failure(outcome)
            if not failed and not isinstance(outcome, Success):
                await self._storage.abandon_probe(self.name)
                resolved = True
                return outcome

            previous, updated = await self._storage.record_outcome(
                self.name, failed=failed, probe=True, config=self.config
            )
            resolved = True
            if failed:
                await self._emit_call_failed(_failure_exception(outcome), elapsed)
            if updated.state != previous:
                await self._emit_state_change(previous, updated.state)
            if not failed:
                await self._emit_call_succeeded(elapsed)
            return outcome
        finally:
            if not resolved:
                await self._storage.abandon_probe(self.name)
            self._probe.finish()
