"""Readiness reporting for the random-number provider dependency.

An open circuit only makes the service unready when fallback is disabled;
with fallback enabled the service keeps answering and reports itself as
degraded instead.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType

from resilient_random.circuit_breaker import CircuitBreaker, CircuitState
from resilient_random.logging import AnyLogger, get_logger, log_exception

REASON_READY = "ready"
REASON_DEGRADED = "degraded"
REASON_DEPENDENCY_UNAVAILABLE = "dependency_unavailable"
REASON_CHECK_FAILED = "check_failed"

STATUS_OK = "ok"
STATUS_DEGRADED = "degraded"

ReadinessCheck = Callable[[], Awaitable["CheckResult"]]
SnapshotCallback = Callable[
    ["ReadinessSnapshot | None", "ReadinessSnapshot", str], None
]


@dataclass(frozen=True)
class CheckResult:
    """Outcome of one dependency check; ``data`` is frozen on creation."""

    name: str
    ok: bool
    reason: str | None = None
    detail: str = ""
    data: Mapping[str, object] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", MappingProxyType(dict(self.data)))

    @property
    def degraded(self) -> bool:
        return self.reason == REASON_DEGRADED

    @classmethod
    def from_error(cls, name: str, error: BaseException) -> CheckResult:
        return cls(
            name=name,
            ok=False,
            reason=REASON_CHECK_FAILED,
            detail=f"{error.__class__.__name__}: {error}",
        )


@dataclass(frozen=True)
class ReadinessSnapshot:
    """Aggregated readiness at ``last_checked_at`` (epoch seconds)."""

    status: str
    ready: bool
    reason: str
    detail: str
    last_checked_at: float
    check_results: tuple[CheckResult, ...]

    @property
    def degraded(self) -> bool:
        return self.status == STATUS_DEGRADED

    def result_for(self, name: str) -> CheckResult | None:
        return next((r for r in self.check_results if r.name == name), None)


def make_circuit_check(
    breaker: CircuitBreaker,
    *,
    fallback_enabled: bool,
    name: str = "random_number_provider",
) -> ReadinessCheck:
    """Build a readiness check from the provider's circuit breaker state.

    A non-closed circuit passes as degraded when fallback numbers can still be
    served and fails as ``dependency_unavailable`` otherwise.
    """

    async def _check() -> CheckResult:
        snapshot = await breaker.snapshot()
        closed = snapshot.state == CircuitState.CLOSED
        data = {
            "circuit_state": str(snapshot.state),
            "failure_ratio": snapshot.failure_ratio,
            "sample_count": snapshot.sample_count,
            "fallback_enabled": fallback_enabled,
            "degraded": not closed,
        }
        if closed:
            return CheckResult(name=name, ok=True, data=data)
        reason = REASON_DEGRADED if fallback_enabled else REASON_DEPENDENCY_UNAVAILABLE
        return CheckResult(
            name=name,
            ok=fallback_enabled,
            reason=reason,
            detail=f"circuit {snapshot.state} for {breaker.name}",
            data=data,
        )

    _check.__name__ = name
    return _check


async def _run_check(check: ReadinessCheck) -> CheckResult:
    try:
        return await check()
    except Exception as exc:
        return CheckResult.from_error(getattr(check, "__name__", "unnamed_check"), exc)


def _aggregate(results: Sequence[CheckResult], now: float) -> ReadinessSnapshot:
    failed = [result for result in results if not result.ok]
    if failed:
        first = failed[0]
        return ReadinessSnapshot(
            status=STATUS_DEGRADED,
            ready=False,
            reason=first.reason or REASON_DEPENDENCY_UNAVAILABLE,
            detail=first.detail,
            last_checked_at=now,
            check_results=tuple(results),
        )
    degraded = next((result for result in results if result.degraded), None)
    return ReadinessSnapshot(
        status=STATUS_OK if degraded is None else STATUS_DEGRADED,
        ready=True,
        reason=REASON_READY if degraded is None else REASON_DEGRADED,
        detail="" if degraded is None else degraded.detail,
        last_checked_at=now,
        check_results=tuple(results),
    )


async def evaluate_readiness_once(
    *,
    checks: Sequence[ReadinessCheck],
    previous: ReadinessSnapshot | None,
    source: str,
    now_fn: Callable[[], float] = time.time,
    on_snapshot: SnapshotCallback | None = None,
    logger: AnyLogger | None = None,
) -> ReadinessSnapshot:
    """Run every check concurrently and aggregate one snapshot.

    Results keep the order of ``checks``. A check that raises becomes a
    ``check_failed`` result. ``on_snapshot`` errors are logged and dropped.
    """
    results = await asyncio.gather(*(_run_check(check) for check in checks))
    snapshot = _aggregate(results, now_fn())
    if on_snapshot is None:
        return snapshot

    try:
        on_snapshot(previous, snapshot, source)
    except Exception:
        log_exception(
            get_logger(__name__) if logger is None else logger,
            "readiness.callback_failed",
            source=source,
            ready=snapshot.ready,
            reason=snapshot.reason,
            callback=getattr(on_snapshot, "__name__", type(on_snapshot).__name__),
        )
    return snapshot
