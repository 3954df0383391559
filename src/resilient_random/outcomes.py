"""Tagged results for single attempts and whole pipeline executions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from resilient_random.errors import TerminalFailureError, TransientError

REASON_REMOTE_FAILURE = "remote_failure"
REASON_TRANSIENT_REMOTE_FAILURE = "transient_remote_failure"
REASON_TIMEOUT = "timeout"
REASON_CIRCUIT_OPEN = "circuit_open"
REASON_CANCELLED = "cancelled"


@dataclass(frozen=True)
class Success:
    """Attempt completed and produced a usable number."""

    value: int


@dataclass(frozen=True)
class Failure:
    """Attempt raised; ``retryable`` marks transient causes."""

    cause: Exception
    retryable: bool

    @classmethod
    def from_exception(cls, cause: Exception) -> Failure:
        """Classify an exception raised by a remote call."""
        return cls(cause=cause, retryable=isinstance(cause, TransientError))


@dataclass(frozen=True)
class TimedOut:
    """Attempt was abandoned after ``timeout`` seconds."""

    timeout: float


@dataclass(frozen=True)
class CircuitOpen:
    """Attempt was rejected by an open breaker without running."""

    breaker_name: str
    retry_after: float


@dataclass(frozen=True)
class Cancelled:
    """Attempt was aborted by the caller's cancellation signal.

    ``started`` is true when the remote call was already running and had to
    be abandoned; the breaker then records it as one failed sample.
    """

    started: bool = False


AttemptOutcome = Success | Failure | TimedOut | CircuitOpen | Cancelled


def is_retryable(outcome: AttemptOutcome) -> bool:
    """Return true for outcomes worth another attempt."""
    if isinstance(outcome, TimedOut):
        return True
    if isinstance(outcome, Failure):
        return outcome.retryable
    return False


def counts_as_failure(outcome: AttemptOutcome) -> bool:
    """Return true for outcomes the breaker must record as failures."""
    if isinstance(outcome, Cancelled):
        return outcome.started
    return isinstance(outcome, (Failure, TimedOut))


def outcome_reason(outcome: AttemptOutcome) -> str:
    """Return a short machine-readable reason for a non-success outcome."""
    if isinstance(outcome, TimedOut):
        return REASON_TIMEOUT
    if isinstance(outcome, CircuitOpen):
        return REASON_CIRCUIT_OPEN
    if isinstance(outcome, Cancelled):
        return REASON_CANCELLED
    if isinstance(outcome, Failure):
        if outcome.retryable:
            return REASON_TRANSIENT_REMOTE_FAILURE
        return REASON_REMOTE_FAILURE
    raise ValueError(f"success outcome has no failure reason: {outcome!r}")


def outcome_detail(outcome: AttemptOutcome) -> str:
    """Return a human-readable description for a non-success outcome."""
    if isinstance(outcome, TimedOut):
        return f"attempt exceeded {outcome.timeout:g}s"
    if isinstance(outcome, CircuitOpen):
        return f"{outcome.breaker_name} retry_after={outcome.retry_after:g}s"
    if isinstance(outcome, Failure):
        return f"{outcome.cause.__class__.__name__}: {outcome.cause}"
    return ""


class ValueSource(StrEnum):
    """Where a pipeline value came from."""

    REMOTE = "remote"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class PipelineValue:
    """Pipeline produced a number."""

    value: int
    source: ValueSource

    def unwrap(self) -> int:
        return self.value


@dataclass(frozen=True)
class PipelineFailure:
    """Pipeline produced no number and fallback was disabled."""

    reason: str
    detail: str = ""

    def unwrap(self) -> int:
        raise TerminalFailureError(self.reason, self.detail)


PipelineResult = PipelineValue | PipelineFailure
