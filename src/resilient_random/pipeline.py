"""Resilient invocation pipeline around one remote random-number call.

Each attempt runs inside a ``TimeoutGuard``, is gated by the shared
``CircuitBreaker`` (which records exactly one outcome per attempt that runs),
and is repeated by ``RetryPolicy`` while its outcome stays retryable. A
circuit-open rejection or a cancellation ends the loop at once. When no remote
value was obtained, the optional ``FallbackGenerator`` supplies one; without
it the pipeline reports a terminal failure.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from resilient_random.circuit_breaker import CircuitBreaker
from resilient_random.fallback import FallbackGenerator
from resilient_random.logging import (
    AnyLogger,
    get_logger,
    log_debug,
    log_error,
    log_info,
    log_warning,
)
from resilient_random.outcomes import (
    AttemptOutcome,
    Cancelled,
    CircuitOpen,
    PipelineFailure,
    PipelineResult,
    PipelineValue,
    Success,
    TimedOut,
    ValueSource,
    outcome_detail,
    outcome_reason,
)
from resilient_random.retry import RetryPolicy
from resilient_random.timeout import RemoteCall, TimeoutGuard


@dataclass(frozen=True)
class PipelineConfig:
    """Per-attempt timeout and fallback behaviour.

    Attributes:
        attempt_timeout: Seconds before one attempt is abandoned.
        enable_fallback: Produce a local number when no remote value arrives.
        fallback_min_value: Inclusive lower bound of fallback numbers.
        fallback_max_value: Exclusive upper bound of fallback numbers.
    """

    attempt_timeout: float
    enable_fallback: bool = True
    fallback_min_value: int = 1
    fallback_max_value: int = 101

    def __post_init__(self) -> None:
        if self.attempt_timeout <= 0:
            raise ValueError("attempt_timeout must be > 0")
        if self.fallback_min_value >= self.fallback_max_value:
            raise ValueError("fallback_min_value must be < fallback_max_value")


class ResiliencePipeline:
    """Compose timeout, circuit breaker, retry and fallback around a call."""

    def __init__(
        self,
        *,
        config: PipelineConfig,
        breaker: CircuitBreaker,
        retry: RetryPolicy,
        timeout_guard: TimeoutGuard | None = None,
        fallback: FallbackGenerator | None = None,
        logger: AnyLogger | None = None,
    ) -> None:
        """Create a pipeline from its collaborators.

        Args:
            config: Timeout and fallback settings.
            breaker: Breaker shared by every execution of this pipeline.
            retry: Retry policy applied to gated attempts.
            timeout_guard: Guard for single attempts. Defaults to one using
                ``config.attempt_timeout``.
            fallback: Fallback generator. Defaults to one over the configured
                fallback range.
            logger: Structured logger for pipeline events.
        """
        self.config = config
        self.breaker = breaker
        self._retry = retry
        self._logger = get_logger(__name__) if logger is None else logger
        self._timeout_guard = (
            TimeoutGuard(config.attempt_timeout, logger=self._logger)
            if timeout_guard is None
            else timeout_guard
        )
        self._fallback = (
            FallbackGenerator(config.fallback_min_value, config.fallback_max_value)
            if fallback is None
            else fallback
        )

    async def execute(
        self,
        remote_call: RemoteCall,
        cancel_event: asyncio.Event | None = None,
    ) -> PipelineResult:
        """Obtain one number, resiliently.

        Args:
            remote_call: Zero-argument coroutine factory returning a number.
            cancel_event: Optional signal that aborts the current attempt and
                skips any remaining retries.

        Returns:
            ``PipelineValue`` with a remote or fallback number, or
            ``PipelineFailure`` when fallback is disabled.
        """

        async def _guarded() -> AttemptOutcome:
            return await self._timeout_guard.run(
                remote_call,
                timeout=self.config.attempt_timeout,
                cancel_event=cancel_event,
            )

        async def _gated() -> AttemptOutcome:
            return await self.breaker.gate(_guarded, cancel_event=cancel_event)

        outcome = await self._retry.execute(_gated, cancel_event=cancel_event)
        if isinstance(outcome, Success):
            log_debug(
                self._logger,
                "random_number.received",
                value=outcome.value,
                source=str(ValueSource.REMOTE),
            )
            return PipelineValue(value=outcome.value, source=ValueSource.REMOTE)

        self._log_outcome(outcome)
        reason = outcome_reason(outcome)
        detail = outcome_detail(outcome)
        if self.config.enable_fallback:
            value = self._fallback.generate()
            log_info(
                self._logger,
                "random_number.fallback_used",
                value=value,
                reason=reason,
            )
            return PipelineValue(value=value, source=ValueSource.FALLBACK)

        log_error(
            self._logger,
            "random_number.terminal_failure",
            reason=reason,
            detail=detail,
        )
        return PipelineFailure(reason=reason, detail=detail)

    async def get_number(
        self,
        remote_call: RemoteCall,
        cancel_event: asyncio.Event | None = None,
    ) -> int:
        """Return a number or raise ``TerminalFailureError``."""
        result = await self.execute(remote_call, cancel_event)
        return result.unwrap()

    def _log_outcome(self, outcome: AttemptOutcome) -> None:
        if isinstance(outcome, CircuitOpen):
            log_warning(
                self._logger,
                "random_number.circuit_open",
                breaker=outcome.breaker_name,
                retry_after_seconds=outcome.retry_after,
            )
        elif isinstance(outcome, Cancelled):
            log_info(self._logger, "random_number.cancelled")
        elif isinstance(outcome, TimedOut):
            log_error(
                self._logger,
                "random_number.timed_out",
                timeout_seconds=outcome.timeout,
                max_attempts=self._retry.config.max_attempts,
            )
        else:
            log_error(
                self._logger,
                "random_number.failed",
                reason=outcome_reason(outcome),
                detail=outcome_detail(outcome),
            )
