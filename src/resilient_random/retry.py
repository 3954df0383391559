from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import dataclass
from typing import Any, cast

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    stop_when_event_set,
    wait_exponential_jitter,
)
from tenacity.retry import retry_base
from tenacity.stop import stop_base

from resilient_random.logging import AnyLogger, get_logger, log_warning
from resilient_random.outcomes import AttemptOutcome, is_retryable, outcome_reason

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry attempt count and backoff boundaries.

    Attributes:
        max_attempts: Total attempts including the first one.
        base_delay: Delay in seconds before the second attempt.
        max_delay: Upper bound for any single delay.
        jitter: Add a uniform ``[0, base_delay]`` perturbation to each delay.
    """

    max_attempts: int
    base_delay: float
    max_delay: float
    jitter: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        if self.max_delay < 0:
            raise ValueError("max_delay must be >= 0")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")

    @classmethod
    def from_retry_count(
        cls,
        retry_count: int,
        *,
        base_delay: float,
        max_delay: float,
        jitter: bool = True,
    ) -> RetryConfig:
        """Build a config from the number of retries after the first attempt."""
        if retry_count < 0:
            raise ValueError("retry_count must be >= 0")
        return cls(
            max_attempts=retry_count + 1,
            base_delay=base_delay,
            max_delay=max_delay,
            jitter=jitter,
        )


def build_interruptible_sleep(stop_event: asyncio.Event) -> Sleep:
    """Build an async sleep that exits early when cancellation is requested."""

    async def _interruptible_sleep(delay: float) -> None:
        if stop_event.is_set():
            return

        bounded_delay = max(delay, 0.0)
        with suppress(TimeoutError):
            await asyncio.wait_for(stop_event.wait(), timeout=bounded_delay)

    return _interruptible_sleep


def build_exponential_jitter_retrying(
    *,
    retry: retry_base,
    config: RetryConfig,
    stop_event: asyncio.Event | None = None,
    sleep: Sleep | None = None,
    before_sleep: Callable[[RetryCallState], None] | None = None,
    retry_error_callback: Callable[[RetryCallState], Any] | None = None,
    reraise: bool = True,
) -> AsyncRetrying:
    """Build an ``AsyncRetrying`` with capped exponential backoff.

    The delay before attempt ``n`` is ``min(base_delay * 2 ** (n - 2),
    max_delay)``. A set ``stop_event`` stops the loop and cuts any pending
    delay short.
    """
    stop: stop_base = stop_after_attempt(config.max_attempts)
    if stop_event is not None:
        # tenacity only calls ``is_set()`` on the event.
        stop = stop | stop_when_event_set(cast(Any, stop_event))
        if sleep is None:
            sleep = build_interruptible_sleep(stop_event)
    wait = wait_exponential_jitter(
        multiplier=config.base_delay,
        max=config.max_delay,
        jitter=config.base_delay if config.jitter else 0.0,
    )

    options: dict[str, Any] = {
        "retry": retry,
        "wait": wait,
        "stop": stop,
        "reraise": reraise,
    }
    if sleep is not None:
        options["sleep"] = sleep
    if before_sleep is not None:
        options["before_sleep"] = before_sleep
    if retry_error_callback is not None:
        options["retry_error_callback"] = retry_error_callback
    return AsyncRetrying(**options)


def _last_outcome(state: RetryCallState) -> AttemptOutcome:
    outcome = state.outcome
    assert outcome is not None
    return cast(AttemptOutcome, outcome.result())


class RetryPolicy:
    """Repeat attempts whose outcomes classify as retryable."""

    def __init__(
        self,
        config: RetryConfig,
        *,
        sleep: Sleep | None = None,
        logger: AnyLogger | None = None,
    ) -> None:
        """Create a retry policy.

        Args:
            config: Attempt budget and backoff boundaries.
            sleep: Optional sleep override, mostly for tests.
            logger: Structured logger for retry events.
        """
        self.config = config
        self._sleep = sleep
        self._logger = get_logger(__name__) if logger is None else logger

    def _log_retry(self, state: RetryCallState) -> None:
        delay = state.next_action.sleep if state.next_action is not None else 0.0
        reason = "unknown"
        if state.outcome is not None and not state.outcome.failed:
            reason = outcome_reason(cast(AttemptOutcome, state.outcome.result()))
        log_warning(
            self._logger,
            "random_number.retrying",
            attempt=state.attempt_number + 1,
            max_attempts=self.config.max_attempts,
            delay_ms=round(delay * 1000, 1),
            reason=reason,
        )

    async def execute(
        self,
        attempt: Callable[[], Awaitable[AttemptOutcome]],
        *,
        classify: Callable[[AttemptOutcome], bool] = is_retryable,
        cancel_event: asyncio.Event | None = None,
    ) -> AttemptOutcome:
        """Run ``attempt`` until it succeeds, turns non-retryable, or runs out.

        Exhausting the budget returns the last observed outcome unchanged.
        """
        retrying = build_exponential_jitter_retrying(
            retry=retry_if_result(classify),
            config=self.config,
            stop_event=cancel_event,
            sleep=self._sleep,
            before_sleep=self._log_retry,
            retry_error_callback=_last_outcome,
        )
        return cast(AttemptOutcome, await retrying(attempt))
