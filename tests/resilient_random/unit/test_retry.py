from __future__ import annotations

import asyncio
import warnings

import pytest
from tenacity import AsyncRetrying, RetryCallState, RetryError
from tenacity.retry import retry_if_exception_type

from resilient_random.errors import RemoteStatusError
from resilient_random.outcomes import (
    AttemptOutcome,
    CircuitOpen,
    Failure,
    Success,
    TimedOut,
)
from resilient_random.retry import (
    RetryConfig,
    RetryPolicy,
    build_exponential_jitter_retrying,
    build_interruptible_sleep,
)
from tests.resilient_random.support.fakes import FakeLogger

pytestmark = pytest.mark.asyncio


class _ScriptedAttempt:
    def __init__(self, *outcomes: AttemptOutcome) -> None:
        self._outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self) -> AttemptOutcome:
        index = min(self.calls, len(self._outcomes) - 1)
        self.calls += 1
        return self._outcomes[index]


class _RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _transient() -> Failure:
    return Failure.from_exception(RemoteStatusError("HTTP 503", http_status=503))


@pytest.mark.parametrize(
    ("max_attempts", "base_delay", "max_delay", "message"),
    [
        (0, 0.0, 1.0, "max_attempts must be >= 1"),
        (1, -0.1, 1.0, "base_delay must be >= 0"),
        (1, 0.0, -0.1, "max_delay must be >= 0"),
        (1, 2.0, 1.0, "max_delay must be >= base_delay"),
    ],
)
async def test_retry_config_validation(
    max_attempts: int,
    base_delay: float,
    max_delay: float,
    message: str,
) -> None:
    with pytest.raises(ValueError, match=message):
        RetryConfig(
            max_attempts=max_attempts,
            base_delay=base_delay,
            max_delay=max_delay,
        )


async def test_retry_config_from_retry_count_counts_first_attempt() -> None:
    config = RetryConfig.from_retry_count(3, base_delay=1.0, max_delay=10.0)

    assert config.max_attempts == 4
    assert config.jitter is True

    with pytest.raises(ValueError, match="retry_count must be >= 0"):
        RetryConfig.from_retry_count(-1, base_delay=1.0, max_delay=10.0)


async def test_interruptible_sleep_returns_immediately_when_stop_event_is_set() -> None:
    stop_event = asyncio.Event()
    stop_event.set()
    sleep = build_interruptible_sleep(stop_event)

    await asyncio.wait_for(sleep(30.0), timeout=0.1)


async def test_interruptible_sleep_wakes_when_stop_event_fires() -> None:
    stop_event = asyncio.Event()
    sleep = build_interruptible_sleep(stop_event)

    sleeper = asyncio.create_task(sleep(30.0))
    await asyncio.sleep(0)
    stop_event.set()

    await asyncio.wait_for(sleeper, timeout=0.5)


async def test_interruptible_sleep_waits_for_delay_when_not_interrupted() -> None:
    stop_event = asyncio.Event()
    sleep = build_interruptible_sleep(stop_event)

    await asyncio.wait_for(sleep(0.01), timeout=0.2)


async def test_build_retrying_without_optional_hooks() -> None:
    retrying = build_exponential_jitter_retrying(
        retry=retry_if_exception_type(ValueError),
        config=RetryConfig(max_attempts=2, base_delay=0.0, max_delay=0.0),
    )

    assert isinstance(retrying, AsyncRetrying)


async def test_build_retrying_emits_no_deprecation_warning() -> None:
    with warnings.catch_warnings():
        warnings.simplefilter("error", DeprecationWarning)
        retrying = build_exponential_jitter_retrying(
            retry=retry_if_exception_type(ValueError),
            config=RetryConfig(max_attempts=3, base_delay=0.25, max_delay=2.0),
        )

    assert isinstance(retrying, AsyncRetrying)


async def test_build_retrying_with_before_sleep_and_reraise_disabled() -> None:
    before_sleep_calls: list[int] = []
    sleep = _RecordingSleep()

    def _before_sleep(state: RetryCallState) -> None:
        before_sleep_calls.append(state.attempt_number)

    retrying = build_exponential_jitter_retrying(
        retry=retry_if_exception_type(ValueError),
        config=RetryConfig(max_attempts=3, base_delay=0.0, max_delay=0.0),
        sleep=sleep,
        before_sleep=_before_sleep,
        reraise=False,
    )

    with pytest.raises(RetryError):
        async for attempt in retrying:
            with attempt:
                raise ValueError("boom")

    assert before_sleep_calls == [1, 2]
    assert sleep.delays == [0.0, 0.0]


async def test_execute_returns_first_success_without_sleeping() -> None:
    sleep = _RecordingSleep()
    policy = RetryPolicy(
        RetryConfig(max_attempts=3, base_delay=1.0, max_delay=10.0),
        sleep=sleep,
        logger=FakeLogger(),
    )
    attempt = _ScriptedAttempt(Success(5))

    outcome = await policy.execute(attempt)

    assert outcome == Success(5)
    assert attempt.calls == 1
    assert sleep.delays == []


async def test_execute_retries_transient_failure_until_success(
    fake_logger: FakeLogger,
) -> None:
    sleep = _RecordingSleep()
    policy = RetryPolicy(
        RetryConfig(max_attempts=3, base_delay=1.0, max_delay=10.0, jitter=False),
        sleep=sleep,
        logger=fake_logger,
    )
    attempt = _ScriptedAttempt(_transient(), Success(9))

    outcome = await policy.execute(attempt)

    assert outcome == Success(9)
    assert attempt.calls == 2
    assert sleep.delays == [1.0]
    fields = fake_logger.fields_for("random_number.retrying")
    assert fields == {
        "attempt": 2,
        "max_attempts": 3,
        "delay_ms": 1000.0,
        "reason": "transient_remote_failure",
    }


async def test_execute_backoff_doubles_and_is_capped() -> None:
    sleep = _RecordingSleep()
    policy = RetryPolicy(
        RetryConfig(max_attempts=5, base_delay=1.0, max_delay=3.0, jitter=False),
        sleep=sleep,
        logger=FakeLogger(),
    )
    attempt = _ScriptedAttempt(TimedOut(timeout=0.5))

    outcome = await policy.execute(attempt)

    assert outcome == TimedOut(timeout=0.5)
    assert attempt.calls == 5
    assert sleep.delays == [1.0, 2.0, 3.0, 3.0]


async def test_execute_jitter_stays_within_base_delay() -> None:
    sleep = _RecordingSleep()
    policy = RetryPolicy(
        RetryConfig(max_attempts=3, base_delay=0.5, max_delay=10.0),
        sleep=sleep,
        logger=FakeLogger(),
    )

    await policy.execute(_ScriptedAttempt(_transient()))

    first, second = sleep.delays
    assert 0.5 <= first <= 1.0
    assert 1.0 <= second <= 1.5


@pytest.mark.parametrize(
    "outcome",
    [
        Failure.from_exception(ValueError("unexpected payload shape")),
        CircuitOpen(breaker_name="svc", retry_after=3.0),
    ],
)
async def test_execute_stops_on_non_retryable_outcome(
    outcome: AttemptOutcome,
) -> None:
    sleep = _RecordingSleep()
    policy = RetryPolicy(
        RetryConfig(max_attempts=4, base_delay=0.0, max_delay=0.0),
        sleep=sleep,
        logger=FakeLogger(),
    )
    attempt = _ScriptedAttempt(outcome)

    assert await policy.execute(attempt) == outcome
    assert attempt.calls == 1
    assert sleep.delays == []


async def test_execute_with_zero_retries_makes_single_attempt() -> None:
    policy = RetryPolicy(
        RetryConfig.from_retry_count(0, base_delay=0.0, max_delay=0.0),
        logger=FakeLogger(),
    )
    attempt = _ScriptedAttempt(_transient())

    outcome = await policy.execute(attempt)

    assert isinstance(outcome, Failure)
    assert attempt.calls == 1


async def test_execute_stops_when_cancel_event_is_set() -> None:
    cancel_event = asyncio.Event()
    calls = 0

    async def _attempt() -> AttemptOutcome:
        nonlocal calls
        calls += 1
        cancel_event.set()
        return TimedOut(timeout=1.0)

    policy = RetryPolicy(
        RetryConfig(max_attempts=5, base_delay=30.0, max_delay=30.0),
        logger=FakeLogger(),
    )

    outcome = await asyncio.wait_for(
        policy.execute(_attempt, cancel_event=cancel_event),
        timeout=1.0,
    )

    assert outcome == TimedOut(timeout=1.0)
    assert calls == 1


async def test_execute_accepts_custom_classifier() -> None:
    policy = RetryPolicy(
        RetryConfig(max_attempts=3, base_delay=0.0, max_delay=0.0),
        logger=FakeLogger(),
    )
    attempt = _ScriptedAttempt(TimedOut(timeout=1.0), Success(1))

    outcome = await policy.execute(attempt, classify=lambda _: False)

    assert outcome == TimedOut(timeout=1.0)
    assert attempt.calls == 1
