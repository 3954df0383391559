from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import suppress

from resilient_random.logging import AnyLogger, get_logger, log_warning
from resilient_random.outcomes import (
    AttemptOutcome,
    Cancelled,
    Failure,
    Success,
    TimedOut,
)

RemoteCall = Callable[[], Awaitable[int]]


def _discard_task_result(task: asyncio.Future[int]) -> None:
    with suppress(asyncio.CancelledError, Exception):
        task.exception()


class TimeoutGuard:
    """Bound one remote-call attempt by wall-clock time and cancellation."""

    def __init__(
        self,
        default_timeout: float,
        *,
        logger: AnyLogger | None = None,
    ) -> None:
        """Create a guard.

        Args:
            default_timeout: Seconds used when ``run`` gets no usable timeout.
            logger: Structured logger for timeout events.

        Raises:
            ValueError: If ``default_timeout`` is not positive.
        """
        if default_timeout <= 0:
            raise ValueError("default_timeout must be > 0")
        self.default_timeout = default_timeout
        self._logger = get_logger(__name__) if logger is None else logger

    def resolve_timeout(self, timeout: float | None) -> float:
        """Return ``timeout`` or the default when it is missing or not positive."""
        if timeout is None or timeout <= 0:
            return self.default_timeout
        return timeout

    async def run(
        self,
        attempt: RemoteCall,
        *,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AttemptOutcome:
        """Run one attempt and classify how it ended.

        A timed-out or cancelled attempt is cancelled cooperatively and not
        awaited further. Exceptions raised by the attempt become ``Failure``.
        """
        budget = self.resolve_timeout(timeout)
        if cancel_event is not None and cancel_event.is_set():
            return Cancelled()

        task: asyncio.Future[int] = asyncio.ensure_future(attempt())
        waiters: set[asyncio.Future[object]] = {task}  # type: ignore[arg-type]
        cancel_waiter: asyncio.Task[bool] | None = None
        if cancel_event is not None:
            cancel_waiter = asyncio.create_task(cancel_event.wait())
            waiters.add(cancel_waiter)  # type: ignore[arg-type]

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=budget,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()
            if not task.done():
                task.cancel()
                task.add_done_callback(_discard_task_result)

        if task in done:
            if task.cancelled():
                return Cancelled(started=True)
            error = task.exception()
            if error is None:
                return Success(task.result())
            if isinstance(error, Exception):
                return Failure.from_exception(error)
            raise error

        if cancel_waiter is not None and cancel_waiter in done:
            return Cancelled(started=True)

        log_warning(
            self._logger,
            "random_number.attempt_timed_out",
            timeout_seconds=budget,
        )
        return TimedOut(timeout=budget)
