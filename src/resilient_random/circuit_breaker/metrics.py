"""Observability hooks for circuit breakers."""

from typing import Protocol

from resilient_random.circuit_breaker.state import CircuitState
from resilient_random.logging import (
    AnyLogger,
    get_logger,
    log_error,
    log_info,
    log_warning,
)


class BreakerListener(Protocol):
    """Listener protocol for circuit breaker events.

    Notes:
        ``on_state_change(OPEN → HALF_OPEN)`` is emitted once per probe.
    """

    async def on_state_change(
        self, name: str, old: CircuitState, new: CircuitState
    ) -> None:
        """Handle circuit state transitions."""

    async def on_call_rejected(self, name: str) -> None:
        """Handle call rejection while the circuit is open."""

    async def on_call_succeeded(self, name: str, elapsed: float) -> None:
        """Handle successful protected call completion."""

    async def on_call_failed(self, name: str, exc: Exception, elapsed: float) -> None:
        """Handle failed protected call completion."""


class LoggingBreakerListener(BreakerListener):
    """Listener that turns breaker events into structured log lines."""

    def __init__(
        self,
        *,
        open_duration: float,
        logger: AnyLogger | None = None,
    ) -> None:
        self._open_duration = open_duration
        self._logger = get_logger(__name__) if logger is None else logger

    async def on_state_change(
        self,
        name: str,
        old: CircuitState,
        new: CircuitState,
    ) -> None:
        """Log transitions with the level matching their severity."""
        if new == CircuitState.OPEN:
            log_error(
                self._logger,
                "circuit_breaker.opened",
                breaker=name,
                previous_state=str(old),
                open_duration_seconds=self._open_duration,
            )
        elif new == CircuitState.HALF_OPEN:
            log_info(self._logger, "circuit_breaker.half_opened", breaker=name)
        elif new == CircuitState.CLOSED:
            log_info(
                self._logger,
                "circuit_breaker.closed",
                breaker=name,
                previous_state=str(old),
            )

    async def on_call_rejected(self, name: str) -> None:
        log_warning(self._logger, "circuit_breaker.rejected", breaker=name)

    async def on_call_succeeded(self, name: str, elapsed: float) -> None:
        """No-op for this listener."""
        _ = (name, elapsed)

    async def on_call_failed(self, name: str, exc: Exception, elapsed: float) -> None:
        """No-op for this listener."""
        _ = (name, exc, elapsed)
