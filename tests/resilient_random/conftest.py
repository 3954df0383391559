from __future__ import annotations

import pytest

from tests.resilient_random.support.fakes import (
    FakeClock,
    FakeLogger,
    RecordingListener,
)


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def recording_listener() -> RecordingListener:
    """Provide a fresh breaker listener that records events."""
    return RecordingListener()


@pytest.fixture
def fake_clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    """Freeze breaker and storage clocks at a manually advanced instant."""
    clock = FakeClock()
    monkeypatch.setattr(
        "resilient_random.circuit_breaker.breaker._utcnow", clock.now
    )
    monkeypatch.setattr(
        "resilient_random.circuit_breaker.storage._utcnow", clock.now
    )
    return clock
