"""Shared test doubles: a hand-driven clock and an in-memory event sink."""

from __future__ import annotations

from typing import Any

import pytest

from passwordless_auth.config import Settings


class ManualClock:
    """Clock that only moves when a test advances it."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self._now = start

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds


class RecordingEventSink:
    """Keeps every emitted event for later assertions."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        self.events.append((event_name, payload))

    async def aclose(self) -> None:
        return None

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def sink() -> RecordingEventSink:
    return RecordingEventSink()


def make_settings(**overrides: Any) -> Settings:
    """Default settings with the simulated latency switched off."""
    values: dict[str, Any] = dict(
        otp_code_length=6,
        otp_expiry_seconds=60,
        otp_max_attempts=3,
        countdown_tick_ms=1000,
        request_latency_ms=0,
        verify_latency_ms=0,
        request_timeout_seconds=1.0,
        event_sink_url="",
        debug=True,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def quiet_settings() -> Settings:
    """No latency, and a countdown that will not tick within a test."""
    return make_settings()


@pytest.fixture
def settings_factory():
    return make_settings
