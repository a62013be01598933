"""Tests for the expiry countdown that runs while a code is pending.

The countdown ticks every few milliseconds here, but the seconds it reports
come from the manual clock, so time only passes when a test advances it.
"""

from __future__ import annotations

import asyncio
import random

import pytest
import pytest_asyncio

from passwordless_auth.models.auth_state import CodeSent
from passwordless_auth.models.outcomes import Expired, Success
from passwordless_auth.otp.store import OtpStore
from passwordless_auth.session.auth_session import EXPIRED_MESSAGE, AuthSession

EXPIRY_SECONDS = 3


@pytest.fixture
def ticking_settings(settings_factory):
    """Three-second codes, checked every 5 ms."""
    return settings_factory(otp_expiry_seconds=EXPIRY_SECONDS, countdown_tick_ms=5)


@pytest.fixture
def store(clock):
    return OtpStore(clock, expiry_seconds=EXPIRY_SECONDS, rng=random.Random(99))


@pytest_asyncio.fixture
async def session(store, sink, clock, ticking_settings):
    auth = AuthSession(store, sink, clock, ticking_settings)
    yield auth
    auth.close()


async def _wait_until(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


def _countdown(session: AuthSession) -> int:
    return session.otp_input.value.countdown_seconds


# ── Counting down ────────────────────────────────────────

@pytest.mark.asyncio
async def test_countdown_follows_the_clock_down_to_zero(session, clock):
    await session.request_code("u@x.com")
    seen: list[int] = []
    session.otp_input.subscribe(lambda s: seen.append(s.countdown_seconds))

    clock.advance(1)
    await _wait_until(lambda: _countdown(session) == 2)
    clock.advance(1)
    await _wait_until(lambda: _countdown(session) == 1)
    clock.advance(1)
    await _wait_until(lambda: session.otp_input.value.must_resend)

    assert seen == [3, 2, 1, 0]


@pytest.mark.asyncio
async def test_ticks_alone_do_not_use_up_the_code(session):
    await session.request_code("u@x.com")

    # Plenty of ticks, but the clock has not moved
    await asyncio.sleep(0.1)

    assert _countdown(session) == EXPIRY_SECONDS
    assert session.otp_input.value.must_resend is False
    assert session.countdown_active


@pytest.mark.asyncio
async def test_partial_seconds_round_up(session, clock):
    await session.request_code("u@x.com")

    clock.advance(1.5)
    await _wait_until(lambda: _countdown(session) != EXPIRY_SECONDS)

    assert _countdown(session) == 2


# ── Expiry ───────────────────────────────────────────────

@pytest.mark.asyncio
async def test_expiry_sets_must_resend_without_transition(session, clock):
    issued = await session.request_code("u@x.com")

    clock.advance(EXPIRY_SECONDS)
    await _wait_until(lambda: session.otp_input.value.must_resend)

    otp_state = session.otp_input.value
    assert otp_state.countdown_seconds == 0
    assert otp_state.can_resend is True
    assert otp_state.error_message == EXPIRED_MESSAGE
    assert session.auth_state.value == CodeSent(identity="u@x.com")
    assert not session.countdown_active

    # The store is still the authority on expiry
    result = await session.submit_code(issued.code)
    assert result.outcome == Expired()


@pytest.mark.asyncio
async def test_jump_past_expiry_is_still_announced(session, clock):
    await session.request_code("u@x.com")
    clock.advance(1)
    await _wait_until(lambda: _countdown(session) == 2)

    clock.advance(60)
    await _wait_until(lambda: not session.countdown_active)

    otp_state = session.otp_input.value
    assert otp_state.must_resend is True
    assert otp_state.countdown_seconds == 0
    assert otp_state.error_message == EXPIRED_MESSAGE


# ── Early exit ───────────────────────────────────────────

@pytest.mark.asyncio
async def test_countdown_stops_once_code_is_consumed_elsewhere(session, store, clock):
    issued = await session.request_code("u@x.com")
    assert store.validate("u@x.com", issued.code) == Success()

    await _wait_until(lambda: not session.countdown_active)
    clock.advance(EXPIRY_SECONDS)
    await asyncio.sleep(0.03)

    otp_state = session.otp_input.value
    assert otp_state.must_resend is False
    assert otp_state.countdown_seconds == EXPIRY_SECONDS


@pytest.mark.asyncio
async def test_countdown_stops_once_code_is_replaced_elsewhere(session, store):
    issued = await session.request_code("u@x.com")
    replacement = store.generate("u@x.com")
    while replacement == issued.code:
        replacement = store.generate("u@x.com")

    await _wait_until(lambda: not session.countdown_active)

    assert session.otp_input.value.must_resend is False
    assert _countdown(session) == EXPIRY_SECONDS


@pytest.mark.asyncio
async def test_no_publishes_after_successful_verification(session, clock):
    issued = await session.request_code("u@x.com")
    seen = []
    session.otp_input.subscribe(seen.append)

    await session.submit_code(issued.code)
    published = len(seen)
    clock.advance(EXPIRY_SECONDS)
    await asyncio.sleep(0.05)

    assert len(seen) == published
    assert seen[-1].must_resend is False


@pytest.mark.asyncio
async def test_resend_replaces_countdown(session, clock):
    await session.request_code("u@x.com")
    clock.advance(2)
    await _wait_until(lambda: _countdown(session) == 1)

    await session.resend()
    assert _countdown(session) == EXPIRY_SECONDS

    seen = []
    session.otp_input.subscribe(seen.append)
    clock.advance(1)
    await asyncio.sleep(0.03)
    # The old code would have run out by now; the new one has two seconds left
    assert session.otp_input.value.must_resend is False
    assert _countdown(session) == 2

    clock.advance(2)
    await _wait_until(lambda: session.otp_input.value.must_resend)
    await asyncio.sleep(0.03)

    assert sum(1 for s in seen if s.must_resend) == 1


@pytest.mark.asyncio
async def test_close_cancels_countdown(session, clock):
    await session.request_code("u@x.com")
    assert session.countdown_active

    session.close()
    seen = []
    session.otp_input.subscribe(seen.append)
    clock.advance(EXPIRY_SECONDS)
    await asyncio.sleep(0.05)

    assert not session.countdown_active
    assert len(seen) == 1
