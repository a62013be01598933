"""Tests for the SessionManager registry."""

import pytest
import pytest_asyncio

from passwordless_auth.models.auth_state import CodeSent
from passwordless_auth.services.session_manager import SessionManager


@pytest_asyncio.fixture
async def manager(clock, sink, quiet_settings):
    mgr = SessionManager(event_sink=sink, clock=clock, config=quiet_settings)
    yield mgr
    mgr.close_all()


@pytest.mark.asyncio
async def test_get_creates_once(manager):
    first = manager.get("abc")
    assert manager.get("abc") is first
    assert manager.active_count == 1


def test_store_follows_config(settings_factory, clock):
    mgr = SessionManager(clock=clock, config=settings_factory(otp_code_length=8, otp_max_attempts=5))
    assert mgr.otp_store.code_length == 8
    assert mgr.get("x").max_attempts == 5


@pytest.mark.asyncio
async def test_sessions_share_one_store(manager):
    issued = await manager.get("phone").request_code("u@x.com")

    # A second client can finish the flow for the same identity
    laptop = manager.get("laptop")
    await laptop.request_code("u@x.com")
    assert laptop.auth_state.value == CodeSent(identity="u@x.com")
    assert issued.code is not None
    assert manager.otp_store.remaining_attempts("U@X.com") == 3


@pytest.mark.asyncio
async def test_clear_closes_session(manager):
    session = manager.get("abc")
    await session.request_code("u@x.com")

    manager.clear("abc")
    manager.clear("abc")

    assert not session.countdown_active
    assert manager.active_count == 0


@pytest.mark.asyncio
async def test_find_does_not_create(manager):
    assert manager.find("abc") is None
    assert manager.active_count == 0

    session = manager.get("abc")
    assert manager.find("abc") is session
