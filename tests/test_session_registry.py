"""Tests for the per-cookie session registry."""

import pytest

from salesdesk.schemas.session import LoginCredential
from salesdesk.services.session_registry import SessionRegistry

from tests.fakes import FakeIdentityClient


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(synchronizer, admin_principal, bob, clock):
    accounts = {"token-admin": admin_principal, "token-bob": bob}
    return SessionRegistry(
        synchronizer,
        identity_factory=lambda: FakeIdentityClient(accounts),
        login_mode="redirect",
        idle_seconds=60,
        clock=clock,
    )


@pytest.mark.asyncio
async def test_create_starts_an_independent_session(registry):
    sid_a, a = await registry.create()
    sid_b, b = await registry.create()

    assert sid_a != sid_b
    assert a.identity is not b.identity
    assert a.loading is False
    assert a.login_mode == "redirect"
    assert len(registry) == 2


@pytest.mark.asyncio
async def test_get_or_create_reuses_known_cookie(registry):
    sid, session = await registry.create()

    same_sid, same = await registry.get_or_create(sid)
    new_sid, other = await registry.get_or_create("unknown")

    assert (same_sid, same) == (sid, session)
    assert new_sid != sid and other is not session
    assert registry.get(None) is None


@pytest.mark.asyncio
async def test_expire_idle_closes_only_stale_sessions(registry, clock, store):
    stale_sid, stale = await registry.create()
    await stale.login_with_google(LoginCredential(id_token="token-bob"))
    clock.now += 50
    fresh_sid, _ = await registry.create()
    clock.now += 20

    expired = await registry.expire_idle()

    assert expired == 1
    assert registry.get(stale_sid) is None
    assert registry.get(fresh_sid) is not None
    assert stale.closed
    assert store.listener_count("users", "uid-bob") == 0


@pytest.mark.asyncio
async def test_get_refreshes_last_seen(registry, clock):
    sid, _ = await registry.create()
    clock.now += 50
    registry.get(sid)
    clock.now += 20

    assert await registry.expire_idle() == 0


@pytest.mark.asyncio
async def test_close_all(registry):
    _, a = await registry.create()
    _, b = await registry.create()

    registry.close_all()

    assert len(registry) == 0
    assert a.closed and b.closed
