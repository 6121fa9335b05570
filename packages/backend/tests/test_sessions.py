"""Session issuer tests — single-session refresh rotation and revocation."""

import asyncio

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from conftest import unique_email
from schoolgate.config import settings
from schoolgate.db.engine import bounded
from schoolgate.db.models import Identity
from schoolgate.errors import StaleRefreshToken, StoreUnavailable, TokenMalformed
from schoolgate.services.identity_service import IdentityService
from schoolgate.services.session_service import SessionService


async def _stored_refresh_token(session_factory, identity_id):
    async with session_factory() as s:
        result = await s.execute(select(Identity.refresh_token).where(Identity.id == identity_id))
        return result.scalar_one()


@pytest.fixture()
def registered(db_session):
    async def _register():
        return await IdentityService(db_session).register("Session User", unique_email("s"), "secret1")

    return _register


@pytest.mark.asyncio
async def test_start_session_stores_refresh_token(db_session, session_factory, registered):
    identity = await registered()
    pair = await SessionService(db_session).start_session(identity)
    assert await _stored_refresh_token(session_factory, identity.id) == pair.refresh_token


@pytest.mark.asyncio
async def test_rotate_invalidates_previous_refresh_token(db_session, session_factory, registered):
    identity = await registered()
    sessions = SessionService(db_session)
    first = await sessions.start_session(identity)

    second = await sessions.rotate(first.refresh_token)
    assert second.refresh_token != first.refresh_token
    assert await _stored_refresh_token(session_factory, identity.id) == second.refresh_token

    with pytest.raises(StaleRefreshToken):
        await sessions.rotate(first.refresh_token)

    # The replay did not disturb the live token
    third = await sessions.rotate(second.refresh_token)
    assert third.refresh_token != second.refresh_token


@pytest.mark.asyncio
async def test_concurrent_rotations_have_one_winner(file_session_factory):
    async with file_session_factory() as session:
        identity = await IdentityService(session).register("Twin Tabs", unique_email("tabs"), "secret1")
        pair = await SessionService(session).start_session(identity)

    async def rotate():
        async with file_session_factory() as session:
            return await SessionService(session).rotate(pair.refresh_token)

    results = await asyncio.gather(rotate(), rotate(), return_exceptions=True)
    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1 and isinstance(losers[0], StaleRefreshToken)
    assert await _stored_refresh_token(file_session_factory, identity.id) == winners[0].refresh_token


@pytest.mark.asyncio
async def test_new_login_invalidates_older_refresh_token(db_session, registered):
    identity = await registered()
    sessions = SessionService(db_session)
    old = await sessions.start_session(identity)
    await sessions.start_session(identity)
    with pytest.raises(StaleRefreshToken):
        await sessions.rotate(old.refresh_token)


@pytest.mark.asyncio
async def test_revoke_clears_refresh_token(db_session, session_factory, registered):
    identity = await registered()
    sessions = SessionService(db_session)
    pair = await sessions.start_session(identity)
    await sessions.revoke(identity.id)
    assert await _stored_refresh_token(session_factory, identity.id) is None
    with pytest.raises(StaleRefreshToken):
        await sessions.rotate(pair.refresh_token)


@pytest.mark.asyncio
async def test_rotate_refused_for_deactivated_identity(db_session, registered):
    identity = await registered()
    sessions = SessionService(db_session)
    pair = await sessions.start_session(identity)
    await IdentityService(db_session).deactivate(identity.id, actor_id=identity.id)
    with pytest.raises(StaleRefreshToken):
        await sessions.rotate(pair.refresh_token)


@pytest.mark.asyncio
async def test_access_token_cannot_be_used_to_refresh(db_session, registered):
    identity = await registered()
    pair = await SessionService(db_session).start_session(identity)
    with pytest.raises(TokenMalformed):
        await SessionService(db_session).rotate(pair.access_token)


# ═══════════════════════════════════════════════════════════
# Store bounds
# ═══════════════════════════════════════════════════════════


class _SlowStore:
    @bounded
    async def lookup(self):
        await asyncio.sleep(1)

    @bounded
    async def broken(self):
        raise OperationalError("SELECT 1", {}, ConnectionResetError("connection reset"))


@pytest.mark.asyncio
async def test_slow_store_call_becomes_store_unavailable(monkeypatch):
    monkeypatch.setattr(settings, "store_timeout_seconds", 0.05)
    with pytest.raises(StoreUnavailable) as exc:
        await _SlowStore().lookup()
    assert exc.value.retryable
    assert isinstance(exc.value.__cause__, asyncio.TimeoutError)


@pytest.mark.asyncio
async def test_lost_connection_becomes_store_unavailable():
    with pytest.raises(StoreUnavailable) as exc:
        await _SlowStore().broken()
    assert isinstance(exc.value.__cause__, OperationalError)
