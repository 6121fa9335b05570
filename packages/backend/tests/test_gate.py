"""Request gate tests — authenticate() and authorize() without HTTP."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from conftest import unique_email
from schoolgate.auth.dependencies import RequestGate
from schoolgate.auth.jwt import issue_access_token, issue_refresh_token
from schoolgate.auth.policy import Action
from schoolgate.errors import (
    IdentityGone,
    NoIdentity,
    RoleInsufficient,
    TokenExpired,
    TokenMalformed,
    WrongTenant,
)
from schoolgate.services.identity_service import IdentityService


# ═══════════════════════════════════════════════════════════
# authenticate()
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", [None, ""])
async def test_missing_credential(db_session, raw):
    with pytest.raises(NoIdentity):
        await RequestGate(db_session).authenticate(raw)


@pytest.mark.asyncio
async def test_valid_token_loads_identity(db_session, seed_identity):
    identity_id = await seed_identity(unique_email("gate"))
    token, _ = issue_access_token(identity_id)
    identity = await RequestGate(db_session).authenticate(token)
    assert identity.id == identity_id


@pytest.mark.asyncio
async def test_expired_token(db_session, seed_identity):
    identity_id = await seed_identity(unique_email("old"))
    token, _ = issue_access_token(identity_id, now=datetime.now(timezone.utc) - timedelta(days=8))
    with pytest.raises(TokenExpired):
        await RequestGate(db_session).authenticate(token)


@pytest.mark.asyncio
async def test_refresh_token_rejected_as_credential(db_session, seed_identity):
    identity_id = await seed_identity(unique_email("refresh"))
    token, _ = issue_refresh_token(identity_id)
    with pytest.raises(TokenMalformed):
        await RequestGate(db_session).authenticate(token)


@pytest.mark.asyncio
async def test_unknown_identity_is_gone(db_session):
    token, _ = issue_access_token(uuid.uuid4())
    with pytest.raises(IdentityGone):
        await RequestGate(db_session).authenticate(token)


@pytest.mark.asyncio
async def test_inactive_identity_is_gone(db_session, seed_identity):
    identity_id = await seed_identity(unique_email("inactive"), is_active=False)
    token, _ = issue_access_token(identity_id)
    with pytest.raises(IdentityGone):
        await RequestGate(db_session).authenticate(token)


@pytest.mark.asyncio
async def test_token_issued_before_password_change_is_rejected(db_session):
    svc = IdentityService(db_session)
    identity = await svc.register("Changer", unique_email("changer"), "secret1")
    stale, _ = issue_access_token(
        identity.id, now=datetime.now(timezone.utc) - timedelta(minutes=5)
    )
    await svc.change_password(identity.id, "secret1", "secret2")

    gate = RequestGate(db_session)
    with pytest.raises(TokenMalformed):
        await gate.authenticate(stale)

    fresh, _ = issue_access_token(identity.id)
    assert (await gate.authenticate(fresh)).id == identity.id


# ═══════════════════════════════════════════════════════════
# authorize()
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_authorize_returns_tenant_filter(db_session, seed_identity, seed_tenant):
    tenant_id = await seed_tenant()
    identity_id = await seed_identity(unique_email("scoped"), tenant_id=tenant_id)
    gate = RequestGate(db_session)
    identity = await gate.authenticate(issue_access_token(identity_id)[0])

    ctx = gate.authorize(identity, Action.VIEW)
    assert ctx.identity_id == identity_id
    assert ctx.tenant_filter == tenant_id
    assert not ctx.is_super_admin


@pytest.mark.asyncio
async def test_authorize_raises_denial_errors(db_session, seed_identity, seed_tenant):
    tenant_id = await seed_tenant()
    identity_id = await seed_identity(unique_email("denied"), tenant_id=tenant_id)
    gate = RequestGate(db_session)
    identity = await gate.authenticate(issue_access_token(identity_id)[0])

    with pytest.raises(WrongTenant):
        gate.authorize(identity, Action.VIEW, uuid.uuid4())
    with pytest.raises(RoleInsufficient):
        gate.authorize(identity, Action.DELETE, tenant_id)
    with pytest.raises(NoIdentity):
        gate.authorize(None, Action.VIEW)


@pytest.mark.asyncio
async def test_authorize_escape_hatch(db_session, seed_identity, seed_tenant):
    tenant_id = await seed_tenant()
    identity_id = await seed_identity(unique_email("hatch"), tenant_id=tenant_id)
    gate = RequestGate(db_session, school_admin_full_access=True)
    identity = await gate.authenticate(issue_access_token(identity_id)[0])
    ctx = gate.authorize(identity, Action.DELETE, tenant_id)
    assert ctx.tenant_filter == tenant_id
