"""Auth API — registration, login, onboarding, session lifecycle.

Learn: Routes for the identity lifecycle:
- POST /auth/register → canonical identity (+ optional legacy mirror) + tokens
- POST /auth/login → resolve across stores → tokens
- POST /auth/onboarding → create the caller's school, exactly once
- POST /auth/refresh → rotate the refresh token (single session)
- POST /auth/logout → clear the stored refresh token
- GET /auth/me → current identity with its school
- PUT /auth/profile, PUT /auth/change-password
- Super admin only: reset-tenant, deactivate, audit events

Routes handle HTTP concerns only; the services raise SchoolGateError
subclasses which api/errors.py renders.
"""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from schoolgate.auth.dependencies import (
    AuthContext,
    get_auth_context,
    require_super_admin,
)
from schoolgate.db.engine import get_db
from schoolgate.events.store import EventStore
from schoolgate.events.types import identity_stream
from schoolgate.schemas.auth import (
    AuthEventRead,
    IdentityRead,
    LoginRequest,
    MeRead,
    OnboardingRequest,
    OnboardingResponse,
    PasswordChange,
    ProfileUpdate,
    RefreshRequest,
    RegisterRequest,
    SessionResponse,
    TokenResponse,
)
from schoolgate.services.identity_service import IdentityService
from schoolgate.services.session_service import SessionService, TokenPair

router = APIRouter(prefix="/auth")


def _identities(db: AsyncSession = Depends(get_db)) -> IdentityService:
    return IdentityService(db)


def _sessions(db: AsyncSession = Depends(get_db)) -> SessionService:
    return SessionService(db)


def _tokens(pair: TokenPair) -> dict:
    return {
        "access_token": pair.access_token,
        "refresh_token": pair.refresh_token,
        "access_expires_at": pair.access_expires_at,
        "refresh_expires_at": pair.refresh_expires_at,
    }


# ─── Register / Login ───────────────────────────────────


@router.post("/register", response_model=SessionResponse, status_code=201)
async def register(
    body: RegisterRequest,
    identities: IdentityService = Depends(_identities),
    sessions: SessionService = Depends(_sessions),
):
    """Create an account and start its first session."""
    identity = await identities.register(
        name=body.name,
        email=body.email,
        password=body.password,
        role=body.role,
        target_store=body.target_store,
    )
    pair = await sessions.start_session(identity)
    return {"identity": identity, **_tokens(pair)}


@router.post("/login", response_model=SessionResponse)
async def login(
    body: LoginRequest,
    identities: IdentityService = Depends(_identities),
    sessions: SessionService = Depends(_sessions),
):
    """Login with email and password → identity + JWT pair."""
    identity = await identities.login(body.email, body.password)
    pair = await sessions.start_session(identity)
    return {"identity": identity, **_tokens(pair)}


# ─── Sessions ───────────────────────────────────────────


@router.post("/refresh", response_model=TokenResponse)
async def refresh(body: RefreshRequest, sessions: SessionService = Depends(_sessions)):
    """Exchange the current refresh token for a new pair.

    The presented token stops working immediately; replaying it is a 401.
    """
    pair = await sessions.rotate(body.refresh_token)
    return _tokens(pair)


@router.post("/logout")
async def logout(
    ctx: AuthContext = Depends(get_auth_context),
    sessions: SessionService = Depends(_sessions),
):
    await sessions.revoke(ctx.identity_id)
    return {"ok": True}


# ─── Current identity ───────────────────────────────────


@router.get("/me", response_model=MeRead)
async def get_me(ctx: AuthContext = Depends(get_auth_context)):
    """Get the current authenticated identity and its school."""
    return ctx.identity


@router.post("/onboarding", response_model=OnboardingResponse)
async def onboarding(
    body: OnboardingRequest,
    ctx: AuthContext = Depends(get_auth_context),
    identities: IdentityService = Depends(_identities),
):
    """Create the caller's school and attach it to the account (one-shot)."""
    identity = await identities.onboard(ctx.identity_id, body.model_dump())
    return {"identity": identity}


@router.put("/profile", response_model=IdentityRead)
async def update_profile(
    body: ProfileUpdate,
    ctx: AuthContext = Depends(get_auth_context),
    identities: IdentityService = Depends(_identities),
):
    return await identities.update_profile(ctx.identity_id, name=body.name, email=body.email)


@router.put("/change-password")
async def change_password(
    body: PasswordChange,
    ctx: AuthContext = Depends(get_auth_context),
    identities: IdentityService = Depends(_identities),
):
    """Change the password. All sessions, including this one, must log in again."""
    await identities.change_password(
        ctx.identity_id, body.current_password, body.new_password
    )
    return {"ok": True}


# ─── Super admin ────────────────────────────────────────


@router.post("/identities/{identity_id}/reset-tenant", response_model=IdentityRead)
async def reset_tenant(
    identity_id: uuid.UUID,
    ctx: AuthContext = Depends(require_super_admin),
    identities: IdentityService = Depends(_identities),
):
    """Detach an identity from its school so it can onboard again."""
    return await identities.reset_tenant(identity_id, actor_id=ctx.identity_id)


@router.post("/identities/{identity_id}/deactivate", response_model=IdentityRead)
async def deactivate(
    identity_id: uuid.UUID,
    ctx: AuthContext = Depends(require_super_admin),
    identities: IdentityService = Depends(_identities),
):
    return await identities.deactivate(identity_id, actor_id=ctx.identity_id)


@router.get("/identities/{identity_id}/events", response_model=list[AuthEventRead])
async def identity_events(
    identity_id: uuid.UUID,
    after_id: int = 0,
    limit: int = 100,
    ctx: AuthContext = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db),
):
    """Audit trail for one identity."""
    return await EventStore(db).read_stream(
        identity_stream(identity_id), after_id=after_id, limit=min(limit, 500)
    )
