"""Request gate — FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers. The gate composes
the three auth pieces and hands the handler an explicit AuthContext:

    bearer token ──verify_access_token──▶ identity id
                 ──load from store──────▶ Identity (must exist, be active)
                 ──policy.authorize─────▶ AuthContext(identity, tenant_filter)

The gate never touches business records. Handlers receive the context as a
parameter and apply `tenant_filter` to their own queries.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from schoolgate.auth.jwt import verify_access_token
from schoolgate.auth.policy import Action, DenyReason, authorize
from schoolgate.config import settings
from schoolgate.db.engine import bounded, get_db
from schoolgate.db.models import ROLE_SUPER_ADMIN, Identity
from schoolgate.errors import (
    IdentityGone,
    NoIdentity,
    RoleInsufficient,
    TokenMalformed,
    ValidationFailed,
    WrongTenant,
)
from schoolgate.services.identity_service import IdentityService

logger = structlog.get_logger()

_DENIALS = {
    DenyReason.NO_IDENTITY: NoIdentity,
    DenyReason.WRONG_TENANT: WrongTenant,
    DenyReason.ROLE_INSUFFICIENT: RoleInsufficient,
}


@dataclass(frozen=True)
class AuthContext:
    """The authenticated, authorized identity behind a request.

    tenant_filter is the tenant downstream queries must be scoped to;
    None means unbounded (super admins without a requested tenant).
    """

    identity: Identity
    tenant_filter: Optional[uuid.UUID] = None

    @property
    def identity_id(self) -> uuid.UUID:
        return self.identity.id

    @property
    def is_super_admin(self) -> bool:
        return self.identity.role == ROLE_SUPER_ADMIN


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class RequestGate:
    """authenticate() + authorize(), independent of FastAPI."""

    def __init__(self, db: AsyncSession, school_admin_full_access: Optional[bool] = None):
        self.identities = IdentityService(db, providers=[])
        if school_admin_full_access is None:
            school_admin_full_access = settings.school_admin_full_access
        self.school_admin_full_access = school_admin_full_access

    @bounded
    async def authenticate(self, raw_credential: Optional[str]) -> Identity:
        """Turn a raw access token into a live identity.

        Raises NoIdentity (no token), TokenExpired / TokenMalformed (bad
        token) or IdentityGone (deleted or deactivated identity).
        """
        if not raw_credential:
            raise NoIdentity()
        claims = verify_access_token(raw_credential)

        identity = await self.identities.get(claims.identity_id)
        if identity is None or not identity.is_active:
            logger.info("auth.identity_gone", identity_id=str(claims.identity_id))
            raise IdentityGone()

        # Tokens minted before the last password change are dead. iat has
        # second precision, so compare at that precision.
        if identity.password_changed_at is not None:
            changed_at = _as_utc(identity.password_changed_at).replace(microsecond=0)
            if claims.issued_at < changed_at:
                raise TokenMalformed("Token predates the last password change")

        return identity

    def authorize(
        self,
        identity: Optional[Identity],
        action: Action,
        requested_tenant_id: Optional[uuid.UUID] = None,
    ) -> AuthContext:
        decision = authorize(
            identity,
            action,
            requested_tenant_id,
            school_admin_full_access=self.school_admin_full_access,
        )
        if not decision.allowed:
            logger.info(
                "auth.denied",
                reason=decision.reason.value,
                action=Action(action).value,
                identity_id=str(identity.id) if identity else None,
            )
            raise _DENIALS[decision.reason]()
        return AuthContext(identity=identity, tenant_filter=decision.tenant_filter)


# ─── FastAPI dependencies ───────────────────────────────


def bearer_token(authorization: Optional[str] = Header(None)) -> Optional[str]:
    """Extract the token from an `Authorization: Bearer <token>` header."""
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip() or None
    return None


def get_gate(db: AsyncSession = Depends(get_db)) -> RequestGate:
    return RequestGate(db)


async def get_current_identity(
    token: Optional[str] = Depends(bearer_token),
    gate: RequestGate = Depends(get_gate),
) -> Identity:
    """Authenticated identity (required — NoIdentity if no token)."""
    return await gate.authenticate(token)


async def get_auth_context(
    identity: Identity = Depends(get_current_identity),
) -> AuthContext:
    """Authenticated but not tenant-scoped; for the caller's own account."""
    return AuthContext(identity=identity)


def _parse_tenant_id(raw: Optional[str]) -> Optional[uuid.UUID]:
    if not raw:
        return None
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise ValidationFailed(
            "Invalid tenant id",
            fields=[{"field": "tenant_id", "message": "Must be a UUID"}],
        )


def require_access(action: Action):
    """Dependency factory: authenticate, then authorize `action`.

    The requested tenant is read from the `tenant_id` path parameter, or
    the `tenant_id` query parameter when the path has none.
    """

    async def dependency(
        request: Request,
        identity: Identity = Depends(get_current_identity),
        gate: RequestGate = Depends(get_gate),
    ) -> AuthContext:
        raw = request.path_params.get("tenant_id") or request.query_params.get("tenant_id")
        return gate.authorize(identity, action, _parse_tenant_id(raw))

    return dependency


async def require_super_admin(
    identity: Identity = Depends(get_current_identity),
) -> AuthContext:
    ctx = AuthContext(identity=identity)
    if not ctx.is_super_admin:
        raise RoleInsufficient("Access denied. Super admin privileges required.")
    return ctx
