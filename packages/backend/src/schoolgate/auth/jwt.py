"""JWT token creation and verification — the stateless half of the session issuer.

Learn: JWT (JSON Web Token) provides stateless authentication.
- Access token: 7 days by default, signed with the access secret
- Refresh token: 30 days by default, signed with a DISTINCT refresh secret

Any process holding the access secret can verify an access token without a
store lookup. Refresh tokens additionally have to match the value stored on
the identity (see services/session_service.py) — that part is stateful.

Claims: sub (identity id), type, iat, exp, jti. The jti makes every token
unique even when two are minted within the same second, which matters for
the compare-and-swap on the stored refresh token.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from schoolgate.config import settings
from schoolgate.errors import TokenExpired, TokenMalformed

ACCESS = "access"
REFRESH = "refresh"


@dataclass(frozen=True)
class TokenClaims:
    identity_id: uuid.UUID
    token_type: str
    issued_at: datetime
    expires_at: datetime


def _secret_for(token_type: str) -> str:
    if token_type == REFRESH:
        return settings.refresh_token_secret
    return settings.access_token_secret


def _issue(
    identity_id: uuid.UUID | str,
    token_type: str,
    lifetime: timedelta,
    now: Optional[datetime] = None,
) -> tuple[str, datetime]:
    issued_at = now or datetime.now(timezone.utc)
    expires_at = issued_at + lifetime
    payload = {
        "sub": str(identity_id),
        "type": token_type,
        "iat": issued_at,
        "exp": expires_at,
        "jti": uuid.uuid4().hex,
    }
    token = jwt.encode(payload, _secret_for(token_type), algorithm=settings.jwt_algorithm)
    return token, expires_at


def issue_access_token(
    identity_id: uuid.UUID | str,
    expires_minutes: Optional[int] = None,
    now: Optional[datetime] = None,
) -> tuple[str, datetime]:
    """Create a signed access token. Returns (token, expires_at)."""
    if expires_minutes is None:
        expires_minutes = settings.access_token_expire_minutes
    lifetime = timedelta(minutes=expires_minutes)
    return _issue(identity_id, ACCESS, lifetime, now)


def issue_refresh_token(
    identity_id: uuid.UUID | str,
    expires_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> tuple[str, datetime]:
    """Create a signed refresh token. Returns (token, expires_at)."""
    if expires_days is None:
        expires_days = settings.refresh_token_expire_days
    lifetime = timedelta(days=expires_days)
    return _issue(identity_id, REFRESH, lifetime, now)


def _verify(token: str, token_type: str) -> TokenClaims:
    try:
        payload = jwt.decode(
            token,
            _secret_for(token_type),
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp", "iat"]},
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpired()
    except jwt.InvalidTokenError:
        raise TokenMalformed()

    if payload.get("type") != token_type:
        raise TokenMalformed()
    try:
        identity_id = uuid.UUID(payload["sub"])
    except (ValueError, TypeError, AttributeError):
        raise TokenMalformed()

    return TokenClaims(
        identity_id=identity_id,
        token_type=token_type,
        issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
    )


def verify_access_token(token: str) -> TokenClaims:
    """Verify an access token. Raises TokenExpired or TokenMalformed."""
    return _verify(token, ACCESS)


def verify_refresh_token(token: str) -> TokenClaims:
    """Verify a refresh token. Raises TokenExpired or TokenMalformed."""
    return _verify(token, REFRESH)
