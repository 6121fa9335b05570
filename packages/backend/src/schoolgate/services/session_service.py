"""Session service — the stateful half of the session issuer.

Learn: Access tokens are fully stateless (auth/jwt.py). Refresh tokens are
single-session: the identity row stores the one live refresh token, and a
presented refresh token is honored only if it matches that stored value
exactly.

Rotation is a compare-and-swap done in ONE conditional UPDATE:

    UPDATE users SET refresh_token = :new
    WHERE id = :id AND refresh_token = :presented AND is_active

If two refresh calls race with the same token, the database lets exactly
one of them match; the loser sees zero affected rows and gets
StaleRefreshToken. Replaying an old refresh token fails the same way.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from schoolgate.auth.jwt import (
    issue_access_token,
    issue_refresh_token,
    verify_refresh_token,
)
from schoolgate.db.engine import bounded
from schoolgate.db.models import Identity
from schoolgate.errors import StaleRefreshToken
from schoolgate.events.store import EventStore
from schoolgate.events.types import (
    IDENTITY_LOGGED_OUT,
    SESSION_ROTATED,
    identity_stream,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    access_expires_at: datetime
    refresh_token: str
    refresh_expires_at: datetime


def mint_token_pair(identity_id: uuid.UUID) -> TokenPair:
    access, access_exp = issue_access_token(identity_id)
    refresh, refresh_exp = issue_refresh_token(identity_id)
    return TokenPair(
        access_token=access,
        access_expires_at=access_exp,
        refresh_token=refresh,
        refresh_expires_at=refresh_exp,
    )


class SessionService:
    """Issue, rotate and revoke session token pairs."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.events = EventStore(db)

    @bounded
    async def start_session(self, identity: Identity) -> TokenPair:
        """Issue a fresh pair and make its refresh token the only live one.

        Any refresh token issued earlier for this identity stops working.
        """
        pair = mint_token_pair(identity.id)
        identity.refresh_token = pair.refresh_token
        await self.db.commit()
        return pair

    @bounded
    async def rotate(self, presented_refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new pair, invalidating the old one.

        Raises TokenExpired / TokenMalformed for bad tokens and
        StaleRefreshToken when the token is no longer the stored one.
        """
        claims = verify_refresh_token(presented_refresh_token)
        pair = mint_token_pair(claims.identity_id)

        result = await self.db.execute(
            update(Identity)
            .where(
                Identity.id == claims.identity_id,
                Identity.refresh_token == presented_refresh_token,
                Identity.is_active.is_(True),
            )
            .values(refresh_token=pair.refresh_token)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            logger.warning("auth.refresh_stale", identity_id=str(claims.identity_id))
            raise StaleRefreshToken()

        await self.events.append(
            stream_id=identity_stream(claims.identity_id),
            event_type=SESSION_ROTATED,
            data={"refresh_expires_at": pair.refresh_expires_at.isoformat()},
        )
        await self.db.commit()
        logger.info("auth.refresh_rotated", identity_id=str(claims.identity_id))
        return pair

    @bounded
    async def revoke(self, identity_id: uuid.UUID) -> None:
        """Clear the stored refresh token (logout).

        Outstanding access tokens stay valid until they expire.
        """
        await self.db.execute(
            update(Identity)
            .where(Identity.id == identity_id)
            .values(refresh_token=None)
            .execution_options(synchronize_session=False)
        )
        await self.events.append(
            stream_id=identity_stream(identity_id),
            event_type=IDENTITY_LOGGED_OUT,
            data={},
        )
        await self.db.commit()
        logger.info("auth.logged_out", identity_id=str(identity_id))
