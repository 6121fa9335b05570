"""Event store — append-only audit log of identity and session changes.

Learn: Every security-relevant change (registration, materialization,
login, onboarding, rotation, logout) is appended as an immutable event.
The users table stays the system of record; the log answers "who did what,
when" for super admins. Event data never contains secrets.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from schoolgate.db.models import AuthEvent


class EventStore:
    """Append-only event store backed by the auth_events table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(
        self,
        stream_id: str,
        event_type: str,
        data: dict,
        metadata: dict | None = None,
    ) -> AuthEvent:
        """Append an event to a stream. Returns the created event."""
        event = AuthEvent(
            stream_id=stream_id,
            type=event_type,
            data=data,
            meta=metadata or {},
        )
        self.db.add(event)
        await self.db.flush()  # get the auto-generated id
        return event

    async def read_stream(
        self,
        stream_id: str,
        after_id: int = 0,
        limit: int = 100,
    ) -> list[AuthEvent]:
        """Read events for a specific stream, optionally after a given position."""
        result = await self.db.execute(
            select(AuthEvent)
            .where(AuthEvent.stream_id == stream_id, AuthEvent.id > after_id)
            .order_by(AuthEvent.id)
            .limit(limit)
        )
        return list(result.scalars().all())
