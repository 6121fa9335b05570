"""Legacy identity providers — ranked, pluggable read-through sources.

Learn: Pre-existing identity silos keep working unmodified. The resolver
never talks to their tables directly; it walks a ranked list of providers,
each exposing the same small capability set:

- lookup(email)  → LegacyRecord | None   (case-insensitive; soft-deleted records are skipped)
- contains(email) → bool                   (any record, deleted or not)
- mirror(...)                              (registration write-through)

Adding a silo means adding a model + a registry entry; the resolver code
does not change. The order and implied role of each provider come from
settings.legacy_stores.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from schoolgate.config import LegacyStoreConfig, settings
from schoolgate.db.models import ROLES, LegacyAdmin, LegacySchoolAdmin

# Store name → table model
LEGACY_MODELS = {
    "admins": LegacyAdmin,
    "school_admins": LegacySchoolAdmin,
}


@dataclass(frozen=True)
class LegacyRecord:
    """A hashed identity record as found in a legacy store."""

    store: str
    name: Optional[str]
    email: str
    password_hash: str


class LegacyIdentityProvider:
    """One legacy store, bound to a session."""

    def __init__(self, db: AsyncSession, name: str, role: str):
        if name not in LEGACY_MODELS:
            raise ValueError(f"Unknown legacy store: {name}")
        if role not in ROLES:
            raise ValueError(f"Legacy store {name} implies unknown role: {role}")
        self.db = db
        self.name = name
        self.role = role
        self.model = LEGACY_MODELS[name]

    def __repr__(self) -> str:
        return f"LegacyIdentityProvider(name={self.name!r}, role={self.role!r})"

    async def lookup(self, email: str) -> Optional[LegacyRecord]:
        result = await self.db.execute(
            select(self.model).where(
                func.lower(self.model.email) == email,
                self.model.is_deleted.is_(False),
            )
        )
        row = result.scalars().first()
        if row is None:
            return None
        return LegacyRecord(
            store=self.name,
            name=row.name,
            email=row.email,
            password_hash=row.password_hash,
        )

    async def contains(self, email: str) -> bool:
        result = await self.db.execute(
            select(self.model.id).where(func.lower(self.model.email) == email)
        )
        return result.first() is not None

    async def mirror(self, name: str, email: str, password_hash: str) -> None:
        """Write a copy of a canonical identity so this store stays
        independently authenticatable by systems still reading it."""
        self.db.add(
            self.model(
                name=name,
                email=email,
                password_hash=password_hash,
                is_deleted=False,
            )
        )
        await self.db.flush()


def build_providers(
    db: AsyncSession,
    stores: Optional[list[LegacyStoreConfig]] = None,
) -> list[LegacyIdentityProvider]:
    """Build the ranked provider list, highest priority first."""
    stores = settings.legacy_stores if stores is None else stores
    return [LegacyIdentityProvider(db, s.name, s.role) for s in stores]
