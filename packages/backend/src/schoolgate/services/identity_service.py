"""Identity service — the identity resolver.

Learn: Reconciles registration and login across the canonical `users` table
and N legacy identity stores into one canonical Identity per email.

Login resolution order:
0. env super admin (escape hatch, only when configured)
1. canonical users row
2. legacy providers, in configured priority order; the first store whose
   record matches the email AND whose hash verifies the password wins and
   is materialized into a canonical row (hash copied, not re-hashed)
3. otherwise InvalidCredentials — the same error for "no such email" and
   "wrong password", so the endpoint cannot be used to enumerate accounts

Materialization is a lazy, idempotent migration: an upsert keyed by email
(INSERT ... ON CONFLICT (email) DO NOTHING, then re-read). Two concurrent
first logins for the same email both end up holding the same row.
"""

import secrets
import uuid
from typing import Optional

import structlog
from sqlalchemy import insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from schoolgate.auth.password import hash_password, needs_upgrade, verify_password
from schoolgate.config import settings
from schoolgate.db.engine import bounded
from schoolgate.db.models import (
    BOARDS,
    ROLE_SCHOOL_ADMIN,
    ROLE_SUPER_ADMIN,
    ROLES,
    Identity,
    Tenant,
    new_uuid,
    utcnow,
)
from schoolgate.errors import (
    EmailTaken,
    InactiveAccount,
    InvalidCredentials,
    NotFound,
    TenantAlreadyAssigned,
    ValidationFailed,
)
from schoolgate.events.store import EventStore
from schoolgate.events.types import (
    IDENTITY_DEACTIVATED,
    IDENTITY_LOGGED_IN,
    IDENTITY_MATERIALIZED,
    IDENTITY_ONBOARDED,
    IDENTITY_PASSWORD_CHANGED,
    IDENTITY_PROFILE_UPDATED,
    IDENTITY_REGISTERED,
    IDENTITY_TENANT_RESET,
    identity_stream,
)
from schoolgate.services.legacy_stores import (
    LegacyIdentityProvider,
    LegacyRecord,
    build_providers,
)

logger = structlog.get_logger()

# Display name used when a legacy record has none
DEFAULT_NAMES = {
    ROLE_SUPER_ADMIN: "Admin",
    ROLE_SCHOOL_ADMIN: "School Admin",
}
ENV_SUPER_ADMIN_NAME = "Super Admin"


def normalize_email(email: str) -> str:
    """Emails are compared case-insensitively; store them lower-cased."""
    return email.strip().lower()


def _sanitize_phone(phone: str) -> str:
    return "".join(ch for ch in str(phone) if ch.isdigit() or ch == "+")


def _upsert_ignore(dialect_name: str):
    """INSERT ... ON CONFLICT DO NOTHING builder for the current dialect."""
    if dialect_name == "postgresql":
        return pg_insert(Identity)
    if dialect_name == "sqlite":
        return sqlite_insert(Identity)
    return None


class IdentityService:
    """Business logic for canonical identities."""

    def __init__(
        self,
        db: AsyncSession,
        providers: Optional[list[LegacyIdentityProvider]] = None,
    ):
        self.db = db
        self.events = EventStore(db)
        self.providers = build_providers(db) if providers is None else providers

    # ─── Lookups ────────────────────────────────────────

    async def get(self, identity_id: uuid.UUID) -> Identity | None:
        """Load an identity with its tenant, bypassing stale identity-map state."""
        result = await self.db.execute(
            select(Identity)
            .where(Identity.id == identity_id)
            .options(selectinload(Identity.tenant))
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def get_by_email(self, email: str) -> Identity | None:
        result = await self.db.execute(
            select(Identity)
            .where(Identity.email == normalize_email(email))
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def _require(self, identity_id: uuid.UUID) -> Identity:
        identity = await self.get(identity_id)
        if identity is None:
            raise NotFound("Identity not found")
        return identity

    def _provider(self, store_name: str) -> LegacyIdentityProvider:
        for provider in self.providers:
            if provider.name == store_name:
                return provider
        raise ValidationFailed(
            "Invalid target store",
            fields=[{"field": "target_store", "message": f"Unknown store: {store_name}"}],
        )

    # ─── Register ───────────────────────────────────────

    @bounded
    async def register(
        self,
        name: str,
        email: str,
        password: str,
        role: str = ROLE_SCHOOL_ADMIN,
        target_store: Optional[str] = None,
    ) -> Identity:
        """Create a canonical identity, optionally mirrored into a legacy store.

        The email must be free canonically and, when a legacy target store is
        named, free in that store too.
        """
        email = normalize_email(email)
        if role not in ROLES:
            raise ValidationFailed(
                "Invalid role", fields=[{"field": "role", "message": "Invalid role"}]
            )
        provider = self._provider(target_store) if target_store else None

        if await self.get_by_email(email) is not None:
            raise EmailTaken()
        if provider is not None and await provider.contains(email):
            raise EmailTaken(f"Email already registered ({provider.name})")

        identity = Identity(
            name=name.strip(),
            email=email,
            password_hash=hash_password(password),
            role=role,
            is_active=True,
        )
        self.db.add(identity)
        try:
            await self.db.flush()
            if provider is not None:
                await provider.mirror(identity.name, email, identity.password_hash)
        except IntegrityError:
            # Lost a race with a concurrent registration of the same email
            await self.db.rollback()
            raise EmailTaken()

        await self.events.append(
            stream_id=identity_stream(identity.id),
            event_type=IDENTITY_REGISTERED,
            data={"role": role, "target_store": target_store},
        )
        await self.db.commit()
        logger.info(
            "auth.registered",
            identity_id=str(identity.id),
            role=role,
            target_store=target_store,
        )
        return identity

    # ─── Login ──────────────────────────────────────────

    @bounded
    async def login(self, email: str, password: str) -> Identity:
        """Resolve an email/password pair to one canonical identity."""
        email = normalize_email(email)

        if self._is_env_super_admin(email, password):
            identity = await self._mirror_env_super_admin(email, password)
        else:
            identity = await self.get_by_email(email)
            if identity is not None:
                self._check_canonical(identity, password)
                if needs_upgrade(identity.password_hash):
                    identity.password_hash = hash_password(password)
                    logger.info("auth.hash_upgraded", identity_id=str(identity.id))
            else:
                identity = await self._resolve_legacy(email, password)

        identity.last_login_at = utcnow()
        await self.events.append(
            stream_id=identity_stream(identity.id),
            event_type=IDENTITY_LOGGED_IN,
            data={},
        )
        await self.db.commit()
        logger.info("auth.login_succeeded", identity_id=str(identity.id), role=identity.role)
        return identity

    def _check_canonical(self, identity: Identity, password: str) -> None:
        if not verify_password(password, identity.password_hash):
            logger.info("auth.login_failed", reason="password_mismatch")
            raise InvalidCredentials()
        # Checked after the password so the inactive state is only revealed
        # to someone holding the right password.
        if not identity.is_active:
            logger.info("auth.login_failed", reason="inactive", identity_id=str(identity.id))
            raise InactiveAccount()

    async def _resolve_legacy(self, email: str, password: str) -> Identity:
        for provider in self.providers:
            record = await provider.lookup(email)
            if record is None:
                continue
            if not verify_password(password, record.password_hash):
                logger.info("auth.legacy_mismatch", store=provider.name)
                continue
            identity, created = await self.materialize(record, provider.role)
            if not created:
                # Another login materialized this email first; its row is
                # now authoritative for the password and the active flag.
                self._check_canonical(identity, password)
            return identity

        logger.info("auth.login_failed", reason="no_match")
        raise InvalidCredentials()

    async def materialize(
        self, record: LegacyRecord, role: str
    ) -> tuple[Identity, bool]:
        """Create (or adopt) the canonical identity for a legacy record.

        Returns (identity, created). Idempotent: when a canonical row for the
        email already exists, e.g. a concurrent login materialized it first,
        that row is returned with created=False and nothing is written.
        """
        email = normalize_email(record.email)
        now = utcnow()
        values = {
            "id": new_uuid(),
            "name": (record.name or DEFAULT_NAMES[role])[:50],
            "email": email,
            "password_hash": record.password_hash,
            "role": role,
            "is_active": True,
            "created_at": now,
            "updated_at": now,
        }

        stmt = _upsert_ignore(self.db.get_bind().dialect.name)
        if stmt is not None:
            result = await self.db.execute(
                stmt.values(**values).on_conflict_do_nothing(index_elements=["email"])
            )
            created = result.rowcount == 1
        else:
            try:
                async with self.db.begin_nested():
                    await self.db.execute(insert(Identity).values(**values))
                created = True
            except IntegrityError:
                created = False

        identity = await self.get_by_email(email)
        if created:
            await self.events.append(
                stream_id=identity_stream(identity.id),
                event_type=IDENTITY_MATERIALIZED,
                data={"store": record.store, "role": role},
            )
            logger.info(
                "auth.materialized",
                identity_id=str(identity.id),
                store=record.store,
                role=role,
            )
        else:
            logger.info("auth.materialize_converged", identity_id=str(identity.id))
        return identity, created

    # ─── Env super admin (escape hatch) ─────────────────

    def _is_env_super_admin(self, email: str, password: str) -> bool:
        env_email = settings.super_admin_email
        env_password = settings.super_admin_password
        if not env_email or not env_password:
            return False
        return normalize_email(env_email) == email and secrets.compare_digest(
            env_password.encode("utf-8"), password.encode("utf-8")
        )

    async def _mirror_env_super_admin(self, email: str, password: str) -> Identity:
        """Upsert the env-configured super admin, re-hashing on every login.

        This path ignores password changes made through the API: the
        environment stays the source of truth for this one account.
        """
        identity = await self.get_by_email(email)
        if identity is None:
            identity = Identity(email=email, name=ENV_SUPER_ADMIN_NAME)
            self.db.add(identity)
        identity.name = ENV_SUPER_ADMIN_NAME
        identity.password_hash = hash_password(password)
        identity.role = ROLE_SUPER_ADMIN
        identity.is_active = True
        await self.db.flush()
        logger.info("auth.env_super_admin_login", identity_id=str(identity.id))
        return identity

    # ─── Onboarding ─────────────────────────────────────

    @bounded
    async def onboard(self, identity_id: uuid.UUID, tenant_attributes: dict) -> Identity:
        """Create the identity's school and attach it, exactly once.

        tenant_attributes keys: school_name (required), and optionally board,
        admin_name, admin_email, admin_phone, school_address, website,
        description. An unknown or missing board is stored as "Other".
        """
        identity = await self._require(identity_id)
        if identity.tenant_id is not None:
            raise TenantAlreadyAssigned()

        board = tenant_attributes.get("board")
        address = tenant_attributes.get("school_address")
        if isinstance(address, str):
            address = {"street": address} if address else None
        admin_name = (tenant_attributes.get("admin_name") or "").strip()

        tenant = Tenant(
            name=tenant_attributes["school_name"].strip(),
            board=board if board in BOARDS else "Other",
            status="active",
            admin_contact={
                "name": admin_name,
                "email": tenant_attributes.get("admin_email"),
                "phone": _sanitize_phone(tenant_attributes.get("admin_phone") or ""),
            },
            address=address,
            website=tenant_attributes.get("website"),
            description=tenant_attributes.get("description"),
        )
        self.db.add(tenant)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise ValidationFailed(
                "School name already exists",
                fields=[{"field": "school_name", "message": "School name already exists"}],
            )

        values = {"tenant_id": tenant.id}
        if admin_name:
            values["name"] = admin_name[:50]
        # Only attach when still unassigned; a concurrent onboarding loses.
        result = await self.db.execute(
            update(Identity)
            .where(Identity.id == identity_id, Identity.tenant_id.is_(None))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            raise TenantAlreadyAssigned()

        await self.events.append(
            stream_id=identity_stream(identity_id),
            event_type=IDENTITY_ONBOARDED,
            data={"tenant_id": str(tenant.id)},
        )
        await self.db.commit()
        logger.info("auth.onboarded", identity_id=str(identity_id), tenant_id=str(tenant.id))
        return await self.get(identity_id)

    @bounded
    async def reset_tenant(self, identity_id: uuid.UUID, actor_id: uuid.UUID) -> Identity:
        """Detach an identity from its school so it can onboard again."""
        identity = await self._require(identity_id)
        previous = identity.tenant_id
        identity.tenant_id = None
        await self.events.append(
            stream_id=identity_stream(identity_id),
            event_type=IDENTITY_TENANT_RESET,
            data={"previous_tenant_id": str(previous) if previous else None},
            metadata={"actor_id": str(actor_id)},
        )
        await self.db.commit()
        logger.info("auth.tenant_reset", identity_id=str(identity_id), actor_id=str(actor_id))
        return await self.get(identity_id)

    # ─── Profile & credentials ──────────────────────────

    @bounded
    async def update_profile(
        self,
        identity_id: uuid.UUID,
        name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Identity:
        identity = await self._require(identity_id)
        changed = []
        if email is not None:
            email = normalize_email(email)
            if email != identity.email:
                if await self.get_by_email(email) is not None:
                    raise EmailTaken("Email is already taken")
                identity.email = email
                changed.append("email")
        if name is not None and name.strip() != identity.name:
            identity.name = name.strip()
            changed.append("name")

        if changed:
            try:
                await self.db.flush()
            except IntegrityError:
                await self.db.rollback()
                raise EmailTaken("Email is already taken")
            await self.events.append(
                stream_id=identity_stream(identity_id),
                event_type=IDENTITY_PROFILE_UPDATED,
                data={"fields": changed},
            )
            await self.db.commit()
        return await self.get(identity_id)

    @bounded
    async def change_password(
        self, identity_id: uuid.UUID, current_password: str, new_password: str
    ) -> None:
        """Replace the password; every outstanding session is invalidated.

        Access tokens issued before the change are rejected by the request
        gate (password_changed_at), and the stored refresh token is cleared.
        """
        identity = await self._require(identity_id)
        if not verify_password(current_password, identity.password_hash):
            raise InvalidCredentials("Current password is incorrect")
        identity.password_hash = hash_password(new_password)
        identity.password_changed_at = utcnow()
        identity.refresh_token = None
        await self.events.append(
            stream_id=identity_stream(identity_id),
            event_type=IDENTITY_PASSWORD_CHANGED,
            data={},
        )
        await self.db.commit()
        logger.info("auth.password_changed", identity_id=str(identity_id))

    @bounded
    async def deactivate(self, identity_id: uuid.UUID, actor_id: uuid.UUID) -> Identity:
        identity = await self._require(identity_id)
        identity.is_active = False
        identity.refresh_token = None
        await self.events.append(
            stream_id=identity_stream(identity_id),
            event_type=IDENTITY_DEACTIVATED,
            data={},
            metadata={"actor_id": str(actor_id)},
        )
        await self.db.commit()
        logger.info("auth.deactivated", identity_id=str(identity_id), actor_id=str(actor_id))
        return await self.get(identity_id)

    # ─── Provisioning ───────────────────────────────────

    @bounded
    async def ensure_super_admin(
        self, name: str, email: str, password: str
    ) -> tuple[Identity, bool]:
        """Create a super admin unless the email already exists.

        Returns (identity, created). An existing identity is left untouched.
        """
        existing = await self.get_by_email(email)
        if existing is not None:
            return existing, False
        identity = Identity(
            name=name,
            email=normalize_email(email),
            password_hash=hash_password(password),
            role=ROLE_SUPER_ADMIN,
            is_active=True,
        )
        self.db.add(identity)
        await self.db.flush()
        await self.events.append(
            stream_id=identity_stream(identity.id),
            event_type=IDENTITY_REGISTERED,
            data={"role": ROLE_SUPER_ADMIN, "source": "cli"},
        )
        await self.db.commit()
        return identity, True
