"""SQLAlchemy ORM models — single source of truth for the database schema.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Each class = one table. Alembic migrations mirror these definitions.

Key concepts:
- UUID primary keys (generic Uuid type: native on PostgreSQL, CHAR on SQLite)
- Canonical identities live in `users`; legacy identity stores are separate
  tables with their own historical shape and are only read (plus the
  registration mirror write)
- Emails are stored lower-cased; the unique constraint on users.email is what
  serializes concurrent first logins of the same legacy identity
- Python-side defaults for timestamps so freshly flushed rows never need a
  lazy refresh in async code
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


# JSONB on PostgreSQL, plain JSON elsewhere (tests run on SQLite)
JsonType = JSON().with_variant(JSONB(), "postgresql")

ROLE_SUPER_ADMIN = "super_admin"
ROLE_SCHOOL_ADMIN = "school_admin"
ROLES = (ROLE_SUPER_ADMIN, ROLE_SCHOOL_ADMIN)

TENANT_STATUSES = ("active", "inactive", "pending")
BOARDS = ("CBSE", "ICSE", "State Board", "IB", "Cambridge", "Other")


# ══════════════════════════════════════════════════════════════
# Tenants and canonical identities
# ══════════════════════════════════════════════════════════════


class Tenant(Base):
    """A school. The isolation boundary for school admins.

    Learn: Identities reference a tenant by id, never embed it. A
    school_admin's visibility is exactly its tenant_id.
    """

    __tablename__ = "tenants"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    board: Mapped[str] = mapped_column(String(30), nullable=False, default="Other")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    admin_contact: Mapped[dict] = mapped_column(JsonType, nullable=False, default=dict)
    address: Mapped[Optional[dict]] = mapped_column(JsonType, nullable=True)
    website: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    identities: Mapped[list["Identity"]] = relationship(back_populates="tenant")


class Identity(Base):
    """Canonical user record — the system of record after reconciliation.

    Learn: Exactly one row per email. Legacy stores are consulted only
    when no canonical row exists yet; once materialized, this row wins.
    refresh_token holds the single live refresh credential (single-session
    refresh model); rotation compares-and-swaps it.
    """

    __tablename__ = "users"
    __table_args__ = (Index("idx_users_tenant", "tenant_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ROLE_SCHOOL_ADMIN
    )
    tenant_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("tenants.id"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    password_changed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_login_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    tenant: Mapped[Optional["Tenant"]] = relationship(back_populates="identities")


# ══════════════════════════════════════════════════════════════
# Legacy identity stores (read-through sources)
# ══════════════════════════════════════════════════════════════


class _LegacyIdentityColumns:
    """Shared shape of the pre-existing identity silos.

    Learn: Both silos hold {name, email, password hash, soft-delete flag}.
    Their hashes may be bcrypt or the old salted SHA-256 format; the
    resolver copies them verbatim on materialization.
    """

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column("password", String(255), nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )


class LegacyAdmin(_LegacyIdentityColumns, Base):
    """Company admins silo. Identities found here become super admins."""

    __tablename__ = "legacy_admins"


class LegacySchoolAdmin(_LegacyIdentityColumns, Base):
    """School admins silo. Identities found here become school admins."""

    __tablename__ = "legacy_school_admins"


# ══════════════════════════════════════════════════════════════
# Audit log
# ══════════════════════════════════════════════════════════════


class AuthEvent(Base):
    """Append-only log of identity and session events.

    stream_id examples: "identity:<uuid>"
    type examples: "identity.materialized", "session.rotated"
    """

    __tablename__ = "auth_events"
    __table_args__ = (
        Index("idx_auth_events_stream", "stream_id", "id"),
        Index("idx_auth_events_type", "type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    stream_id: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    data: Mapped[dict] = mapped_column(JsonType, nullable=False, default=dict)
    meta: Mapped[dict] = mapped_column(
        "metadata", JsonType, nullable=False, default=dict
    )
    # Note: Python attr is "meta" because "metadata" is reserved by SQLAlchemy.
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
