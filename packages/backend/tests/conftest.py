"""Test fixtures — a fresh in-memory database per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. The environment is pointed at SQLite (aiosqlite) BEFORE schoolgate is
   imported, because settings and the engine are module-level singletons.
2. Each test gets its own engine on `sqlite+aiosqlite:///:memory:` with a
   StaticPool, so every session in the test shares one connection and
   therefore one database. Tables are created from the ORM metadata.
3. The app's get_db is overridden to hand out a NEW session per request
   from that engine, just like production. Services really commit.
4. When the test ends the engine is disposed and the database vanishes.

bcrypt rounds are dropped to the minimum so hashing doesn't dominate runtime.
"""

import os

os.environ["SCHOOLGATE_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SCHOOLGATE_BCRYPT_ROUNDS"] = "4"
os.environ["SCHOOLGATE_ACCESS_TOKEN_SECRET"] = "test-access-secret"
os.environ["SCHOOLGATE_REFRESH_TOKEN_SECRET"] = "test-refresh-secret"
os.environ.pop("SCHOOLGATE_SUPER_ADMIN_EMAIL", None)
os.environ.pop("SCHOOLGATE_SUPER_ADMIN_PASSWORD", None)

import uuid  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, StaticPool  # noqa: E402

from schoolgate.auth.password import hash_password  # noqa: E402
from schoolgate.db.engine import get_db  # noqa: E402
from schoolgate.db.models import (  # noqa: E402
    Base,
    Identity,
    LegacyAdmin,
    LegacySchoolAdmin,
    Tenant,
)
from schoolgate.main import app  # noqa: E402

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

LEGACY_TABLES = {
    "admins": LegacyAdmin,
    "school_admins": LegacySchoolAdmin,
}


def unique_email(prefix: str = "user", domain: str = "school.org") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}@{domain}"


@pytest_asyncio.fixture()
async def db_engine():
    engine = create_async_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def file_session_factory(tmp_path):
    """Sessions on separate connections to a SQLite file.

    Learn: The in-memory engine funnels every session through one
    connection, so it cannot show two transactions racing. Here each
    session gets its own connection and SQLite's write lock decides
    who goes first.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'race.db'}", poolclass=NullPool
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture()
async def db_session(session_factory):
    """Session for service-level tests and for seeding/inspecting data."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture()
async def client(session_factory):
    """HTTP client against the real app with only get_db overridden.

    Learn: There is no auth override. Tests that need an authenticated
    caller register or log in and send the returned bearer token, so the
    full request gate runs on every call.
    """

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ─── Seeding helpers ────────────────────────────────────


def _legacy_seeder(session_factory):
    async def _seed(store, email, password_hash, name="Legacy User", is_deleted=False):
        model = LEGACY_TABLES[store]
        async with session_factory() as session:
            session.add(
                model(
                    name=name,
                    email=email,
                    password_hash=password_hash,
                    is_deleted=is_deleted,
                )
            )
            await session.commit()

    return _seed


@pytest.fixture()
def seed_legacy(session_factory):
    """Insert a record into a legacy identity store.

    Usage: await seed_legacy("school_admins", email, password_hash, name=...)
    """
    return _legacy_seeder(session_factory)


@pytest.fixture()
def seed_file_legacy(file_session_factory):
    return _legacy_seeder(file_session_factory)


@pytest.fixture()
def seed_identity(session_factory):
    """Insert a canonical identity directly, bypassing the resolver.

    Returns the new identity id.
    """

    async def _seed(
        email,
        password="secret1",
        role="school_admin",
        tenant_id=None,
        is_active=True,
        name="Seeded User",
        password_hash=None,
    ):
        async with session_factory() as session:
            identity = Identity(
                name=name,
                email=email,
                password_hash=password_hash or hash_password(password),
                role=role,
                tenant_id=tenant_id,
                is_active=is_active,
            )
            session.add(identity)
            await session.commit()
            return identity.id

    return _seed


@pytest.fixture()
def seed_tenant(session_factory):
    """Insert a tenant (school) and return its id."""

    async def _seed(name=None, status="active"):
        async with session_factory() as session:
            tenant = Tenant(
                name=name or f"School {uuid.uuid4().hex[:6]}",
                board="CBSE",
                status=status,
                admin_contact={},
            )
            session.add(tenant)
            await session.commit()
            return tenant.id

    return _seed


@pytest.fixture()
def login_as(client):
    """Log in through the API and return (access_token, body)."""

    async def _login(email, password="secret1"):
        r = await client.post(
            "/api/v1/auth/login", json={"email": email, "password": password}
        )
        assert r.status_code == 200, r.text
        body = r.json()
        return body["access_token"], body

    return _login


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
