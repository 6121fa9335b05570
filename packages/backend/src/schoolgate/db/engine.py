"""Async SQLAlchemy engine, session factory, and store-call guard.

Learn: SQLAlchemy 2.0 async mode — create_async_engine for connection pooling,
AsyncSession for per-request database access, dependency injection via FastAPI.

Store lookups are the only suspension points in the auth core. `bounded`
wraps a service coroutine with the configured store timeout and turns
timeouts and lost connections into StoreUnavailable, so callers get a
retryable error instead of a hanging request.
"""

import asyncio
import functools

import structlog
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from schoolgate.config import settings
from schoolgate.errors import StoreUnavailable

logger = structlog.get_logger()


def _engine_kwargs(url: str) -> dict:
    # Connection pool: min 5, max 20 connections on server databases.
    # SQLite (tests, local dev) manages its own pool.
    if url.startswith("sqlite"):
        return {}
    return {"pool_size": 5, "max_overflow": 15, "pool_pre_ping": True}


engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    **_engine_kwargs(settings.database_url),
)

# Session factory — each request gets its own session.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncSession:
    """FastAPI dependency — yields a session per request, auto-closes."""
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


def bounded(func):
    """Bound an async store operation by `store_timeout_seconds`.

    Timeouts and connection-level database errors become StoreUnavailable.
    Everything else (including SchoolGateError subclasses) propagates as is.
    """

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await asyncio.wait_for(
                func(*args, **kwargs), timeout=settings.store_timeout_seconds
            )
        except asyncio.TimeoutError as e:
            logger.warning("store.timeout", operation=func.__qualname__)
            raise StoreUnavailable() from e
        except (OperationalError, InterfaceError) as e:
            logger.warning(
                "store.unavailable",
                operation=func.__qualname__,
                error_type=type(e).__name__,
            )
            raise StoreUnavailable() from e

    return wrapper
