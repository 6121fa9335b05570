"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (database engine).
Middleware, CORS, error handlers and routers are all registered here.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from schoolgate import __version__
from schoolgate.api import api_router
from schoolgate.api.errors import register_error_handlers
from schoolgate.config import settings
from schoolgate.logging_config import configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info(
        "schoolgate.starting",
        version=__version__,
        environment=settings.environment,
        legacy_stores=[s.name for s in settings.legacy_stores],
        school_admin_full_access=settings.school_admin_full_access,
    )
    if settings.school_admin_full_access:
        logger.warning("schoolgate.school_admin_full_access_enabled")
    if settings.super_admin_email:
        logger.warning("schoolgate.env_super_admin_enabled")

    yield

    logger.info("schoolgate.shutdown")
    from schoolgate.db.engine import engine
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    configure_logging()
    app = FastAPI(
        title="SchoolGate",
        description="Authentication & authorization core for multi-tenant school administration",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → Security → RequestId → handler

    from schoolgate.middleware.request_id import RequestIdMiddleware
    from schoolgate.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    app.include_router(api_router)
    return app


# Default app instance (used by uvicorn: schoolgate.main:app)
app = create_app()
