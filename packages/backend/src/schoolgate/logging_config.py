"""structlog configuration.

Learn: Key-value event logs ("auth.login_succeeded", identity_id=...) with
contextvars merged in, so the request id bound by RequestIdMiddleware shows
up on every line. JSON in production, console rendering in development.
Passwords, hashes and tokens are never passed to the logger.
"""

import logging

import structlog

from schoolgate.config import settings


def configure_logging() -> None:
    level = logging.DEBUG if settings.debug else logging.INFO
    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.environment == "development"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
