"""Error rendering — the one place that knows kind → HTTP status.

Learn: Services raise SchoolGateError subclasses; these handlers turn them
into a single structured failure body:

    {"error": {"kind": "wrong_tenant", "message": "..."}}

Request validation errors from FastAPI/pydantic use the same envelope with
kind "validation_failed" and field-level detail.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from schoolgate.errors import SchoolGateError

logger = structlog.get_logger()

STATUS_BY_KIND = {
    "invalid_credentials": 401,
    "inactive_account": 401,
    "no_identity": 401,
    "identity_gone": 401,
    "token_invalid": 401,
    "token_expired": 401,
    "token_malformed": 401,
    "stale_refresh_token": 401,
    "wrong_tenant": 403,
    "role_insufficient": 403,
    "email_taken": 400,
    "not_found": 404,
    "tenant_already_assigned": 409,
    "validation_failed": 422,
    "store_unavailable": 503,
}


def status_for(error: SchoolGateError) -> int:
    return STATUS_BY_KIND.get(error.kind, 400)


async def schoolgate_error_handler(request: Request, exc: SchoolGateError) -> JSONResponse:
    status_code = status_for(exc)
    headers = {}
    if status_code == 401:
        headers["WWW-Authenticate"] = "Bearer"
    if exc.retryable:
        headers["Retry-After"] = "1"
    if status_code >= 500:
        logger.warning("api.error", kind=exc.kind, path=request.url.path)
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.to_dict()},
        headers=headers,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [
        {
            "field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"),
            "message": err.get("msg", "Invalid value"),
        }
        for err in exc.errors()
    ]
    message = fields[0]["message"] if fields else "Validation failed"
    return JSONResponse(
        status_code=422,
        content={"error": {"kind": "validation_failed", "message": message, "fields": fields}},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SchoolGateError, schoolgate_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
