"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Authentication is applied per route through dependencies
(get_auth_context, require_access, require_super_admin) rather than at
include_router level, because each route needs the resulting AuthContext
as a value, not just a pass/fail check. Health and the public auth
endpoints (register, login, refresh) are open.
"""

from fastapi import APIRouter

from schoolgate.api.auth import router as auth_router
from schoolgate.api.health import router as health_router
from schoolgate.api.tenants import router as tenants_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])
api_router.include_router(tenants_router, tags=["tenants"])
