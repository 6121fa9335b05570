"""Tenant (school) API routes.

Learn: Thin handlers that show how business routes consume the request
gate. Each route declares the action it performs via require_access();
the returned AuthContext carries the tenant filter the handler must apply.
A school admin listing schools sees only their own; asking for another
school's id is a 403 before the handler runs.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from schoolgate.auth.dependencies import AuthContext, require_access
from schoolgate.auth.policy import Action
from schoolgate.db.engine import get_db
from schoolgate.schemas.tenant import TenantRead, TenantStatusUpdate
from schoolgate.services.tenant_service import TenantService

router = APIRouter(prefix="/tenants")


def _svc(db: AsyncSession = Depends(get_db)) -> TenantService:
    return TenantService(db)


@router.get("", response_model=list[TenantRead])
async def list_tenants(
    tenant_id: Optional[uuid.UUID] = None,
    status: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ctx: AuthContext = Depends(require_access(Action.VIEW)),
    svc: TenantService = Depends(_svc),
):
    """List schools visible to the caller (optionally one, via ?tenant_id=)."""
    return await svc.list_tenants(ctx.tenant_filter, status=status, limit=limit, offset=offset)


@router.get("/{tenant_id}", response_model=TenantRead)
async def get_tenant(
    tenant_id: uuid.UUID,
    ctx: AuthContext = Depends(require_access(Action.VIEW)),
    svc: TenantService = Depends(_svc),
):
    return await svc.get_tenant(tenant_id)


@router.patch("/{tenant_id}/status", response_model=TenantRead)
async def update_tenant_status(
    tenant_id: uuid.UUID,
    body: TenantStatusUpdate,
    ctx: AuthContext = Depends(require_access(Action.UPDATE)),
    svc: TenantService = Depends(_svc),
):
    return await svc.set_status(tenant_id, body.status)
