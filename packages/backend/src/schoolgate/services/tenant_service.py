"""Tenant service — tenant-scoped reads and status changes for schools.

Learn: Callers pass the tenant_filter from their AuthContext. The service
applies it to every query, so a school admin's filter turns "list schools"
into "list my school" without the handler branching on role.
"""

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from schoolgate.db.engine import bounded
from schoolgate.db.models import Tenant
from schoolgate.errors import NotFound


class TenantService:
    def __init__(self, db: AsyncSession):
        self.db = db

    @bounded
    async def list_tenants(
        self,
        tenant_filter: Optional[uuid.UUID],
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Tenant]:
        q = select(Tenant).order_by(Tenant.created_at.desc()).limit(limit).offset(offset)
        if tenant_filter is not None:
            q = q.where(Tenant.id == tenant_filter)
        if status:
            q = q.where(Tenant.status == status)
        result = await self.db.execute(q)
        return list(result.scalars().all())

    @bounded
    async def get_tenant(self, tenant_id: uuid.UUID) -> Tenant:
        tenant = await self.db.get(Tenant, tenant_id)
        if tenant is None:
            raise NotFound("School not found")
        return tenant

    @bounded
    async def set_status(self, tenant_id: uuid.UUID, status: str) -> Tenant:
        tenant = await self.db.get(Tenant, tenant_id)
        if tenant is None:
            raise NotFound("School not found")
        tenant.status = status
        await self.db.commit()
        return tenant
