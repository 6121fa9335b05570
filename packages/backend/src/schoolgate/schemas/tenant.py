"""Pydantic schemas for tenants (schools)."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class TenantSummary(BaseModel):
    id: uuid.UUID
    name: str
    board: str
    status: str

    model_config = {"from_attributes": True}


class TenantRead(TenantSummary):
    admin_contact: dict
    address: Optional[dict] = None
    website: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime


class TenantStatusUpdate(BaseModel):
    status: str = Field(..., pattern=r"^(active|inactive|pending)$")
