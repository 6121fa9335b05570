"""Pydantic schemas for registration, login, sessions and identities.

Learn: Pydantic v2 models validate request/response data. Separate
request schemas (input) from "Read" schemas (output). IdentityRead has no
password_hash or refresh_token field, so those can never leak into a
response.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from schoolgate.schemas.tenant import TenantSummary


# ─── Requests ───────────────────────────────────────────

class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: str = Field(default="school_admin", pattern=r"^(super_admin|school_admin)$")
    target_store: Optional[str] = Field(
        None, description="Also mirror the identity into this legacy store"
    )


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class OnboardingRequest(BaseModel):
    school_name: str = Field(..., min_length=1, max_length=200)
    board: Optional[str] = None
    admin_name: Optional[str] = Field(None, max_length=100)
    admin_email: Optional[EmailStr] = None
    admin_phone: Optional[str] = None
    school_address: Optional[str | dict] = None
    website: Optional[str] = Field(None, max_length=500)
    description: Optional[str] = Field(None, max_length=1000)


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    email: Optional[EmailStr] = None


class PasswordChange(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


# ─── Responses ──────────────────────────────────────────

class IdentityRead(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    role: str
    tenant_id: Optional[uuid.UUID] = None
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class MeRead(IdentityRead):
    """Current identity plus a summary of its school."""
    tenant: Optional[TenantSummary] = None


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    access_expires_at: datetime
    refresh_expires_at: datetime


class SessionResponse(TokenResponse):
    """Login/registration result: identity plus a fresh token pair."""
    identity: IdentityRead


class OnboardingResponse(BaseModel):
    identity: IdentityRead


class AuthEventRead(BaseModel):
    id: int
    stream_id: str
    type: str
    data: dict
    meta: dict
    created_at: datetime

    model_config = {"from_attributes": True}
