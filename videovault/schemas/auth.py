"""
Account and workspace schemas.
"""

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional, List


class RegisterRequest(BaseModel):
    """
    Registration payload.

    Either tenant_name (new workspace) or tenant_id + invite_code (join).
    """
    email: str = Field(..., pattern=r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
    password: str = Field(..., min_length=8)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    tenant_name: Optional[str] = Field(default=None, max_length=255)
    tenant_id: Optional[int] = None
    invite_code: Optional[str] = None


class LoginRequest(BaseModel):
    """Login payload; tenant_id selects a secondary workspace."""
    email: str
    password: str
    tenant_id: Optional[int] = None


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)


class UserResponse(BaseModel):
    """Public view of a user (no credentials)."""
    id: int
    email: str
    first_name: str
    last_name: str
    role: str
    tenant_id: int
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TenantSummary(BaseModel):
    id: int
    name: str
    max_storage_gb: Optional[float] = None
    used_storage_gb: Optional[float] = None


class AuthResponse(BaseModel):
    """Returned by register and login."""
    message: str
    token: str
    user: UserResponse
    tenant: TenantSummary


class MeResponse(BaseModel):
    user: UserResponse
    role: str  # Role in the active tenant
    tenant: TenantSummary


class TeamMember(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    role: str
    is_active: bool
    created_at: datetime
    last_login: Optional[datetime] = None


class TeamResponse(BaseModel):
    members: List[TeamMember]


class InviteCreate(BaseModel):
    email: str = Field(..., pattern=r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
    role: str = "editor"


class InviteResponse(BaseModel):
    email: str
    invite_code: str
    role: str
    tenant_id: int
    tenant_name: str
    expires_at: datetime


class TenantInfoResponse(BaseModel):
    tenant_id: int
    tenant_name: str
    invite_email: str
    invite_role: str


class MemberAdd(BaseModel):
    """Add an already registered user to the current workspace."""
    email: str
    role: str = "editor"
