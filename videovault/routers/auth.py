"""
Account, workspace and invite endpoints.
"""

from fastapi import APIRouter, Depends, Query

from videovault.dependencies import get_account_service, get_current_user, require_roles
from videovault.models.tenant import Tenant
from videovault.models.user import Role, User
from videovault.schemas.auth import (
    AuthResponse,
    InviteCreate,
    InviteResponse,
    LoginRequest,
    MeResponse,
    MemberAdd,
    ProfileUpdate,
    RegisterRequest,
    TeamMember,
    TeamResponse,
    TenantInfoResponse,
    TenantSummary,
    UserResponse,
)
from videovault.services.accounts import AccountService, CurrentUser

router = APIRouter()


def _tenant_summary(tenant: Tenant, with_storage: bool = False) -> TenantSummary:
    if with_storage:
        return TenantSummary(
            id=tenant.id,
            name=tenant.name,
            max_storage_gb=tenant.max_storage_gb,
            used_storage_gb=tenant.used_storage_gb,
        )
    return TenantSummary(id=tenant.id, name=tenant.name)


def _team_member(user: User, role: str) -> TeamMember:
    return TeamMember(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        role=role,
        is_active=user.is_active,
        created_at=user.created_at,
        last_login=user.last_login,
    )


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(
    data: RegisterRequest,
    accounts: AccountService = Depends(get_account_service),
):
    """
    Register a new user.

    - Without tenant_id: creates a new workspace named tenant_name; the user is its admin
    - With tenant_id + invite_code: joins that workspace with the invited role
    """
    user, tenant, token = await accounts.register(data)
    return AuthResponse(
        message="User registered successfully",
        token=token,
        user=UserResponse.model_validate(user),
        tenant=_tenant_summary(tenant),
    )


@router.post("/login", response_model=AuthResponse)
async def login(
    data: LoginRequest,
    accounts: AccountService = Depends(get_account_service),
):
    """Log in; tenant_id selects a secondary workspace."""
    user, tenant, token = await accounts.login(data)
    return AuthResponse(
        message="Login successful",
        token=token,
        user=UserResponse.model_validate(user),
        tenant=_tenant_summary(tenant),
    )


@router.get("/me", response_model=MeResponse)
async def me(
    current: CurrentUser = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service),
):
    """Current user with the active tenant's storage figures."""
    tenant = await accounts.get_tenant(current.tenant_id)
    return MeResponse(
        user=UserResponse.model_validate(current.user),
        role=current.role,
        tenant=_tenant_summary(tenant, with_storage=True),
    )


@router.put("/profile")
async def update_profile(
    data: ProfileUpdate,
    current: CurrentUser = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service),
):
    user = await accounts.update_profile(current.id, data)
    return {
        "message": "Profile updated successfully",
        "user": UserResponse.model_validate(user).model_dump(mode="json"),
    }


@router.get("/team", response_model=TeamResponse)
async def team(
    current: CurrentUser = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service),
):
    """Members of the current tenant with their role in it."""
    members = await accounts.team(current.tenant_id)
    return TeamResponse(members=[_team_member(user, role) for user, role in members])


@router.post("/invite", response_model=InviteResponse)
async def invite(
    data: InviteCreate,
    current: CurrentUser = Depends(require_roles(Role.ADMIN.value)),
    accounts: AccountService = Depends(get_account_service),
):
    """Create an invite code for a new user (admins only)."""
    created, tenant = await accounts.invite(current, data)
    return InviteResponse(
        email=created.email,
        invite_code=created.invite_code,
        role=created.role,
        tenant_id=tenant.id,
        tenant_name=tenant.name,
        expires_at=created.expires_at,
    )


@router.post("/members", response_model=TeamMember)
async def add_member(
    data: MemberAdd,
    current: CurrentUser = Depends(require_roles(Role.ADMIN.value)),
    accounts: AccountService = Depends(get_account_service),
):
    """Add an existing user to the current workspace (admins only)."""
    user, role = await accounts.add_member(current, data.email, data.role)
    return _team_member(user, role)


@router.get("/tenant-info/{tenant_id}", response_model=TenantInfoResponse)
async def tenant_info(
    tenant_id: int,
    email: str = Query(""),
    invite_code: str = Query(""),
    accounts: AccountService = Depends(get_account_service),
):
    """Workspace name and invited role, for the invite registration form."""
    tenant, pending = await accounts.tenant_info(tenant_id, email, invite_code)
    return TenantInfoResponse(
        tenant_id=tenant.id,
        tenant_name=tenant.name,
        invite_email=pending.email,
        invite_role=pending.role,
    )
