"""
Accounts, workspaces and invites.

A user has one primary tenant (with `User.role`) and optional secondary
memberships. Tokens name the tenant the user entered at login, and every
authenticated request runs in that tenant.
"""

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from videovault.config import settings
from videovault.errors import (
    NotFoundError,
    UnauthenticatedError,
    UnauthorizedError,
    ValidationFailedError,
)
from videovault.models.invite import Invite, InviteStatus
from videovault.models.tenant import Tenant
from videovault.models.user import Role, User, WorkspaceMembership
from videovault.schemas.auth import InviteCreate, LoginRequest, ProfileUpdate, RegisterRequest
from videovault.security import hash_password, issue_token, verify_password, verify_token

logger = logging.getLogger(__name__)

INVITE_CODE_ALPHABET = string.ascii_uppercase + string.digits
INVITE_CODE_LENGTH = 8

VALID_ROLES = [r.value for r in Role]


@dataclass
class CurrentUser:
    """The authenticated caller and the tenant the request runs in."""
    user: User
    tenant_id: int
    role: str

    @property
    def id(self) -> int:
        return self.user.id

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value


def generate_invite_code() -> str:
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


def _validate_role(role: str) -> str:
    if role not in VALID_ROLES:
        raise ValidationFailedError("Invalid role", {"allowed": VALID_ROLES})
    return role


class AccountService:
    def __init__(self, session_maker: async_sessionmaker, secret_key: Optional[str] = None):
        self.session_maker = session_maker
        self.secret_key = secret_key

    async def _user_by_email(self, session: AsyncSession, email: str) -> Optional[User]:
        result = await session.execute(select(User).where(User.email == email.strip().lower()))
        return result.scalar_one_or_none()

    async def _pending_invite(
        self, session: AsyncSession, email: str, tenant_id: int, invite_code: str
    ) -> Invite:
        result = await session.execute(
            select(Invite).where(
                Invite.email == email.strip().lower(),
                Invite.tenant_id == tenant_id,
                Invite.invite_code == invite_code.strip().upper(),
                Invite.status == InviteStatus.PENDING.value,
            )
        )
        invite = result.scalar_one_or_none()
        if invite is None:
            raise UnauthenticatedError("Invalid or expired invite code")
        return invite

    async def register(self, data: RegisterRequest) -> Tuple[User, Tenant, str]:
        """
        Create an account.

        With tenant_id and invite_code the user joins that workspace with the
        invited role; otherwise tenant_name creates a new workspace and the
        user becomes its admin.
        """
        email = data.email.strip().lower()

        async with self.session_maker() as session:
            if await self._user_by_email(session, email):
                raise ValidationFailedError("Email already registered")

            invite = None
            if data.tenant_id is not None and data.invite_code:
                tenant = await session.get(Tenant, data.tenant_id)
                if tenant is None:
                    raise NotFoundError("Tenant not found", {"tenantId": data.tenant_id})

                invite = await self._pending_invite(session, email, tenant.id, data.invite_code)
                if datetime.utcnow() > invite.expires_at:
                    invite.status = InviteStatus.EXPIRED.value
                    await session.commit()
                    raise UnauthenticatedError("Invite has expired")
                role = invite.role
            elif not data.tenant_name or not data.tenant_name.strip():
                raise ValidationFailedError("tenant_name is required for new workspace")
            else:
                name = data.tenant_name.strip()
                existing = await session.execute(select(Tenant).where(Tenant.name == name))
                if existing.scalar_one_or_none() is not None:
                    raise ValidationFailedError("Workspace name already taken")

                tenant = Tenant(
                    name=name,
                    max_storage_gb=settings.DEFAULT_MAX_STORAGE_GB,
                    used_storage_gb=0.0,
                )
                session.add(tenant)
                await session.flush()
                role = Role.ADMIN.value

            salt, password_hash = hash_password(data.password)
            user = User(
                email=email,
                password_salt=salt,
                password_hash=password_hash,
                first_name=data.first_name.strip(),
                last_name=data.last_name.strip(),
                role=role,
                tenant_id=tenant.id,
                is_active=True,
                memberships=[],
            )
            session.add(user)
            await session.flush()

            if invite is not None:
                invite.status = InviteStatus.ACCEPTED.value
            elif tenant.owner_id is None:
                tenant.owner_id = user.id

            await session.commit()

        logger.info(f"Registered user {user.id} in tenant {tenant.id} as {role}")
        return user, tenant, issue_token(user.id, tenant.id, self.secret_key)

    async def login(self, data: LoginRequest) -> Tuple[User, Tenant, str]:
        async with self.session_maker() as session:
            user = await self._user_by_email(session, data.email)
            if user is None or not verify_password(data.password, user.password_salt, user.password_hash):
                raise UnauthenticatedError("Invalid email or password")
            if not user.is_active:
                raise UnauthenticatedError("User account is inactive")

            tenant_id = data.tenant_id if data.tenant_id is not None else user.tenant_id
            if user.role_in(tenant_id) is None:
                raise UnauthorizedError("Not a member of this workspace", {"tenantId": tenant_id})

            tenant = await session.get(Tenant, tenant_id)
            if tenant is None:
                raise NotFoundError("Tenant not found", {"tenantId": tenant_id})

            user.last_login = datetime.utcnow()
            await session.commit()

        logger.info(f"User {user.id} logged in to tenant {tenant_id}")
        return user, tenant, issue_token(user.id, tenant_id, self.secret_key)

    async def authenticate(self, token: Optional[str]) -> CurrentUser:
        """Resolve a bearer token to the caller, re-checking membership."""
        if not token:
            raise UnauthenticatedError("No token provided")

        claims = verify_token(token, self.secret_key)
        if claims is None:
            raise UnauthenticatedError("Invalid or expired token")
        user_id, tenant_id = claims

        async with self.session_maker() as session:
            user = await session.get(User, user_id)
            if user is None or not user.is_active:
                raise UnauthenticatedError("User not found or inactive")

            role = user.role_in(tenant_id)
            if role is None:
                raise UnauthorizedError("Not a member of this workspace", {"tenantId": tenant_id})
            return CurrentUser(user=user, tenant_id=tenant_id, role=role)

    async def get_tenant(self, tenant_id: int) -> Tenant:
        async with self.session_maker() as session:
            tenant = await session.get(Tenant, tenant_id)
            if tenant is None:
                raise NotFoundError("Tenant not found", {"tenantId": tenant_id})
            return tenant

    async def update_profile(self, user_id: int, data: ProfileUpdate) -> User:
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        async with self.session_maker() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFoundError("User not found")
            for field_name in ("first_name", "last_name"):
                if field_name in changes:
                    setattr(user, field_name, changes[field_name].strip())
            await session.commit()
            return user

    async def team(self, tenant_id: int) -> List[Tuple[User, str]]:
        """Members of a tenant with their role in it, oldest first."""
        secondary = select(WorkspaceMembership.user_id).where(WorkspaceMembership.tenant_id == tenant_id)
        async with self.session_maker() as session:
            result = await session.execute(
                select(User)
                .where(or_(User.tenant_id == tenant_id, User.id.in_(secondary)))
                .order_by(User.created_at, User.id)
            )
            return [(user, user.role_in(tenant_id)) for user in result.scalars().all()]

    async def invite(self, inviter: CurrentUser, data: InviteCreate) -> Tuple[Invite, Tenant]:
        if not inviter.is_admin:
            raise UnauthorizedError("Only admins can invite users")
        role = _validate_role(data.role)
        email = data.email.strip().lower()

        async with self.session_maker() as session:
            if await self._user_by_email(session, email):
                raise ValidationFailedError("User already registered")

            tenant = await session.get(Tenant, inviter.tenant_id)
            if tenant is None:
                raise NotFoundError("Tenant not found", {"tenantId": inviter.tenant_id})

            invite = Invite(
                email=email,
                tenant_id=tenant.id,
                invite_code=generate_invite_code(),
                role=role,
                invited_by=inviter.id,
                status=InviteStatus.PENDING.value,
                expires_at=datetime.utcnow() + timedelta(days=settings.INVITE_TTL_DAYS),
            )
            session.add(invite)
            await session.commit()

        logger.info(f"User {inviter.id} invited {email} to tenant {tenant.id} as {role}")
        return invite, tenant

    async def add_member(self, inviter: CurrentUser, email: str, role: str) -> Tuple[User, str]:
        """Give an existing user a secondary membership in the inviter's tenant."""
        if not inviter.is_admin:
            raise UnauthorizedError("Only admins can add users to workspace")
        role = _validate_role(role)

        async with self.session_maker() as session:
            user = await self._user_by_email(session, email)
            if user is None:
                raise NotFoundError("User not found")
            if user.role_in(inviter.tenant_id) is not None:
                raise ValidationFailedError("User is already a member of this workspace")

            session.add(WorkspaceMembership(user_id=user.id, tenant_id=inviter.tenant_id, role=role))
            await session.commit()

        logger.info(f"Added user {user.id} to tenant {inviter.tenant_id} as {role}")
        return user, role

    async def tenant_info(self, tenant_id: int, email: str, invite_code: str) -> Tuple[Tenant, Invite]:
        """Public lookup used by the invite registration form."""
        if not email or not invite_code:
            raise ValidationFailedError("Missing required parameters")

        async with self.session_maker() as session:
            tenant = await session.get(Tenant, tenant_id)
            if tenant is None:
                raise NotFoundError("Tenant not found", {"tenantId": tenant_id})
            invite = await self._pending_invite(session, email, tenant_id, invite_code)
            return tenant, invite
