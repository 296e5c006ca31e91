"""
User and workspace membership models.
"""

from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from videovault.database import Base


class Role(str, enum.Enum):
    """Per-workspace roles."""
    VIEWER = "viewer"
    EDITOR = "editor"
    ADMIN = "admin"


class User(Base):
    """Model for registered users."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_salt = Column(String(64), nullable=False)
    password_hash = Column(String(128), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)

    # Role inside the primary tenant
    role = Column(String(20), default=Role.EDITOR.value, nullable=False)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)

    is_active = Column(Boolean, default=True)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Secondary workspaces
    memberships = relationship(
        "WorkspaceMembership", back_populates="user", cascade="all, delete-orphan", lazy="selectin"
    )

    def role_in(self, tenant_id: int):
        """Role for a tenant, or None when the user is not a member."""
        if self.tenant_id == tenant_id:
            return self.role
        for membership in self.memberships:
            if membership.tenant_id == tenant_id:
                return membership.role
        return None

    def __repr__(self):
        return f"<User {self.id}: {self.email}>"


class WorkspaceMembership(Base):
    """Membership of a user in a tenant other than their primary one."""

    __tablename__ = "workspace_memberships"
    __table_args__ = (UniqueConstraint("user_id", "tenant_id", name="uq_membership_user_tenant"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(20), default=Role.EDITOR.value, nullable=False)
    joined_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="memberships")

    def __repr__(self):
        return f"<WorkspaceMembership user={self.user_id} tenant={self.tenant_id} role={self.role}>"
