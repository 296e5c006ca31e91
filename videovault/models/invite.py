"""
Invite model for joining an existing workspace.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from datetime import datetime
import enum

from videovault.database import Base


class InviteStatus(str, enum.Enum):
    """Invite lifecycle states."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"


class Invite(Base):
    """An admin-issued code letting one email address join a tenant with a fixed role."""

    __tablename__ = "invites"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    invite_code = Column(String(16), nullable=False, unique=True)
    role = Column(String(20), nullable=False)
    invited_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(20), default=InviteStatus.PENDING.value, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Invite {self.invite_code} for {self.email} ({self.status})>"
