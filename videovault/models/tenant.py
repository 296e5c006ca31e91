"""
Tenant (workspace) model.
"""

from sqlalchemy import Column, Integer, String, DateTime, Float, Boolean, Text
from datetime import datetime

from videovault.database import Base


class Tenant(Base):
    """
    An isolated workspace.

    Every video and user belongs to exactly one primary tenant.
    used_storage_gb is only written through atomic increments.
    """

    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    owner_id = Column(Integer, nullable=True)  # Set once the first admin exists
    invite_code = Column(String(32), nullable=True, unique=True)
    is_active = Column(Boolean, default=True)

    # Storage quota
    max_storage_gb = Column(Float, default=100.0)
    used_storage_gb = Column(Float, default=0.0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Tenant {self.id}: {self.name}>"
