"""
Models package initialization.
"""

from videovault.models.video import Video, ProcessingStatus, SensitivityStatus
from videovault.models.tenant import Tenant
from videovault.models.user import User, WorkspaceMembership, Role
from videovault.models.invite import Invite, InviteStatus

__all__ = [
    "Video", "ProcessingStatus", "SensitivityStatus",
    "Tenant",
    "User", "WorkspaceMembership", "Role",
    "Invite", "InviteStatus",
]
