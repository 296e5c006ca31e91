"""
Video model for uploaded video metadata and processing state.
"""

from sqlalchemy import BigInteger, Column, Integer, String, DateTime, Float, Boolean, ForeignKey, JSON, Text, Index
from datetime import datetime
import enum

from videovault.database import Base


class ProcessingStatus(str, enum.Enum):
    """Video processing status states."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class SensitivityStatus(str, enum.Enum):
    """Outcome of the sensitivity classifier."""
    PENDING = "pending"
    SAFE = "safe"
    FLAGGED = "flagged"


# Allowed processing_status moves; terminal states have no successors
PROCESSING_TRANSITIONS = {
    ProcessingStatus.PENDING.value: {ProcessingStatus.PROCESSING.value},
    ProcessingStatus.PROCESSING.value: {ProcessingStatus.COMPLETED.value, ProcessingStatus.FAILED.value},
    ProcessingStatus.COMPLETED.value: set(),
    ProcessingStatus.FAILED.value: set(),
}


class Video(Base):
    """Model for uploaded video files."""

    __tablename__ = "videos"
    __table_args__ = (
        Index("ix_videos_tenant_owner", "tenant_id", "owner_id"),
        Index("ix_videos_tenant_processing", "tenant_id", "processing_status"),
        Index("ix_videos_tenant_sensitivity", "tenant_id", "sensitivity_status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)

    # File attributes
    filename = Column(String(255), nullable=False)
    original_filename = Column(String(255), nullable=False)
    size = Column(BigInteger, nullable=False)  # Size in bytes
    mime_type = Column(String(100), nullable=False)
    file_extension = Column(String(20))
    file_path = Column(String(500), nullable=False)

    # Media attributes, filled in by the metadata extractor
    duration = Column(Float, nullable=True)  # Duration in seconds
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)
    frame_rate = Column(Float, nullable=True)

    # Processing status
    processing_status = Column(String(50), default=ProcessingStatus.PENDING.value, nullable=False)
    processing_progress = Column(Float, default=0.0)  # 0-100
    processing_error = Column(String(1000), nullable=True)
    processing_started_at = Column(DateTime, nullable=True)
    processed_at = Column(DateTime, nullable=True)

    # Sensitivity
    sensitivity_status = Column(String(50), default=SensitivityStatus.PENDING.value, nullable=False)
    sensitivity_score = Column(Integer, nullable=True)  # 0-100
    sensitivity_reason = Column(String(255), nullable=True)
    sensitivity_flags = Column(JSON, default=list)

    # Visibility and usage
    is_public = Column(Boolean, default=False, nullable=False)
    views = Column(Integer, default=0, nullable=False)
    tags = Column(JSON, default=list)
    description = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def sensitivity_details(self) -> dict:
        """Score, reason and flags as one mapping (empty until classified)."""
        return {
            "score": self.sensitivity_score,
            "reason": self.sensitivity_reason,
            "flags": list(self.sensitivity_flags or []),
        }

    def __repr__(self):
        return f"<Video {self.id}: {self.original_filename} ({self.processing_status})>"
