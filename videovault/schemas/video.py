"""
Video schemas for API request/response validation.
"""

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional, List


class SensitivityDetails(BaseModel):
    """Classifier output stored on a video."""
    score: Optional[int] = None
    reason: Optional[str] = None
    flags: List[str] = []


class VideoResponse(BaseModel):
    """Schema for video responses."""
    id: int
    owner_id: int
    tenant_id: int
    filename: str
    original_filename: str
    size: int
    mime_type: str
    file_extension: Optional[str] = None
    duration: Optional[float] = None
    width: Optional[int] = None
    height: Optional[int] = None
    frame_rate: Optional[float] = None
    processing_status: str
    processing_progress: float
    processing_error: Optional[str] = None
    sensitivity_status: str
    sensitivity_details: SensitivityDetails
    is_public: bool
    views: int
    tags: List[str] = []
    description: Optional[str] = None
    created_at: datetime
    processed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class VideoListResponse(BaseModel):
    """Schema for paginated video list."""
    items: List[VideoResponse]
    total: int
    limit: int
    skip: int
    pages: int


class VideoStatusResponse(BaseModel):
    """Schema for video processing status check."""
    videoId: int
    processingStatus: str
    processingProgress: float
    sensitivityStatus: str
    sensitivityScore: Optional[int] = None
    processingError: Optional[str] = None


class VideoUpdate(BaseModel):
    """Owner-editable fields. Anything else on the record is pipeline-owned."""
    description: Optional[str] = Field(default=None, max_length=5000)
    tags: Optional[List[str]] = None
    is_public: Optional[bool] = None


class VideoFilters(BaseModel):
    """Listing filters."""
    sensitivity_status: Optional[str] = None
    processing_status: Optional[str] = None
    min_size: Optional[int] = Field(default=None, ge=0)
    max_size: Optional[int] = Field(default=None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    sort_by: str = "newest"  # newest, oldest
    limit: int = Field(default=50, ge=1, le=200)
    skip: int = Field(default=0, ge=0)
