"""
Video upload and management endpoints.
"""

import logging
import math
import mimetypes
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, UploadFile

from videovault.config import Settings
from videovault.dependencies import (
    get_current_user,
    get_notifier,
    get_pipeline,
    get_settings,
    get_storage,
    get_video_store,
    require_roles,
)
from videovault.errors import QuotaExceededError, ValidationFailedError
from videovault.models.user import Role
from videovault.schemas.video import (
    VideoFilters,
    VideoListResponse,
    VideoResponse,
    VideoStatusResponse,
    VideoUpdate,
)
from videovault.services.accounts import CurrentUser
from videovault.services.notifier import UPLOAD_STARTED, Notifier
from videovault.services.pipeline import ProcessingPipeline
from videovault.services.storage import FileStorage
from videovault.services.video_store import VideoStore, size_in_gb

logger = logging.getLogger(__name__)

router = APIRouter()


def parse_tags(raw: Optional[str]) -> List[str]:
    """Comma separated form field to a clean tag list."""
    if not raw:
        return []
    return [t.strip() for t in raw.split(",") if t.strip()]


def guess_mime_type(upload: UploadFile, ext: str) -> str:
    if upload.content_type and upload.content_type != "application/octet-stream":
        return upload.content_type
    guessed, _ = mimetypes.guess_type(f"video{ext}")
    return guessed or "video/mp4"


@router.post("/upload", response_model=VideoResponse, status_code=201)
async def upload_video(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),  # comma separated
    is_public: bool = Form(False),
    current: CurrentUser = Depends(require_roles(Role.EDITOR.value, Role.ADMIN.value)),
    store: VideoStore = Depends(get_video_store),
    storage: FileStorage = Depends(get_storage),
    pipeline: ProcessingPipeline = Depends(get_pipeline),
    settings: Settings = Depends(get_settings),
    notifier: Notifier = Depends(get_notifier),
):
    """
    Upload a video file for processing.

    The response is sent as soon as the record exists; processing runs in
    the background:
    - metadata extraction (ffprobe, OpenCV fallback)
    - sensitivity classification
    upload_started, then processing progress, goes to the tenant's event
    channel.
    """
    # Validate file extension
    ext = Path(file.filename or "").suffix.lower()
    if ext not in settings.ALLOWED_EXTENSIONS:
        raise ValidationFailedError(
            f"Invalid file type. Allowed: {', '.join(settings.ALLOWED_EXTENSIONS)}",
            {"allowed": settings.ALLOWED_EXTENSIONS},
        )

    used_gb, max_gb = await store.get_tenant_usage(current.tenant_id)
    if used_gb >= max_gb:
        raise QuotaExceededError("Storage quota exceeded", {"usedStorageGB": used_gb, "maxStorageGB": max_gb})

    unique_filename, file_path, file_size = await storage.save_upload(
        file, current.tenant_id, settings.MAX_UPLOAD_SIZE
    )
    if file_size == 0:
        await storage.remove(file_path)
        raise ValidationFailedError("Uploaded file is empty")

    if used_gb + size_in_gb(file_size) > max_gb:
        await storage.remove(file_path)
        raise QuotaExceededError("Storage quota exceeded", {"usedStorageGB": used_gb, "maxStorageGB": max_gb})

    try:
        video = await store.create(
            owner_id=current.id,
            tenant_id=current.tenant_id,
            filename=unique_filename,
            original_filename=file.filename,
            size=file_size,
            mime_type=guess_mime_type(file, ext),
            file_extension=ext,
            file_path=file_path,
            description=description,
            tags=parse_tags(tags),
            is_public=is_public,
        )
    except Exception:
        await storage.remove(file_path)
        raise

    await notifier.emit(current.tenant_id, UPLOAD_STARTED, {
        "videoId": video.id,
        "filename": video.original_filename,
    })

    # Runs after the response is sent; pass ids and path, not a db session
    background_tasks.add_task(pipeline.run, video.id, file_path, current.tenant_id)

    return VideoResponse.model_validate(video)


@router.get("", response_model=VideoListResponse)
async def list_videos(
    sensitivity_status: Optional[str] = None,
    processing_status: Optional[str] = None,
    min_size: Optional[int] = Query(None, ge=0),
    max_size: Optional[int] = Query(None, ge=0),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    sort_by: str = Query("newest", pattern="^(newest|oldest)$"),
    limit: int = Query(50, ge=1, le=200),
    skip: int = Query(0, ge=0),
    current: CurrentUser = Depends(get_current_user),
    store: VideoStore = Depends(get_video_store),
):
    """List videos visible to the caller, newest first by default."""
    filters = VideoFilters(
        sensitivity_status=sensitivity_status,
        processing_status=processing_status,
        min_size=min_size,
        max_size=max_size,
        start_date=start_date,
        end_date=end_date,
        sort_by=sort_by,
        limit=limit,
        skip=skip,
    )
    videos, total = await store.list_for_user(
        current.id, current.tenant_id, filters, is_admin=current.is_admin
    )

    return VideoListResponse(
        items=[VideoResponse.model_validate(v) for v in videos],
        total=total,
        limit=limit,
        skip=skip,
        pages=math.ceil(total / limit) if total else 0,
    )


@router.get("/{video_id}", response_model=VideoResponse)
async def get_video(
    video_id: int,
    current: CurrentUser = Depends(get_current_user),
    store: VideoStore = Depends(get_video_store),
):
    """Get video details by ID."""
    video = await store.get_by_id(video_id, current.id, current.tenant_id)
    return VideoResponse.model_validate(video)


@router.put("/{video_id}", response_model=VideoResponse)
async def update_video(
    video_id: int,
    updates: VideoUpdate,
    current: CurrentUser = Depends(get_current_user),
    store: VideoStore = Depends(get_video_store),
):
    """Edit description, tags or visibility (owner only)."""
    video = await store.update_metadata(video_id, current.id, current.tenant_id, updates)
    return VideoResponse.model_validate(video)


@router.get("/{video_id}/status", response_model=VideoStatusResponse)
async def get_video_status(
    video_id: int,
    current: CurrentUser = Depends(get_current_user),
    store: VideoStore = Depends(get_video_store),
):
    """Check video processing status."""
    video = await store.get_by_id(video_id, current.id, current.tenant_id)
    return VideoStatusResponse(
        videoId=video.id,
        processingStatus=video.processing_status,
        processingProgress=video.processing_progress,
        sensitivityStatus=video.sensitivity_status,
        sensitivityScore=video.sensitivity_score,
        processingError=video.processing_error,
    )


@router.delete("/{video_id}")
async def delete_video(
    video_id: int,
    current: CurrentUser = Depends(get_current_user),
    store: VideoStore = Depends(get_video_store),
    storage: FileStorage = Depends(get_storage),
):
    """Delete a video record and its file (owner only)."""
    video = await store.delete(video_id, current.id, current.tenant_id)

    if not await storage.remove(video.file_path):
        logger.warning(f"File for deleted video {video_id} was already gone: {video.file_path}")

    return {"message": "Video deleted successfully"}
