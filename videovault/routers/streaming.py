"""
Range-aware video streaming endpoint.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from videovault.dependencies import get_current_user, get_streaming_service
from videovault.services.accounts import CurrentUser
from videovault.services.streaming import StreamingService

router = APIRouter()


@router.get("/{video_id}/stream")
async def stream_video(
    video_id: int,
    request: Request,
    current: CurrentUser = Depends(get_current_user),
    streaming: StreamingService = Depends(get_streaming_service),
):
    """
    Stream a completed video.

    Honors a single `Range: bytes=...` header (206); without one the whole
    file is sent as an attachment (200). Browsers' <video> elements can pass
    the token as `?token=` since they cannot set headers.
    """
    plan = await streaming.open(
        video_id, current.id, current.tenant_id, request.headers.get("range")
    )
    return StreamingResponse(
        plan.body,
        status_code=plan.status_code,
        headers=plan.headers,
        media_type=plan.media_type,
    )
