"""
Byte-range video streaming.

`StreamingService.open()` does all checks up front (access, processing
state, file presence, range validity) and returns a `StreamPlan`; nothing is
sent until the plan exists, so every error maps to a proper status code.
Once the body is being sent, read errors can only be logged.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Optional, Set, Tuple
from urllib.parse import quote

from videovault.config import settings
from videovault.errors import (
    FileMissingError,
    InvalidStateError,
    RangeNotSatisfiableError,
    ValidationFailedError,
)
from videovault.models.video import ProcessingStatus, Video
from videovault.services.storage import FileStorage
from videovault.services.video_store import VideoStore

logger = logging.getLogger(__name__)

_RANGE_RE = re.compile(r"^\s*(\d*)\s*-\s*(\d*)\s*$")

DEFAULT_MIME_TYPE = "application/octet-stream"


def parse_range(header: Optional[str], size: int) -> Optional[Tuple[int, int]]:
    """
    Parse a single-range ``Range`` header into an inclusive (start, end).

    Returns None when no range was requested. Supports ``bytes=a-b``,
    ``bytes=a-`` and the suffix form ``bytes=-n``; the end is clamped to the
    last byte of the file.
    """
    if header is None or not header.strip():
        return None

    unit, sep, byte_range = header.strip().partition("=")
    if not sep or unit.strip().lower() != "bytes":
        raise ValidationFailedError("Invalid Range header", {"range": header})
    if "," in byte_range:
        raise ValidationFailedError("Multiple ranges are not supported", {"range": header})

    match = _RANGE_RE.match(byte_range)
    if match is None or match.group(0).strip() == "-":
        raise ValidationFailedError("Invalid Range header", {"range": header})

    start_text, end_text = match.groups()
    if not start_text:
        # Suffix range: the last n bytes
        length = int(end_text)
        start = max(size - length, 0) if length else size
        end = size - 1
    else:
        start = int(start_text)
        end = int(end_text) if end_text else size - 1

    if start >= size:
        raise RangeNotSatisfiableError(start, size)
    if end < start:
        raise ValidationFailedError("Invalid Range header", {"range": header})

    return start, min(end, size - 1)


def content_disposition(filename: str) -> str:
    safe = (filename or "video").replace('"', "'").replace("\r", "").replace("\n", "")
    try:
        safe.encode("latin-1")
        return f'attachment; filename="{safe}"'
    except UnicodeEncodeError:
        fallback = safe.encode("ascii", "ignore").decode() or "video"
        return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(safe)}"


@dataclass
class StreamPlan:
    """Everything needed to send a (partial) file response."""
    status_code: int
    headers: Dict[str, str]
    body: AsyncIterator[bytes]
    media_type: str = DEFAULT_MIME_TYPE


class StreamingService:
    """Serves completed videos as full (200) or partial (206) responses."""

    def __init__(self, store: VideoStore, storage: FileStorage, chunk_size: Optional[int] = None):
        self.store = store
        self.storage = storage
        self.chunk_size = chunk_size or settings.STREAM_CHUNK_SIZE
        self._view_tasks: Set[asyncio.Task] = set()

    async def open(
        self,
        video_id: int,
        requester_id: int,
        tenant_id: int,
        range_header: Optional[str] = None,
    ) -> StreamPlan:
        video = await self.store.get_by_id(video_id, requester_id, tenant_id)

        if video.processing_status != ProcessingStatus.COMPLETED.value:
            logger.info(f"Video {video_id} not ready for streaming ({video.processing_status})")
            raise InvalidStateError(
                "Video is still processing or failed",
                {"status": video.processing_status},
            )

        if not await self.storage.exists(video.file_path):
            logger.error(f"Video file not found at: {video.file_path}")
            raise FileMissingError("Video file not found", {"videoId": video_id})

        size = await self.storage.size(video.file_path)
        byte_range = parse_range(range_header, size)

        self._schedule_view(video_id, tenant_id)
        return self._plan(video, size, byte_range)

    def _plan(self, video: Video, size: int, byte_range: Optional[Tuple[int, int]]) -> StreamPlan:
        media_type = video.mime_type or DEFAULT_MIME_TYPE
        headers = {
            "Accept-Ranges": "bytes",
            "Content-Type": media_type,
        }

        if byte_range is None:
            start, end = 0, size - 1
            status_code = 200
            headers["Content-Disposition"] = content_disposition(video.original_filename)
        else:
            start, end = byte_range
            status_code = 206
            headers["Content-Range"] = f"bytes {start}-{end}/{size}"

        headers["Content-Length"] = str(end - start + 1)

        return StreamPlan(
            status_code=status_code,
            headers=headers,
            body=self._body(video.id, video.file_path, start, end),
            media_type=media_type,
        )

    async def _body(self, video_id: int, file_path: str, start: int, end: int) -> AsyncIterator[bytes]:
        if end < start:
            return
        try:
            async for chunk in self.storage.iter_range(file_path, start, end, self.chunk_size):
                yield chunk
        except OSError as e:
            logger.error(f"Stream error for video {video_id}: {e}")

    def _schedule_view(self, video_id: int, tenant_id: int):
        task = asyncio.create_task(self._record_view(video_id, tenant_id))
        self._view_tasks.add(task)
        task.add_done_callback(self._view_tasks.discard)

    async def _record_view(self, video_id: int, tenant_id: int):
        try:
            await self.store.increment_views(video_id, tenant_id)
        except Exception as e:
            logger.error(f"Failed to record view for video {video_id}: {e}")

    async def wait_for_pending_views(self):
        """Let in-flight view increments finish (used on shutdown)."""
        if self._view_tasks:
            await asyncio.gather(*list(self._view_tasks), return_exceptions=True)
