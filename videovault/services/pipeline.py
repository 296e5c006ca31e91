"""
Video processing pipeline.

Drives one uploaded video through pending -> processing -> completed|failed:

1. claim the record (pending -> processing), emit processing_started
2. extract metadata and store it
3. classify sensitivity, store it, emit processing_progress (75%)
4. mark completed, charge storage to the tenant, emit processing_completed

Any exception from steps 2-4 is caught once at the top, recorded on the
video and reported as processing_failed. A run that claimed a record always
leaves it completed or failed.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Set

from videovault.config import settings
from videovault.errors import AlreadyProcessingError, NotFoundError, StageTimeoutError
from videovault.models.video import Video
from videovault.schemas.video import VideoResponse
from videovault.services.metadata import MetadataExtractor
from videovault.services.notifier import (
    Notifier,
    NullNotifier,
    PROCESSING_COMPLETED,
    PROCESSING_FAILED,
    PROCESSING_PROGRESS,
    PROCESSING_STARTED,
)
from videovault.services.sensitivity import SensitivityClassifier, VideoSignal
from videovault.services.video_store import VideoStore

logger = logging.getLogger(__name__)

METADATA_PROGRESS = 40.0
SENSITIVITY_PROGRESS = 75.0


def serialize_video(video: Video) -> Dict[str, Any]:
    """JSON-safe representation used in event payloads."""
    return VideoResponse.model_validate(video).model_dump(mode="json")


class ProcessingPipeline:
    """Background orchestrator for uploaded videos."""

    def __init__(
        self,
        store: VideoStore,
        extractor: Optional[MetadataExtractor] = None,
        classifier: Optional[SensitivityClassifier] = None,
        notifier: Optional[Notifier] = None,
        stage_timeout: Optional[float] = None,
    ):
        self.store = store
        self.extractor = extractor or MetadataExtractor()
        self.classifier = classifier or SensitivityClassifier.from_settings()
        self.notifier = notifier or NullNotifier()
        self.stage_timeout = stage_timeout if stage_timeout is not None else settings.STAGE_TIMEOUT_SECONDS

        self._active: Set[int] = set()
        self._tasks: Set[asyncio.Task] = set()

    def is_active(self, video_id: int) -> bool:
        """True while a run for video_id is in progress in this process."""
        return video_id in self._active

    def start(self, video_id: int, file_path: str, tenant_id: int) -> asyncio.Task:
        """Run the pipeline as a detached task on the current loop."""
        task = asyncio.create_task(self.run(video_id, file_path, tenant_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self):
        """Wait for detached runs to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self):
        """Cancel detached runs (their records are picked up by the reconciler)."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def run(self, video_id: int, file_path: str, tenant_id: int) -> Optional[Video]:
        """
        Process a video in the background.

        Returns the final record, or None when the run was rejected because
        another run owns (or already finished) the video.
        """
        if video_id in self._active:
            logger.warning(f"Pipeline already running for video {video_id}; ignoring duplicate run")
            return None

        self._active.add(video_id)
        try:
            try:
                video = await self.store.claim_for_processing(video_id, tenant_id)
            except AlreadyProcessingError as e:
                logger.warning(f"Not processing video {video_id}: status is {e.details.get('status')}")
                return None
            except NotFoundError:
                logger.error(f"Video {video_id} not found in tenant {tenant_id}")
                return None

            logger.info(f"Processing video {video_id} ({file_path})")
            await self._emit(tenant_id, PROCESSING_STARTED, {"videoId": video_id})

            try:
                video = await self._process(video, file_path, tenant_id)
            except Exception as e:
                logger.error(f"Error processing video {video_id}: {e!r}")
                return await self._fail(video_id, tenant_id, e)

            logger.info(f"Successfully processed video {video_id} ({video.sensitivity_status})")
            return video
        finally:
            self._active.discard(video_id)

    async def _process(self, video: Video, file_path: str, tenant_id: int) -> Video:
        video_id = video.id

        # Extraction degrades to defaults internally, it does not raise
        metadata = await self._stage("Metadata extraction", self.extractor.extract(file_path))
        if metadata.source == "default":
            logger.warning(f"Video {video_id} is using default metadata")
        video = await self.store.update_media(
            video_id,
            tenant_id,
            duration=metadata.duration,
            width=metadata.width,
            height=metadata.height,
            frame_rate=metadata.frame_rate,
            progress=METADATA_PROGRESS,
        )

        signal = VideoSignal(
            duration=video.duration,
            width=video.width,
            height=video.height,
            frame_rate=video.frame_rate,
        )
        loop = asyncio.get_running_loop()
        result = await self._stage(
            "Sensitivity analysis",
            loop.run_in_executor(None, self.classifier.classify, signal),
        )
        video = await self.store.update_sensitivity(
            video_id,
            tenant_id,
            status=result.status,
            score=result.score,
            reason=result.reason,
            flags=result.flags,
            progress=SENSITIVITY_PROGRESS,
        )
        await self._emit(tenant_id, PROCESSING_PROGRESS, {
            "videoId": video_id,
            "progress": int(SENSITIVITY_PROGRESS),
            "message": "Sensitivity analysis complete",
        })

        video = await self._stage("Finalizing", self.store.mark_completed(video_id, tenant_id))
        await self._emit(tenant_id, PROCESSING_COMPLETED, {
            "videoId": video_id,
            "video": serialize_video(video),
            "sensitivityStatus": video.sensitivity_status,
        })
        return video

    async def _stage(self, name: str, awaitable):
        try:
            return await asyncio.wait_for(awaitable, timeout=self.stage_timeout)
        except asyncio.TimeoutError:
            raise StageTimeoutError(f"{name} timed out after {self.stage_timeout:g}s")

    async def _fail(self, video_id: int, tenant_id: int, exc: BaseException) -> Optional[Video]:
        message = str(exc) or exc.__class__.__name__
        video = None
        try:
            video = await self.store.mark_failed(video_id, tenant_id, message)
        except Exception as inner_e:
            logger.error(f"Failed to update video status: {inner_e}")

        await self._emit(tenant_id, PROCESSING_FAILED, {"videoId": video_id, "error": message})
        return video

    async def _emit(self, tenant_id: int, event: str, payload: Dict[str, Any]):
        try:
            await self.notifier.emit(tenant_id, event, payload)
        except Exception as e:
            logger.warning(f"Could not emit {event} for tenant {tenant_id}: {e}")
