"""
Periodic cleanup of records stranded by a crash or restart.

Processing runs are in-process background tasks, so a restart leaves their
records stuck. On every pass:

- `processing` records older than STALE_PROCESSING_SECONDS that no local run
  owns are marked failed;
- `pending` records older than STALE_PENDING_SECONDS are scheduled again if
  their file still exists, otherwise marked failed.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Dict, Optional

from videovault.config import settings
from videovault.errors import VideoVaultError
from videovault.models.video import ProcessingStatus
from videovault.services.notifier import Notifier, NullNotifier, PROCESSING_FAILED
from videovault.services.pipeline import ProcessingPipeline
from videovault.services.storage import FileStorage
from videovault.services.video_store import VideoStore

logger = logging.getLogger(__name__)

INTERRUPTED_ERROR = "Processing interrupted before completion"
MISSING_FILE_ERROR = "Uploaded file is missing"


class StaleRecordReconciler:
    def __init__(
        self,
        store: VideoStore,
        storage: FileStorage,
        pipeline: ProcessingPipeline,
        notifier: Optional[Notifier] = None,
        interval: Optional[float] = None,
        stale_processing: Optional[float] = None,
        stale_pending: Optional[float] = None,
    ):
        self.store = store
        self.storage = storage
        self.pipeline = pipeline
        self.notifier = notifier or NullNotifier()
        self.interval = interval if interval is not None else settings.RECONCILE_INTERVAL_SECONDS
        self.stale_processing = timedelta(
            seconds=stale_processing if stale_processing is not None else settings.STALE_PROCESSING_SECONDS
        )
        self.stale_pending = timedelta(
            seconds=stale_pending if stale_pending is not None else settings.STALE_PENDING_SECONDS
        )
        self._task: Optional[asyncio.Task] = None

    async def run_once(self) -> Dict[str, int]:
        """One reconciliation pass. Returns counts of failed and requeued records."""
        failed = 0
        requeued = 0

        for video in await self.store.find_stale(ProcessingStatus.PROCESSING, self.stale_processing):
            if self.pipeline.is_active(video.id):
                continue
            if await self._fail(video.id, video.tenant_id, INTERRUPTED_ERROR):
                failed += 1

        for video in await self.store.find_stale(ProcessingStatus.PENDING, self.stale_pending):
            if self.pipeline.is_active(video.id):
                continue
            if await self.storage.exists(video.file_path):
                logger.info(f"Re-queueing stale pending video {video.id}")
                self.pipeline.start(video.id, video.file_path, video.tenant_id)
                requeued += 1
            else:
                # A pending record has to pass through processing to reach failed
                try:
                    await self.store.update_processing_state(
                        video.id, video.tenant_id, status=ProcessingStatus.PROCESSING
                    )
                except VideoVaultError as e:
                    logger.warning(f"Could not claim stale video {video.id}: {e.message}")
                    continue
                if await self._fail(video.id, video.tenant_id, MISSING_FILE_ERROR):
                    failed += 1

        if failed or requeued:
            logger.info(f"Reconciled stale videos: {failed} failed, {requeued} re-queued")
        return {"failed": failed, "requeued": requeued}

    async def _fail(self, video_id: int, tenant_id: int, error: str) -> bool:
        try:
            await self.store.mark_failed(video_id, tenant_id, error)
        except VideoVaultError as e:
            # Finished or deleted since the scan
            logger.debug(f"Skipping video {video_id}: {e.message}")
            return False

        logger.warning(f"Marked stale video {video_id} as failed: {error}")
        try:
            await self.notifier.emit(tenant_id, PROCESSING_FAILED, {"videoId": video_id, "error": error})
        except Exception as e:
            logger.warning(f"Could not emit {PROCESSING_FAILED} for tenant {tenant_id}: {e}")
        return True

    async def _loop(self):
        while True:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Reconciler pass failed: {e}")
            await asyncio.sleep(self.interval)

    def start(self):
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop())
        return self._task

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
