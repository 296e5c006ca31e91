"""
Video record store.

All reads and writes of video records go through here. Every statement is
scoped by tenant_id in its WHERE clause, so a record in another tenant is
indistinguishable from a missing one. Counter updates (views, tenant storage)
are single UPDATE statements and never read-modify-write in Python.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import and_, case, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from videovault.errors import InvalidStateError, NotFoundError, UnauthorizedError, AlreadyProcessingError
from videovault.models.tenant import Tenant
from videovault.models.video import (
    PROCESSING_TRANSITIONS,
    ProcessingStatus,
    SensitivityStatus,
    Video,
)
from videovault.schemas.video import VideoFilters, VideoUpdate

logger = logging.getLogger(__name__)

BYTES_PER_GB = 1024 ** 3
MAX_ERROR_LENGTH = 1000


def size_in_gb(size_bytes: int) -> float:
    return (size_bytes or 0) / BYTES_PER_GB


class VideoStore:
    """Async persistence for Video records and tenant storage counters."""

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    # ------------------------------------------------------------------ reads

    async def _fetch(self, session: AsyncSession, video_id: int, tenant_id: int) -> Video:
        result = await session.execute(
            select(Video).where(Video.id == video_id, Video.tenant_id == tenant_id)
        )
        video = result.scalar_one_or_none()
        if video is None:
            raise NotFoundError("Video not found", {"videoId": video_id})
        return video

    async def get(self, video_id: int, tenant_id: int) -> Video:
        """Tenant-scoped fetch without owner checks (pipeline and reconciler use this)."""
        async with self.session_maker() as session:
            return await self._fetch(session, video_id, tenant_id)

    async def get_by_id(self, video_id: int, requester_id: int, tenant_id: int) -> Video:
        """Fetch a video the requester may see: their own, or a public one."""
        video = await self.get(video_id, tenant_id)
        if video.owner_id != requester_id and not video.is_public:
            raise UnauthorizedError("Unauthorized", {"videoId": video_id})
        return video

    async def list_for_user(
        self,
        requester_id: int,
        tenant_id: int,
        filters: Optional[VideoFilters] = None,
        is_admin: bool = False,
    ) -> Tuple[List[Video], int]:
        """
        List videos visible to the requester.

        Admins see every video in the tenant; other roles see their own
        videos plus public ones.
        """
        filters = filters or VideoFilters()
        conditions = [Video.tenant_id == tenant_id]
        if not is_admin:
            conditions.append(or_(Video.owner_id == requester_id, Video.is_public.is_(True)))

        if filters.sensitivity_status:
            conditions.append(Video.sensitivity_status == filters.sensitivity_status)
        if filters.processing_status:
            conditions.append(Video.processing_status == filters.processing_status)
        if filters.min_size is not None:
            conditions.append(Video.size >= filters.min_size)
        if filters.max_size is not None:
            conditions.append(Video.size <= filters.max_size)
        if filters.start_date:
            conditions.append(Video.created_at >= filters.start_date)
        if filters.end_date:
            conditions.append(Video.created_at <= filters.end_date)

        order = Video.created_at.asc() if filters.sort_by == "oldest" else Video.created_at.desc()

        async with self.session_maker() as session:
            count_result = await session.execute(
                select(func.count()).select_from(Video).where(and_(*conditions))
            )
            total = count_result.scalar() or 0

            result = await session.execute(
                select(Video)
                .where(and_(*conditions))
                .order_by(order, Video.id.desc())
                .offset(filters.skip)
                .limit(filters.limit)
            )
            return list(result.scalars().all()), total

    async def get_tenant(self, tenant_id: int) -> Tenant:
        async with self.session_maker() as session:
            tenant = await session.get(Tenant, tenant_id)
            if tenant is None:
                raise NotFoundError("Tenant not found", {"tenantId": tenant_id})
            return tenant

    async def get_tenant_usage(self, tenant_id: int) -> Tuple[float, float]:
        """(used_storage_gb, max_storage_gb) for a tenant."""
        tenant = await self.get_tenant(tenant_id)
        return tenant.used_storage_gb or 0.0, tenant.max_storage_gb

    async def find_stale(self, status: ProcessingStatus, older_than: timedelta) -> List[Video]:
        """Records stuck in `status` longer than `older_than` (across all tenants)."""
        cutoff = datetime.utcnow() - older_than
        if status == ProcessingStatus.PROCESSING:
            started = func.coalesce(Video.processing_started_at, Video.created_at)
        else:
            started = Video.created_at

        async with self.session_maker() as session:
            result = await session.execute(
                select(Video)
                .where(Video.processing_status == status.value, started < cutoff)
                .order_by(Video.id)
            )
            return list(result.scalars().all())

    # ----------------------------------------------------------------- writes

    async def create(
        self,
        *,
        owner_id: int,
        tenant_id: int,
        filename: str,
        original_filename: str,
        size: int,
        mime_type: str,
        file_extension: str,
        file_path: str,
        description: Optional[str] = None,
        tags: Optional[List[str]] = None,
        is_public: bool = False,
    ) -> Video:
        """Insert a new record in the pending/pending state."""
        video = Video(
            owner_id=owner_id,
            tenant_id=tenant_id,
            filename=filename,
            original_filename=original_filename,
            size=size,
            mime_type=mime_type,
            file_extension=file_extension,
            file_path=file_path,
            processing_status=ProcessingStatus.PENDING.value,
            processing_progress=0.0,
            sensitivity_status=SensitivityStatus.PENDING.value,
            sensitivity_flags=[],
            is_public=is_public,
            views=0,
            tags=list(tags or []),
            description=description,
        )
        async with self.session_maker() as session:
            session.add(video)
            await session.commit()
            await session.refresh(video)

        logger.info(f"Created video {video.id} ({original_filename}) for tenant {tenant_id}")
        return video

    async def _raise_for_missed_update(self, session: AsyncSession, video_id: int, tenant_id: int, target: str):
        video = await self._fetch(session, video_id, tenant_id)
        raise InvalidStateError(
            f"Cannot move video from {video.processing_status} to {target}",
            {"videoId": video_id, "status": video.processing_status},
        )

    async def claim_for_processing(self, video_id: int, tenant_id: int) -> Video:
        """
        Atomically move a pending video to processing.

        Raises AlreadyProcessingError if the video is in any other state, so
        at most one pipeline run ever owns a record.
        """
        async with self.session_maker() as session:
            result = await session.execute(
                update(Video)
                .where(
                    Video.id == video_id,
                    Video.tenant_id == tenant_id,
                    Video.processing_status == ProcessingStatus.PENDING.value,
                )
                .values(
                    processing_status=ProcessingStatus.PROCESSING.value,
                    processing_progress=10.0,
                    processing_started_at=datetime.utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                video = await self._fetch(session, video_id, tenant_id)
                raise AlreadyProcessingError(
                    "Video is not pending",
                    {"videoId": video_id, "status": video.processing_status},
                )
            await session.commit()
            return await self._fetch(session, video_id, tenant_id)

    async def update_processing_state(
        self,
        video_id: int,
        tenant_id: int,
        status: Optional[ProcessingStatus] = None,
        progress: Optional[float] = None,
        error: Optional[str] = None,
    ) -> Video:
        """
        Change processing status and/or progress.

        Status changes must follow pending -> processing -> completed|failed.
        Progress-only updates are accepted while the video is processing.
        """
        values = {}
        if progress is not None:
            values["processing_progress"] = max(0.0, min(100.0, float(progress)))

        if status is None:
            allowed_from = [ProcessingStatus.PROCESSING.value]
            target = ProcessingStatus.PROCESSING.value
        else:
            target = ProcessingStatus(status).value
            allowed_from = [s for s, nxt in PROCESSING_TRANSITIONS.items() if target in nxt]
            values["processing_status"] = target
            if target == ProcessingStatus.PROCESSING.value:
                values["processing_started_at"] = datetime.utcnow()
            if target == ProcessingStatus.FAILED.value:
                values["processing_error"] = (error or "Processing failed")[:MAX_ERROR_LENGTH]
            if target == ProcessingStatus.COMPLETED.value:
                values["processing_progress"] = 100.0
                values["processed_at"] = datetime.utcnow()

        async with self.session_maker() as session:
            result = await session.execute(
                update(Video)
                .where(
                    Video.id == video_id,
                    Video.tenant_id == tenant_id,
                    Video.processing_status.in_(allowed_from),
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await self._raise_for_missed_update(session, video_id, tenant_id, target)
            await session.commit()
            return await self._fetch(session, video_id, tenant_id)

    async def update_media(
        self,
        video_id: int,
        tenant_id: int,
        duration: Optional[float],
        width: Optional[int],
        height: Optional[int],
        frame_rate: Optional[float] = None,
        progress: Optional[float] = None,
    ) -> Video:
        """Persist extracted media attributes (only while processing)."""
        values = {"duration": duration, "width": width, "height": height, "frame_rate": frame_rate}
        if progress is not None:
            values["processing_progress"] = progress

        async with self.session_maker() as session:
            result = await session.execute(
                update(Video)
                .where(
                    Video.id == video_id,
                    Video.tenant_id == tenant_id,
                    Video.processing_status == ProcessingStatus.PROCESSING.value,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await self._raise_for_missed_update(session, video_id, tenant_id, "media update")
            await session.commit()
            return await self._fetch(session, video_id, tenant_id)

    async def update_sensitivity(
        self,
        video_id: int,
        tenant_id: int,
        status: SensitivityStatus,
        score: int,
        reason: str,
        flags: List[str],
        progress: Optional[float] = None,
    ) -> Video:
        """Record the classifier outcome. Sensitivity is only ever set once."""
        status = SensitivityStatus(status)
        if status == SensitivityStatus.PENDING:
            raise InvalidStateError("Sensitivity can only move to safe or flagged")

        values = {
            "sensitivity_status": status.value,
            "sensitivity_score": int(score),
            "sensitivity_reason": reason,
            "sensitivity_flags": list(flags),
        }
        if progress is not None:
            values["processing_progress"] = progress

        async with self.session_maker() as session:
            result = await session.execute(
                update(Video)
                .where(
                    Video.id == video_id,
                    Video.tenant_id == tenant_id,
                    Video.sensitivity_status == SensitivityStatus.PENDING.value,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                video = await self._fetch(session, video_id, tenant_id)
                raise InvalidStateError(
                    f"Sensitivity already set to {video.sensitivity_status}",
                    {"videoId": video_id, "sensitivityStatus": video.sensitivity_status},
                )
            await session.commit()
            return await self._fetch(session, video_id, tenant_id)

    async def mark_completed(self, video_id: int, tenant_id: int) -> Video:
        """
        Finish processing and charge the video's size to the tenant.

        Both writes happen in one transaction.
        """
        async with self.session_maker() as session:
            result = await session.execute(
                update(Video)
                .where(
                    Video.id == video_id,
                    Video.tenant_id == tenant_id,
                    Video.processing_status == ProcessingStatus.PROCESSING.value,
                )
                .values(
                    processing_status=ProcessingStatus.COMPLETED.value,
                    processing_progress=100.0,
                    processed_at=datetime.utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await self._raise_for_missed_update(
                    session, video_id, tenant_id, ProcessingStatus.COMPLETED.value
                )

            video = await self._fetch(session, video_id, tenant_id)
            await self._adjust_tenant_storage(session, tenant_id, size_in_gb(video.size))
            await session.commit()
            return video

    async def mark_failed(self, video_id: int, tenant_id: int, error: str) -> Video:
        return await self.update_processing_state(
            video_id, tenant_id, status=ProcessingStatus.FAILED, error=error
        )

    async def increment_views(self, video_id: int, tenant_id: int) -> None:
        async with self.session_maker() as session:
            await session.execute(
                update(Video)
                .where(Video.id == video_id, Video.tenant_id == tenant_id)
                .values(views=Video.views + 1)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

    async def update_metadata(
        self, video_id: int, requester_id: int, tenant_id: int, updates: VideoUpdate
    ) -> Video:
        """Owner-only edit of description, tags and visibility."""
        changes = updates.model_dump(exclude_unset=True)
        async with self.session_maker() as session:
            video = await self._fetch(session, video_id, tenant_id)
            if video.owner_id != requester_id:
                raise UnauthorizedError("Unauthorized", {"videoId": video_id})

            if "description" in changes:
                video.description = changes["description"]
            if "tags" in changes:
                video.tags = [t.strip() for t in (changes["tags"] or []) if t and t.strip()]
            if "is_public" in changes and changes["is_public"] is not None:
                video.is_public = bool(changes["is_public"])

            await session.commit()
            await session.refresh(video)
            return video

    async def delete(self, video_id: int, requester_id: int, tenant_id: int) -> Video:
        """
        Delete a record (owner only) and release its storage charge.

        Only completed videos were ever charged to the tenant, so only those
        are refunded. The DELETE only matches the status that was read; if the
        pipeline moved the record in between, the row is read again. Removing
        the bytes is the caller's job.
        """
        async with self.session_maker() as session:
            while True:
                video = await self._fetch(session, video_id, tenant_id)
                if video.owner_id != requester_id:
                    raise UnauthorizedError("Unauthorized to delete this video", {"videoId": video_id})

                seen_status = video.processing_status
                result = await session.execute(
                    delete(Video)
                    .where(
                        Video.id == video_id,
                        Video.tenant_id == tenant_id,
                        Video.processing_status == seen_status,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    break
                logger.info(f"Video {video_id} left {seen_status} during delete; retrying")
                await session.rollback()

            if seen_status == ProcessingStatus.COMPLETED.value:
                await self._adjust_tenant_storage(session, tenant_id, -size_in_gb(video.size))
            await session.commit()

        logger.info(f"Deleted video {video_id} from tenant {tenant_id}")
        return video

    async def _adjust_tenant_storage(self, session: AsyncSession, tenant_id: int, delta_gb: float):
        """Atomic add to used_storage_gb, clamped at zero."""
        new_value = Tenant.used_storage_gb + delta_gb
        await session.execute(
            update(Tenant)
            .where(Tenant.id == tenant_id)
            .values(used_storage_gb=case((new_value < 0, 0.0), else_=new_value))
            .execution_options(synchronize_session=False)
        )
