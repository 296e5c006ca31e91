import asyncio
from datetime import timedelta

import pytest

from conftest import age_video, complete_video, create_video, set_tenant_storage
from videovault.errors import (
    AlreadyProcessingError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
)
from videovault.models.video import ProcessingStatus
from videovault.schemas.video import VideoFilters, VideoUpdate
from videovault.services.video_store import BYTES_PER_GB


def test_create_starts_pending(store, seeded, tmp_path):
    video = asyncio.run(create_video(store, seeded, tmp_path))

    assert video.processing_status == "pending"
    assert video.sensitivity_status == "pending"
    assert video.processing_progress == 0
    assert video.views == 0


def test_claim_is_exclusive(store, seeded, tmp_path):
    async def scenario():
        video = await create_video(store, seeded, tmp_path)
        claimed = await store.claim_for_processing(video.id, seeded.tenant_id)
        assert claimed.processing_status == "processing"
        assert claimed.processing_progress == 10
        assert claimed.processing_started_at is not None

        with pytest.raises(AlreadyProcessingError) as exc_info:
            await store.claim_for_processing(video.id, seeded.tenant_id)
        assert exc_info.value.details["status"] == "processing"

    asyncio.run(scenario())


@pytest.mark.parametrize("target", [ProcessingStatus.COMPLETED, ProcessingStatus.FAILED])
def test_pending_cannot_skip_processing(store, seeded, tmp_path, target):
    async def scenario():
        video = await create_video(store, seeded, tmp_path)
        with pytest.raises(InvalidStateError):
            await store.update_processing_state(video.id, seeded.tenant_id, status=target)
        assert (await store.get(video.id, seeded.tenant_id)).processing_status == "pending"

    asyncio.run(scenario())


def test_terminal_states_are_final(store, seeded, tmp_path):
    async def scenario():
        video = await complete_video(store, await create_video(store, seeded, tmp_path))
        for status in (ProcessingStatus.PROCESSING, ProcessingStatus.FAILED, ProcessingStatus.PENDING):
            with pytest.raises(InvalidStateError):
                await store.update_processing_state(video.id, seeded.tenant_id, status=status)
        with pytest.raises(InvalidStateError):
            await store.update_processing_state(video.id, seeded.tenant_id, progress=50)

    asyncio.run(scenario())


def test_mark_failed_records_truncated_error(store, seeded, tmp_path):
    async def scenario():
        video = await create_video(store, seeded, tmp_path)
        await store.claim_for_processing(video.id, seeded.tenant_id)
        failed = await store.mark_failed(video.id, seeded.tenant_id, "x" * 5000)
        assert failed.processing_status == "failed"
        assert len(failed.processing_error) == 1000

    asyncio.run(scenario())


def test_sensitivity_is_set_once(store, seeded, tmp_path):
    async def scenario():
        video = await complete_video(store, await create_video(store, seeded, tmp_path))
        assert video.sensitivity_status == "safe"
        with pytest.raises(InvalidStateError):
            await store.update_sensitivity(video.id, seeded.tenant_id, "flagged", 80, "late", [])

    asyncio.run(scenario())


def test_records_are_tenant_scoped(store, seeded, tmp_path):
    async def scenario():
        video = await create_video(store, seeded, tmp_path)
        with pytest.raises(NotFoundError):
            await store.get(video.id, seeded.other_tenant_id)
        with pytest.raises(NotFoundError):
            await store.get_by_id(video.id, seeded.outsider_id, seeded.other_tenant_id)
        with pytest.raises(NotFoundError):
            await store.claim_for_processing(video.id, seeded.other_tenant_id)

    asyncio.run(scenario())


def test_private_videos_are_owner_only(store, seeded, tmp_path):
    async def scenario():
        private = await create_video(store, seeded, tmp_path)
        public = await create_video(store, seeded, tmp_path, is_public=True)

        with pytest.raises(UnauthorizedError):
            await store.get_by_id(private.id, seeded.other_id, seeded.tenant_id)
        assert (await store.get_by_id(public.id, seeded.other_id, seeded.tenant_id)).id == public.id
        assert (await store.get_by_id(private.id, seeded.owner_id, seeded.tenant_id)).id == private.id

    asyncio.run(scenario())


def test_listing_visibility_and_filters(store, seeded, tmp_path):
    async def scenario():
        mine = await create_video(store, seeded, tmp_path, owner_id=seeded.other_id)
        public = await create_video(store, seeded, tmp_path, is_public=True)
        private = await create_video(store, seeded, tmp_path)
        await complete_video(store, public)

        videos, total = await store.list_for_user(seeded.other_id, seeded.tenant_id)
        assert total == 2
        assert {v.id for v in videos} == {mine.id, public.id}

        videos, total = await store.list_for_user(seeded.owner_id, seeded.tenant_id, is_admin=True)
        assert total == 3
        assert private.id in {v.id for v in videos}

        filters = VideoFilters(processing_status="completed")
        videos, total = await store.list_for_user(seeded.other_id, seeded.tenant_id, filters)
        assert [v.id for v in videos] == [public.id]

        filters = VideoFilters(sort_by="oldest", limit=1)
        videos, total = await store.list_for_user(seeded.other_id, seeded.tenant_id, filters)
        assert total == 2
        assert [v.id for v in videos] == [mine.id]

    asyncio.run(scenario())


def test_concurrent_view_increments_are_not_lost(store, seeded, tmp_path):
    async def scenario():
        video = await create_video(store, seeded, tmp_path)
        await asyncio.gather(*[store.increment_views(video.id, seeded.tenant_id) for _ in range(10)])
        return await store.get(video.id, seeded.tenant_id)

    assert asyncio.run(scenario()).views == 10


def test_update_metadata_is_owner_only(store, seeded, tmp_path):
    async def scenario():
        video = await create_video(store, seeded, tmp_path)
        updated = await store.update_metadata(
            video.id, seeded.owner_id, seeded.tenant_id,
            VideoUpdate(description="Site walk", tags=[" safety ", "", "q3"], is_public=True),
        )
        assert updated.description == "Site walk"
        assert updated.tags == ["safety", "q3"]
        assert updated.is_public is True

        with pytest.raises(UnauthorizedError):
            await store.update_metadata(video.id, seeded.other_id, seeded.tenant_id, VideoUpdate(description="x"))

    asyncio.run(scenario())


def test_storage_charged_on_completion_and_refunded_on_delete(store, seeded, session_maker, tmp_path):
    """Deleting a completed 2GB video from a tenant at 5GB leaves 3GB."""
    async def scenario():
        await set_tenant_storage(session_maker, seeded.tenant_id, used=3.0)
        video = await create_video(store, seeded, tmp_path, size=2 * BYTES_PER_GB)
        await complete_video(store, video)
        used_after_completion, _ = await store.get_tenant_usage(seeded.tenant_id)

        await store.delete(video.id, seeded.owner_id, seeded.tenant_id)
        used_after_delete, _ = await store.get_tenant_usage(seeded.tenant_id)
        return used_after_completion, used_after_delete

    used_after_completion, used_after_delete = asyncio.run(scenario())
    assert used_after_completion == pytest.approx(5.0)
    assert used_after_delete == pytest.approx(3.0)


def test_deleting_unprocessed_video_does_not_refund(store, seeded, session_maker, tmp_path):
    async def scenario():
        await set_tenant_storage(session_maker, seeded.tenant_id, used=1.0)
        video = await create_video(store, seeded, tmp_path, size=BYTES_PER_GB)
        await store.delete(video.id, seeded.owner_id, seeded.tenant_id)
        return await store.get_tenant_usage(seeded.tenant_id)

    used, _ = asyncio.run(scenario())
    assert used == pytest.approx(1.0)


def test_delete_refunds_video_completed_while_deleting(store, seeded, session_maker, tmp_path, monkeypatch):
    """Completion that commits between the delete's read and its write is still refunded."""
    async def scenario():
        await set_tenant_storage(session_maker, seeded.tenant_id, used=5.0)
        video = await create_video(store, seeded, tmp_path, size=2 * BYTES_PER_GB)
        await store.claim_for_processing(video.id, seeded.tenant_id)
        await store.update_sensitivity(video.id, seeded.tenant_id, "safe", 0, "Video passed sensitivity checks", [])

        original_fetch = store._fetch
        calls = []

        async def fetch_then_finish(session, video_id, tenant_id):
            found = await original_fetch(session, video_id, tenant_id)
            calls.append(found.processing_status)
            if len(calls) == 1:
                await store.mark_completed(video_id, tenant_id)
            return found

        monkeypatch.setattr(store, "_fetch", fetch_then_finish)
        await store.delete(video.id, seeded.owner_id, seeded.tenant_id)
        monkeypatch.setattr(store, "_fetch", original_fetch)

        with pytest.raises(NotFoundError):
            await store.get(video.id, seeded.tenant_id)
        used, _ = await store.get_tenant_usage(seeded.tenant_id)
        return calls, used

    calls, used = asyncio.run(scenario())
    assert calls[0] == "processing"
    assert calls[-1] == "completed"
    assert used == pytest.approx(5.0)


def test_storage_never_goes_negative(store, seeded, session_maker, tmp_path):
    async def scenario():
        video = await complete_video(store, await create_video(store, seeded, tmp_path, size=BYTES_PER_GB))
        await set_tenant_storage(session_maker, seeded.tenant_id, used=0.25)
        await store.delete(video.id, seeded.owner_id, seeded.tenant_id)
        return await store.get_tenant_usage(seeded.tenant_id)

    used, _ = asyncio.run(scenario())
    assert used == 0.0


def test_delete_is_owner_only(store, seeded, tmp_path):
    async def scenario():
        video = await create_video(store, seeded, tmp_path)
        with pytest.raises(UnauthorizedError):
            await store.delete(video.id, seeded.other_id, seeded.tenant_id)
        assert (await store.get(video.id, seeded.tenant_id)).id == video.id

    asyncio.run(scenario())


def test_find_stale(store, seeded, session_maker, tmp_path):
    async def scenario():
        fresh = await create_video(store, seeded, tmp_path)
        old = await create_video(store, seeded, tmp_path)
        await age_video(session_maker, old.id)

        stale = await store.find_stale(ProcessingStatus.PENDING, timedelta(minutes=5))
        return fresh, old, stale

    fresh, old, stale = asyncio.run(scenario())
    assert [v.id for v in stale] == [old.id]
