import asyncio
import os

import pytest

from conftest import VIDEO_BYTES, complete_video, create_video
from videovault.errors import (
    FileMissingError,
    InvalidStateError,
    RangeNotSatisfiableError,
    UnauthorizedError,
    ValidationFailedError,
)
from videovault.services.streaming import StreamingService, parse_range

SIZE = len(VIDEO_BYTES)


@pytest.fixture
def streaming(store, storage):
    return StreamingService(store, storage, chunk_size=100)


async def collect(streaming, plan):
    body = b"".join([chunk async for chunk in plan.body])
    await streaming.wait_for_pending_views()
    return body


@pytest.mark.parametrize(
    "header, expected",
    [
        (None, None),
        ("", None),
        ("bytes=0-99", (0, 99)),
        ("bytes=100-", (100, SIZE - 1)),
        ("bytes=1000-5000", (1000, SIZE - 1)),
        ("bytes=-24", (SIZE - 24, SIZE - 1)),
        ("bytes=-5000", (0, SIZE - 1)),
    ],
)
def test_parse_range(header, expected):
    assert parse_range(header, SIZE) == expected


@pytest.mark.parametrize("header", ["bytes=abc", "items=0-1", "bytes=0-1,5-6", "bytes=-", "bytes=50-10"])
def test_malformed_ranges(header):
    with pytest.raises(ValidationFailedError):
        parse_range(header, SIZE)


def test_range_past_end():
    with pytest.raises(RangeNotSatisfiableError) as exc_info:
        parse_range(f"bytes={SIZE}-", SIZE)
    assert exc_info.value.to_payload()["start"] == SIZE
    assert exc_info.value.to_payload()["size"] == SIZE
    assert exc_info.value.status_code == 416


def test_full_file(store, seeded, streaming, tmp_path):
    async def scenario():
        video = await complete_video(store, await create_video(store, seeded, tmp_path, name="site walk.mp4"))
        plan = await streaming.open(video.id, seeded.owner_id, seeded.tenant_id)
        return plan, await collect(streaming, plan)

    plan, body = asyncio.run(scenario())

    assert plan.status_code == 200
    assert body == VIDEO_BYTES
    assert plan.headers["Content-Length"] == str(SIZE)
    assert plan.headers["Accept-Ranges"] == "bytes"
    assert plan.headers["Content-Type"] == "video/mp4"
    assert plan.headers["Content-Disposition"] == 'attachment; filename="site walk.mp4"'


def test_partial_content(store, seeded, streaming, tmp_path):
    async def scenario():
        video = await complete_video(store, await create_video(store, seeded, tmp_path))
        plan = await streaming.open(video.id, seeded.owner_id, seeded.tenant_id, "bytes=10-309")
        return plan, await collect(streaming, plan)

    plan, body = asyncio.run(scenario())

    assert plan.status_code == 206
    assert body == VIDEO_BYTES[10:310]
    assert plan.headers["Content-Range"] == f"bytes 10-309/{SIZE}"
    assert plan.headers["Content-Length"] == "300"
    assert "Content-Disposition" not in plan.headers


def test_whole_file_as_range(store, seeded, streaming, tmp_path):
    async def scenario():
        video = await complete_video(store, await create_video(store, seeded, tmp_path))
        plan = await streaming.open(video.id, seeded.owner_id, seeded.tenant_id, f"bytes=0-{SIZE - 1}")
        return plan, await collect(streaming, plan)

    plan, body = asyncio.run(scenario())
    assert plan.status_code == 206
    assert body == VIDEO_BYTES


def test_unsatisfiable_range(store, seeded, streaming, tmp_path):
    async def scenario():
        video = await complete_video(store, await create_video(store, seeded, tmp_path))
        with pytest.raises(RangeNotSatisfiableError):
            await streaming.open(video.id, seeded.owner_id, seeded.tenant_id, f"bytes={SIZE}-")
        await streaming.wait_for_pending_views()
        return await store.get(video.id, seeded.tenant_id)

    assert asyncio.run(scenario()).views == 0


def test_processing_video_cannot_be_streamed(store, seeded, streaming, tmp_path):
    async def scenario():
        video = await create_video(store, seeded, tmp_path)
        await store.claim_for_processing(video.id, seeded.tenant_id)
        with pytest.raises(InvalidStateError) as exc_info:
            await streaming.open(video.id, seeded.owner_id, seeded.tenant_id)
        return exc_info.value

    error = asyncio.run(scenario())
    assert error.to_payload()["error"] == "Video is still processing or failed"
    assert error.to_payload()["status"] == "processing"


def test_missing_file(store, seeded, streaming, tmp_path):
    async def scenario():
        video = await complete_video(store, await create_video(store, seeded, tmp_path))
        os.remove(video.file_path)
        with pytest.raises(FileMissingError):
            await streaming.open(video.id, seeded.owner_id, seeded.tenant_id)

    asyncio.run(scenario())


def test_private_video_is_owner_only(store, seeded, streaming, tmp_path):
    async def scenario():
        video = await complete_video(store, await create_video(store, seeded, tmp_path))
        with pytest.raises(UnauthorizedError):
            await streaming.open(video.id, seeded.other_id, seeded.tenant_id)

    asyncio.run(scenario())


def test_public_video_streams_for_tenant_members(store, seeded, streaming, tmp_path):
    async def scenario():
        video = await complete_video(store, await create_video(store, seeded, tmp_path, is_public=True))
        plan = await streaming.open(video.id, seeded.other_id, seeded.tenant_id, "bytes=0-0")
        return await collect(streaming, plan)

    assert asyncio.run(scenario()) == VIDEO_BYTES[:1]


def test_each_open_counts_one_view(store, seeded, streaming, tmp_path):
    async def scenario():
        video = await complete_video(store, await create_video(store, seeded, tmp_path))
        for header in (None, "bytes=0-99", "bytes=100-"):
            await streaming.open(video.id, seeded.owner_id, seeded.tenant_id, header)
        await streaming.wait_for_pending_views()
        return await store.get(video.id, seeded.tenant_id)

    assert asyncio.run(scenario()).views == 3


def test_file_removed_mid_stream_ends_body(store, seeded, streaming, tmp_path):
    async def scenario():
        video = await complete_video(store, await create_video(store, seeded, tmp_path))
        plan = await streaming.open(video.id, seeded.owner_id, seeded.tenant_id)
        os.remove(video.file_path)
        return await collect(streaming, plan)

    assert asyncio.run(scenario()) == b""
