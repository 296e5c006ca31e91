import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import update

from main import create_app
from videovault.config import Settings
from videovault.database import build_engine, build_session_maker, init_db
from videovault.models.tenant import Tenant
from videovault.models.user import Role, User
from videovault.models.video import Video
from videovault.services.metadata import VideoMetadata
from videovault.services.storage import FileStorage
from videovault.services.video_store import VideoStore

VIDEO_BYTES = bytes(range(256)) * 4  # 1024 bytes


@dataclass
class Seeded:
    tenant_id: int
    owner_id: int
    other_id: int
    other_tenant_id: int
    outsider_id: int


class FakeExtractor:
    """Returns fixed metadata without touching the file."""

    def __init__(self, duration=10.0, width=1920, height=1080, frame_rate=30.0, delay=0.0, error=None):
        self.metadata = VideoMetadata(
            duration=duration,
            width=width,
            height=height,
            frame_rate=frame_rate,
            total_frames=int(duration * frame_rate),
            source="ffprobe",
        )
        self.delay = delay
        self.error = error
        self.calls = []

    async def extract(self, file_path):
        self.calls.append(file_path)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.metadata


class RecordingNotifier:
    def __init__(self):
        self.events = []

    async def emit(self, tenant_id, event, payload):
        self.events.append((tenant_id, event, payload))

    @property
    def names(self):
        return [name for _, name, _ in self.events]


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        UPLOAD_DIR=str(tmp_path / "uploads"),
        SECRET_KEY="test-secret",
        SENSITIVITY_RANDOM_RATE=0.0,
        STAGE_TIMEOUT_SECONDS=5.0,
        PROBE_TIMEOUT_SECONDS=5.0,
        STREAM_CHUNK_SIZE=100,
    )


@pytest.fixture
def session_maker(test_settings):
    engine = build_engine(test_settings.DATABASE_URL, pooled=False)
    asyncio.run(init_db(engine))
    yield build_session_maker(engine)
    asyncio.run(engine.dispose())


@pytest.fixture
def store(session_maker):
    return VideoStore(session_maker)


@pytest.fixture
def storage(test_settings):
    return FileStorage(test_settings.UPLOAD_DIR, chunk_size=256)


async def _seed(session_maker):
    async with session_maker() as session:
        tenant = Tenant(name="Acme", max_storage_gb=100.0, used_storage_gb=0.0)
        other_tenant = Tenant(name="Globex", max_storage_gb=100.0, used_storage_gb=0.0)
        session.add_all([tenant, other_tenant])
        await session.flush()

        def user(email, role, tenant_id):
            return User(
                email=email,
                password_salt="c2FsdA==",
                password_hash="aGFzaA==",
                first_name="Test",
                last_name="User",
                role=role,
                tenant_id=tenant_id,
                memberships=[],
            )

        owner = user("owner@acme.test", Role.ADMIN.value, tenant.id)
        other = user("editor@acme.test", Role.EDITOR.value, tenant.id)
        outsider = user("owner@globex.test", Role.ADMIN.value, other_tenant.id)
        session.add_all([owner, other, outsider])
        await session.commit()

        return Seeded(
            tenant_id=tenant.id,
            owner_id=owner.id,
            other_id=other.id,
            other_tenant_id=other_tenant.id,
            outsider_id=outsider.id,
        )


@pytest.fixture
def seeded(session_maker):
    return asyncio.run(_seed(session_maker))


async def create_video(store, seeded, directory: Path, content=VIDEO_BYTES, size=None, is_public=False,
                       owner_id=None, name="clip.mp4"):
    """Write a file and insert a pending record pointing at it."""
    directory.mkdir(parents=True, exist_ok=True)
    file_path = directory / f"{uuid.uuid4()}-{name}"
    file_path.write_bytes(content)
    return await store.create(
        owner_id=owner_id or seeded.owner_id,
        tenant_id=seeded.tenant_id,
        filename=file_path.name,
        original_filename=name,
        size=size if size is not None else len(content),
        mime_type="video/mp4",
        file_extension=".mp4",
        file_path=str(file_path),
        is_public=is_public,
    )


async def complete_video(store, video):
    """Drive a pending record to completed through the store API."""
    await store.claim_for_processing(video.id, video.tenant_id)
    await store.update_media(video.id, video.tenant_id, duration=10.0, width=1920, height=1080, frame_rate=30.0)
    await store.update_sensitivity(video.id, video.tenant_id, "safe", 0, "Video passed sensitivity checks", [])
    return await store.mark_completed(video.id, video.tenant_id)


async def age_video(session_maker, video_id, hours=1):
    """Pretend a record was created and started long ago."""
    past = datetime.utcnow() - timedelta(hours=hours)
    async with session_maker() as session:
        await session.execute(
            update(Video)
            .where(Video.id == video_id)
            .values(created_at=past, processing_started_at=past)
        )
        await session.commit()


async def set_tenant_storage(session_maker, tenant_id, used=None, maximum=None):
    values = {}
    if used is not None:
        values["used_storage_gb"] = used
    if maximum is not None:
        values["max_storage_gb"] = maximum
    async with session_maker() as session:
        await session.execute(update(Tenant).where(Tenant.id == tenant_id).values(**values))
        await session.commit()


@pytest.fixture
def app(test_settings):
    app = create_app(test_settings, reconcile=False)
    app.state.pipeline.extractor = FakeExtractor()
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def register(client, email="admin@acme.test", tenant_name="Acme", **extra):
    payload = {
        "email": email,
        "password": "correct-horse",
        "first_name": "Ada",
        "last_name": "Admin",
        "tenant_name": tenant_name,
    }
    payload.update(extra)
    response = client.post("/api/auth/register", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


def upload(client, token, name="clip.mp4", content=VIDEO_BYTES, **form):
    return client.post(
        "/api/videos/upload",
        files={"file": (name, content, "video/mp4")},
        data=form,
        headers=auth_headers(token),
    )
