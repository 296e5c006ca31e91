"""
VideoVault
Main FastAPI Application Entry Point
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from videovault.config import Settings, settings
from videovault.database import build_engine, build_session_maker, init_db
from videovault.errors import RangeNotSatisfiableError, VideoVaultError
from videovault.routers import auth, events, streaming, videos
from videovault.services.accounts import AccountService
from videovault.services.metadata import MetadataExtractor
from videovault.services.notifier import TenantNotifier
from videovault.services.pipeline import ProcessingPipeline
from videovault.services.reconciler import StaleRecordReconciler
from videovault.services.sensitivity import SensitivityClassifier
from videovault.services.storage import FileStorage
from videovault.services.streaming import StreamingService
from videovault.services.video_store import VideoStore

logger = logging.getLogger(__name__)


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    await init_db(app.state.engine)
    if app.state.reconcile:
        app.state.reconciler.start()

    yield

    # Shutdown
    await app.state.reconciler.stop()
    await app.state.pipeline.shutdown()
    await app.state.streaming.wait_for_pending_views()
    await app.state.engine.dispose()


async def videovault_error_handler(request: Request, exc: VideoVaultError):
    headers = None
    if isinstance(exc, RangeNotSatisfiableError):
        headers = {"Content-Range": f"bytes */{exc.size}"}
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload(), headers=headers)


def create_app(app_settings: Optional[Settings] = None, reconcile: bool = True) -> FastAPI:
    """
    Build the application and its services.

    Services live on app.state so tests can swap them before the first
    request.
    """
    app_settings = app_settings or settings
    os.makedirs(app_settings.UPLOAD_DIR, exist_ok=True)

    app = FastAPI(
        title="VideoVault",
        description="Multi-tenant video upload, sensitivity screening and streaming",
        version="1.0.0",
        lifespan=lifespan,
    )

    engine = build_engine(app_settings.DATABASE_URL, pooled=not app_settings.DATABASE_URL.startswith("sqlite"))
    session_maker = build_session_maker(engine)

    notifier = TenantNotifier()
    storage = FileStorage(app_settings.UPLOAD_DIR, app_settings.UPLOAD_CHUNK_SIZE)
    store = VideoStore(session_maker)
    pipeline = ProcessingPipeline(
        store,
        extractor=MetadataExtractor(app_settings.FFPROBE_PATH, app_settings.PROBE_TIMEOUT_SECONDS),
        classifier=SensitivityClassifier.from_settings(app_settings),
        notifier=notifier,
        stage_timeout=app_settings.STAGE_TIMEOUT_SECONDS,
    )

    app.state.settings = app_settings
    app.state.engine = engine
    app.state.session_maker = session_maker
    app.state.notifier = notifier
    app.state.storage = storage
    app.state.video_store = store
    app.state.pipeline = pipeline
    app.state.streaming = StreamingService(store, storage, app_settings.STREAM_CHUNK_SIZE)
    app.state.accounts = AccountService(session_maker, app_settings.SECRET_KEY)
    app.state.reconciler = StaleRecordReconciler(
        store,
        storage,
        pipeline,
        notifier,
        interval=app_settings.RECONCILE_INTERVAL_SECONDS,
        stale_processing=app_settings.STALE_PROCESSING_SECONDS,
        stale_pending=app_settings.STALE_PENDING_SECONDS,
    )
    app.state.reconcile = reconcile

    app.add_exception_handler(VideoVaultError, videovault_error_handler)

    # CORS configuration for frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
    app.include_router(videos.router, prefix="/api/videos", tags=["Videos"])
    app.include_router(streaming.router, prefix="/api/videos", tags=["Streaming"])
    app.include_router(events.router, prefix="/ws", tags=["Events"])

    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {
            "status": "running",
            "message": "VideoVault API",
            "docs": "/docs"
        }

    @app.get("/health")
    async def health_check():
        """Detailed health check."""
        return {
            "status": "healthy",
            "database": "connected",
            "event_connections": sum(len(room) for room in notifier.rooms.values()),
        }

    return app


configure_logging(settings.LOG_LEVEL)
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
