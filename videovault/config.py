"""
Application configuration settings.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./videovault.db"

    # File Storage
    UPLOAD_DIR: str = "uploads"
    MAX_UPLOAD_SIZE: int = 500 * 1024 * 1024  # 500MB
    ALLOWED_EXTENSIONS: List[str] = [".mp4", ".mkv", ".mov", ".avi", ".webm"]
    UPLOAD_CHUNK_SIZE: int = 1024 * 1024
    DEFAULT_MAX_STORAGE_GB: float = 100.0

    # Auth tokens
    SECRET_KEY: str = "change-me-in-production"
    TOKEN_MAX_AGE_SECONDS: int = 7 * 24 * 60 * 60  # 7 days
    INVITE_TTL_DAYS: int = 7

    # Metadata probing
    FFPROBE_PATH: str = "ffprobe"
    PROBE_TIMEOUT_SECONDS: float = 30.0

    # Processing pipeline
    # Upper bound for each pipeline stage (extract / classify / finalize)
    STAGE_TIMEOUT_SECONDS: float = 120.0

    # Sensitivity classifier
    # Probability of the placeholder "automatic_detection" rule firing (0 disables it)
    SENSITIVITY_RANDOM_RATE: float = 0.2
    SENSITIVITY_RANDOM_SEED: Optional[int] = None

    # Streaming
    STREAM_CHUNK_SIZE: int = 64 * 1024

    # Reconciler for records stranded by a crash
    RECONCILE_INTERVAL_SECONDS: float = 60.0
    STALE_PROCESSING_SECONDS: float = 30 * 60
    STALE_PENDING_SECONDS: float = 5 * 60

    # HTTP
    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
