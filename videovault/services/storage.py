"""
Local file storage for uploaded videos.

Contract: store bytes, report size/existence, read back a byte range in
bounded chunks.
"""

import logging
import os
import uuid
from pathlib import Path
from typing import AsyncIterator, Optional

import aiofiles
import aiofiles.os
from fastapi import UploadFile

from videovault.config import settings
from videovault.errors import ValidationFailedError

logger = logging.getLogger(__name__)


class FileStorage:
    """Stores uploads under <root>/<tenant_id>/<uuid><ext>."""

    def __init__(self, root: Optional[str] = None, chunk_size: Optional[int] = None):
        self.root = Path(root or settings.UPLOAD_DIR)
        self.chunk_size = chunk_size or settings.UPLOAD_CHUNK_SIZE

    def tenant_dir(self, tenant_id: int) -> Path:
        return self.root / str(tenant_id)

    def resolve(self, file_path: str) -> Path:
        """Absolute path for a stored file_path (relative paths are taken from the cwd)."""
        path = Path(file_path)
        return path if path.is_absolute() else Path.cwd() / path

    async def save_upload(self, upload: UploadFile, tenant_id: int, max_size: int) -> tuple:
        """
        Stream an UploadFile to disk.

        Returns (stored filename, file path, size in bytes). The partial file
        is removed if the upload exceeds max_size or the write fails.
        """
        ext = Path(upload.filename or "").suffix.lower()
        unique_filename = f"{uuid.uuid4()}{ext}"
        directory = self.tenant_dir(tenant_id)
        os.makedirs(directory, exist_ok=True)
        file_path = str(directory / unique_filename)

        size = 0
        try:
            async with aiofiles.open(file_path, "wb") as out_file:
                while True:
                    chunk = await upload.read(self.chunk_size)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > max_size:
                        raise ValidationFailedError(
                            f"File too large. Maximum size is {max_size} bytes",
                            {"max_size": max_size},
                        )
                    await out_file.write(chunk)
        except Exception:
            await self.remove(file_path)
            raise

        return unique_filename, file_path, size

    async def exists(self, file_path: str) -> bool:
        return await aiofiles.os.path.isfile(self.resolve(file_path))

    async def size(self, file_path: str) -> int:
        stat = await aiofiles.os.stat(self.resolve(file_path))
        return stat.st_size

    async def remove(self, file_path: str) -> bool:
        """Delete a stored file. Returns False if it was already gone."""
        try:
            await aiofiles.os.remove(self.resolve(file_path))
            return True
        except FileNotFoundError:
            return False

    async def iter_range(
        self, file_path: str, start: int, end: int, chunk_size: Optional[int] = None
    ) -> AsyncIterator[bytes]:
        """Yield bytes start..end (inclusive) in chunks of at most chunk_size."""
        chunk_size = chunk_size or self.chunk_size
        remaining = end - start + 1
        async with aiofiles.open(self.resolve(file_path), "rb") as f:
            await f.seek(start)
            while remaining > 0:
                chunk = await f.read(min(chunk_size, remaining))
                if not chunk:
                    break
                remaining -= len(chunk)
                yield chunk
