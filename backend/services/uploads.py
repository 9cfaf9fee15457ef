"""Upload strategies - how an incoming image is staged before it goes to storage.

- "memory": the file is read into a buffer and uploaded from there.
- "disk": the file is copied to a temporary file under ``upload_dir`` and
  uploaded from that path. The temporary file is removed afterwards.

Both return the storage key the image was saved under.
"""

import asyncio
import logging
import secrets
import shutil
import time
from abc import ABC, abstractmethod
from pathlib import Path

from fastapi import UploadFile

from errors import StorageError
from services.storage import StorageClient

logger = logging.getLogger(__name__)


def make_storage_key(filename: str | None) -> str:
    """Build a unique object key: ``<epoch-millis>-<8 hex>-<original name>``."""
    name = Path(filename or "upload").name or "upload"
    return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}-{name}"


def make_staging_name(filename: str | None) -> str:
    """Local temp file name: ``image-<epoch-millis>-<random>.<ext>``."""
    ext = Path(filename or "").suffix.lstrip(".") or "bin"
    return f"image-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}.{ext}"


class UploadStrategy(ABC):
    """Stages an uploaded file and pushes it to object storage."""

    name: str

    def __init__(self, storage: StorageClient):
        self.storage = storage

    @abstractmethod
    async def upload(self, file: UploadFile) -> str:
        """Upload ``file`` and return its storage key."""


class MemoryUploadStrategy(UploadStrategy):
    name = "memory"

    async def upload(self, file: UploadFile) -> str:
        key = make_storage_key(file.filename)
        data = await file.read()
        await self.storage.upload_bytes(key, data, file.content_type)
        return key


class DiskUploadStrategy(UploadStrategy):
    name = "disk"

    def __init__(self, storage: StorageClient, upload_dir: str | Path):
        super().__init__(storage)
        self.upload_dir = Path(upload_dir)
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    async def upload(self, file: UploadFile) -> str:
        key = make_storage_key(file.filename)
        staged_path = self.upload_dir / make_staging_name(file.filename)

        try:
            await asyncio.to_thread(self._stage, file, staged_path)
        except OSError as e:
            staged_path.unlink(missing_ok=True)
            raise StorageError(f"Cannot stage upload at {staged_path}: {e}") from e

        try:
            await self.storage.upload_file(key, staged_path, file.content_type)
        finally:
            staged_path.unlink(missing_ok=True)
        return key

    @staticmethod
    def _stage(file: UploadFile, path: Path) -> None:
        file.file.seek(0)
        with open(path, "wb") as f:
            shutil.copyfileobj(file.file, f)
        logger.debug(f"Staged upload {file.filename} at {path}")


def build_upload_strategy(name: str, storage: StorageClient, upload_dir: str | Path) -> UploadStrategy:
    """Select the upload strategy named in configuration."""
    if name == "memory":
        return MemoryUploadStrategy(storage)
    if name == "disk":
        return DiskUploadStrategy(storage, upload_dir)
    raise ValueError(f"Unknown upload strategy: {name}")
