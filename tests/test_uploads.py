"""Tests for upload strategies and storage key naming."""

import io
import re
from unittest.mock import AsyncMock

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

from errors import StorageError
from services.uploads import (
    DiskUploadStrategy,
    MemoryUploadStrategy,
    build_upload_strategy,
    make_staging_name,
    make_storage_key,
)


def make_upload(content: bytes = b"image", filename: str = "photo.png") -> UploadFile:
    return UploadFile(
        file=io.BytesIO(content),
        filename=filename,
        headers=Headers({"content-type": "image/png"}),
    )


class TestStorageKeys:
    def test_key_format(self):
        assert re.fullmatch(r"\d{13}-[0-9a-f]{8}-photo\.png", make_storage_key("photo.png"))

    def test_keys_are_unique(self):
        keys = {make_storage_key("photo.png") for _ in range(100)}

        assert len(keys) == 100

    def test_directory_parts_are_dropped(self):
        assert make_storage_key("../../etc/passwd").endswith("-passwd")

    def test_missing_filename(self):
        assert make_storage_key(None).endswith("-upload")

    def test_staging_name_keeps_extension(self):
        assert re.fullmatch(r"image-\d{13}-\d+\.jpg", make_staging_name("cat.jpg"))

    def test_staging_name_without_extension(self):
        assert make_staging_name("README").endswith(".bin")


class TestMemoryUploadStrategy:
    @pytest.mark.asyncio
    async def test_uploads_buffer(self):
        storage = AsyncMock()
        strategy = MemoryUploadStrategy(storage)

        key = await strategy.upload(make_upload(b"bytes"))

        storage.upload_bytes.assert_awaited_once_with(key, b"bytes", "image/png")
        assert key.endswith("-photo.png")


class TestDiskUploadStrategy:
    @pytest.mark.asyncio
    async def test_uploads_staged_file_and_removes_it(self, tmp_path):
        seen = {}

        async def upload_file(key, path, content_type):
            seen["data"] = path.read_bytes()
            seen["path"] = path

        storage = AsyncMock()
        storage.upload_file.side_effect = upload_file
        strategy = DiskUploadStrategy(storage, tmp_path / "uploads")

        key = await strategy.upload(make_upload(b"on-disk", filename="cat.jpg"))

        assert key.endswith("-cat.jpg")
        assert seen["data"] == b"on-disk"
        assert seen["path"].name.startswith("image-")
        assert not seen["path"].exists()

    @pytest.mark.asyncio
    async def test_removes_staged_file_on_failure(self, tmp_path):
        storage = AsyncMock()
        storage.upload_file.side_effect = StorageError("rejected")
        strategy = DiskUploadStrategy(storage, tmp_path)

        with pytest.raises(StorageError):
            await strategy.upload(make_upload())

        assert list(tmp_path.iterdir()) == []


    @pytest.mark.asyncio
    async def test_staging_failure_raises_storage_error(self, tmp_path):
        storage = AsyncMock()
        strategy = DiskUploadStrategy(storage, tmp_path / "uploads")
        (tmp_path / "uploads").rmdir()

        with pytest.raises(StorageError, match="Cannot stage upload"):
            await strategy.upload(make_upload())

        storage.upload_file.assert_not_awaited()


class TestBuildUploadStrategy:
    def test_memory(self, tmp_path):
        assert isinstance(build_upload_strategy("memory", AsyncMock(), tmp_path), MemoryUploadStrategy)

    def test_disk_creates_directory(self, tmp_path):
        strategy = build_upload_strategy("disk", AsyncMock(), tmp_path / "staging")

        assert isinstance(strategy, DiskUploadStrategy)
        assert (tmp_path / "staging").is_dir()

    def test_unknown(self, tmp_path):
        with pytest.raises(ValueError):
            build_upload_strategy("s3", AsyncMock(), tmp_path)
