"""Tests for settings parsing."""

import pytest
from pydantic import ValidationError

from config import Settings
from main import create_app


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.port == 3000
        assert settings.upload_strategy == "memory"
        assert settings.storage_api_url == "https://storage.googleapis.com"

    def test_bucket_scheme_is_stripped(self):
        settings = Settings(_env_file=None, storage_bucket="gs://my-api-9c702.appspot.com")

        assert settings.storage_bucket == "my-api-9c702.appspot.com"

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://u:p@db:5432/posts")
        monkeypatch.setenv("PORT", "8080")
        monkeypatch.setenv("UPLOAD_STRATEGY", "disk")

        settings = Settings(_env_file=None)

        assert settings.database_url == "postgresql+asyncpg://u:p@db:5432/posts"
        assert settings.port == 8080
        assert settings.upload_strategy == "disk"

    def test_cors_origins_from_comma_separated_env(self, monkeypatch):
        monkeypatch.setenv("CORS_ORIGINS", "http://a.test, http://b.test")

        settings = Settings(_env_file=None)

        assert settings.cors_origins == ["http://a.test", "http://b.test"]

    def test_unknown_upload_strategy_is_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, upload_strategy="ftp")

    def test_debug_is_off_by_default_and_reaches_the_app(self):
        assert Settings(_env_file=None).debug is False
        assert create_app(Settings(_env_file=None)).debug is False
        assert create_app(Settings(_env_file=None, debug=True)).debug is True
