"""Shared test fixtures for posthub."""

import json

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from config import Settings
from database import get_db
from main import create_app
from tests.helpers import create_post


class FakeStorage:
    """Stands in for the storage API. Records uploads; can be told to fail."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.fail_with: int | None = None
        self.reply_text: str | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"error": {"message": "unavailable"}})
        if self.reply_text is not None:
            return httpx.Response(200, text=self.reply_text)
        name = request.url.params.get("name") or extract_object_name(request.content)
        return httpx.Response(200, json={"bucket": "test-bucket", "name": name})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def extract_object_name(body: bytes) -> str | None:
    """Pull the object name out of a multipart/related upload body."""
    for line in body.split(b"\r\n"):
        if line.startswith(b"{"):
            return json.loads(line)["name"]
    return None


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings with test-safe defaults."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        storage_bucket="gs://test-bucket",
        storage_access_token="test-token",
        storage_api_url="https://storage.test",
        upload_strategy="memory",
        upload_dir=str(tmp_path / "uploads"),
        debug=False,
        log_level="DEBUG",
    )


@pytest.fixture
def client(settings, fake_storage):
    app = create_app(settings, storage_transport=fake_storage.transport)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def seeded_posts(client) -> list[dict]:
    """Two posts created through the API, in creation order."""
    posts = []
    for n in (1, 2):
        resp = create_post(client, title=f"Post {n}", desc=f"Description for Post {n}")
        assert resp.status_code == 201
        posts.append(resp.json())
    return posts


class UnavailableSession:
    """Session whose every round trip fails as if the database were down."""

    def add(self, obj):
        pass

    async def _fail(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, ConnectionRefusedError("database is down"))

    execute = _fail
    get = _fail
    commit = _fail


@pytest.fixture
def database_down(client):
    """Route every request to a session that cannot reach the database."""
    async def unavailable_db():
        yield UnavailableSession()

    client.app.dependency_overrides[get_db] = unavailable_db
    yield
    client.app.dependency_overrides.pop(get_db, None)
