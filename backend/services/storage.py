"""Object storage client for the image bucket.

Talks to the Google Cloud Storage JSON API (the bucket behind Firebase
Storage). Auth is either a static bearer token or a service account: a
signed RS256 assertion is exchanged for a short-lived access token, which is
cached until shortly before it expires.
"""

import json
import logging
import time
from pathlib import Path
from typing import Optional
from urllib.parse import quote
from uuid import uuid4

import httpx
from jose import JWTError, jwt

from errors import StorageError

logger = logging.getLogger(__name__)

STORAGE_SCOPE = "https://www.googleapis.com/auth/devstorage.read_write"
DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
TOKEN_LIFETIME_SECONDS = 3600
# Refresh this many seconds before the token actually expires
TOKEN_EXPIRY_MARGIN = 60


def load_service_account(path: str) -> dict:
    """Read a service account JSON key file."""
    try:
        info = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise StorageError(f"Cannot read service account file {path}: {e}") from e

    missing = [k for k in ("client_email", "private_key") if not info.get(k)]
    if missing:
        raise StorageError(f"Service account file {path} is missing {', '.join(missing)}")
    return info


class ServiceAccountTokenSource:
    """Exchanges a service account key for OAuth2 access tokens."""

    def __init__(self, info: dict, http: httpx.AsyncClient):
        self.client_email: str = info["client_email"]
        self.private_key: str = info["private_key"]
        self.private_key_id: Optional[str] = info.get("private_key_id")
        self.token_uri: str = info.get("token_uri") or DEFAULT_TOKEN_URI
        self._http = http
        self._token: Optional[str] = None
        self._expires_at: float = 0.0

    def build_assertion(self, now: Optional[int] = None) -> str:
        """Sign the JWT assertion sent to the token endpoint."""
        issued_at = int(now if now is not None else time.time())
        claims = {
            "iss": self.client_email,
            "scope": STORAGE_SCOPE,
            "aud": self.token_uri,
            "iat": issued_at,
            "exp": issued_at + TOKEN_LIFETIME_SECONDS,
        }
        headers = {"kid": self.private_key_id} if self.private_key_id else None
        try:
            return jwt.encode(claims, self.private_key, algorithm="RS256", headers=headers)
        except JWTError as e:
            raise StorageError(f"Failed to sign service account assertion: {e}") from e

    async def get_token(self) -> str:
        if self._token and time.time() < self._expires_at - TOKEN_EXPIRY_MARGIN:
            return self._token

        try:
            resp = await self._http.post(
                self.token_uri,
                data={"grant_type": JWT_BEARER_GRANT, "assertion": self.build_assertion()},
            )
        except httpx.HTTPError as e:
            raise StorageError(f"Token request failed: {e}") from e

        if not resp.is_success:
            raise StorageError(f"Token request rejected: {resp.status_code} - {resp.text}")

        try:
            payload = resp.json()
            self._token = payload["access_token"]
            self._expires_at = time.time() + int(payload.get("expires_in", TOKEN_LIFETIME_SECONDS))
        except (ValueError, KeyError, TypeError) as e:
            raise StorageError(f"Unreadable token response: {resp.text[:200]}") from e
        logger.info(f"Obtained storage access token for {self.client_email}")
        return self._token


class StaticTokenSource:
    """Fixed bearer token (emulators, pre-issued tokens)."""

    def __init__(self, token: str):
        self._token = token

    async def get_token(self) -> str:
        return self._token


class UnconfiguredTokenSource:
    """Placeholder used when no credentials are set; every upload fails."""

    async def get_token(self) -> str:
        raise StorageError("No storage credentials configured (set STORAGE_ACCESS_TOKEN or STORAGE_CREDENTIALS_FILE)")


TokenSource = ServiceAccountTokenSource | StaticTokenSource | UnconfiguredTokenSource


class StorageClient:
    """Uploads objects to a single bucket."""

    def __init__(
        self,
        bucket: str,
        http: httpx.AsyncClient,
        token_source: TokenSource,
        api_url: str = "https://storage.googleapis.com",
    ):
        self.bucket = bucket
        self.api_url = api_url.rstrip("/")
        self._http = http
        self._token_source = token_source

    @property
    def upload_url(self) -> str:
        return f"{self.api_url}/upload/storage/v1/b/{quote(self.bucket, safe='')}/o"

    async def upload_bytes(
        self,
        key: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> dict:
        """Upload ``data`` under ``key``. Returns the object resource from the API.

        Objects get a ``firebaseStorageDownloadTokens`` metadata entry so
        Firebase clients can build download URLs for them.
        """
        content_type = content_type or "application/octet-stream"
        metadata = {
            "name": key,
            "contentType": content_type,
            "metadata": {"firebaseStorageDownloadTokens": str(uuid4())},
        }
        body, multipart_type = build_multipart_related(metadata, data, content_type)
        token = await self._token_source.get_token()

        try:
            resp = await self._http.post(
                self.upload_url,
                params={"uploadType": "multipart"},
                content=body,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": multipart_type,
                },
            )
        except httpx.HTTPError as e:
            raise StorageError(f"Upload of {key} failed: {e}") from e

        if not resp.is_success:
            raise StorageError(f"Upload of {key} rejected: {resp.status_code} - {resp.text}")

        try:
            resource = resp.json()
        except ValueError as e:
            raise StorageError(f"Upload of {key} returned an unreadable response: {resp.text[:200]}") from e

        logger.info(f"Uploaded {key} ({len(data)} bytes) to bucket {self.bucket}")
        return resource

    async def upload_file(self, key: str, path: Path, content_type: Optional[str] = None) -> dict:
        """Upload a file from local disk under ``key``."""
        try:
            data = path.read_bytes()
        except OSError as e:
            raise StorageError(f"Cannot read staged file {path}: {e}") from e
        return await self.upload_bytes(key, data, content_type)


def build_multipart_related(metadata: dict, data: bytes, content_type: str) -> tuple[bytes, str]:
    """Encode object metadata and media as one multipart/related body."""
    boundary = f"posthub-{uuid4().hex}"
    head = (
        f"--{boundary}\r\n"
        "Content-Type: application/json; charset=UTF-8\r\n\r\n"
        f"{json.dumps(metadata)}\r\n"
        f"--{boundary}\r\n"
        f"Content-Type: {content_type}\r\n\r\n"
    ).encode("utf-8")
    tail = f"\r\n--{boundary}--\r\n".encode("utf-8")
    return head + data + tail, f"multipart/related; boundary={boundary}"


def build_token_source(
    http: httpx.AsyncClient,
    access_token: str = "",
    credentials_file: str = "",
) -> TokenSource:
    """Pick the token source from configuration. A static token wins."""
    if access_token:
        return StaticTokenSource(access_token)
    if credentials_file:
        return ServiceAccountTokenSource(load_service_account(credentials_file), http)
    logger.warning("No storage credentials configured - image uploads will fail")
    return UnconfiguredTokenSource()
