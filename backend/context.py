"""Application context - the connection handles shared by all requests.

Built once at startup by ``init_context`` and released by ``close_context``.
Route handlers reach it through ``request.app.state.context``; tests and the
seed script construct their own.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from config import Settings
from database import Base, build_engine, build_session_factory
from services.storage import StorageClient, build_token_source
from services.uploads import UploadStrategy, build_upload_strategy

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    http: httpx.AsyncClient
    storage: StorageClient
    uploader: UploadStrategy


async def init_context(
    settings: Settings,
    storage_transport: Optional[httpx.AsyncBaseTransport] = None,
    create_tables: bool = True,
) -> AppContext:
    """Open the database engine and storage client.

    ``storage_transport`` replaces the network transport of the storage HTTP
    client (used by tests to stand in for the storage API).
    """
    # Register models on Base.metadata before create_all
    import models  # noqa: F401

    engine = build_engine(settings.database_url)
    if create_tables:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    http = httpx.AsyncClient(timeout=settings.storage_timeout, transport=storage_transport)
    try:
        token_source = build_token_source(
            http,
            access_token=settings.storage_access_token,
            credentials_file=settings.storage_credentials_file,
        )
    except Exception:
        await http.aclose()
        await engine.dispose()
        raise

    if not settings.storage_bucket:
        logger.warning("STORAGE_BUCKET is not set - image uploads will fail")

    storage = StorageClient(
        bucket=settings.storage_bucket,
        http=http,
        token_source=token_source,
        api_url=settings.storage_api_url,
    )
    uploader = build_upload_strategy(settings.upload_strategy, storage, settings.upload_dir)
    logger.info(f"Context ready: upload strategy '{uploader.name}', bucket '{settings.storage_bucket}'")

    return AppContext(
        settings=settings,
        engine=engine,
        session_factory=build_session_factory(engine),
        http=http,
        storage=storage,
        uploader=uploader,
    )


async def close_context(context: AppContext) -> None:
    """Close the storage HTTP client and dispose of the engine."""
    await context.http.aclose()
    await context.engine.dispose()


def get_context(request: Request) -> AppContext:
    """Dependency returning the application context."""
    return request.app.state.context
