"""PostHub - FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from config import Settings, get_settings
from context import close_context, init_context
from errors import register_error_handlers
from routers import posts_router, tags_router

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(
    settings: Optional[Settings] = None,
    storage_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the application. The context is opened in the lifespan."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan - open connections on startup, close them on shutdown."""
        app.state.context = await init_context(settings, storage_transport=storage_transport)
        logger.info(f"{settings.app_name} started")

        yield

        await close_context(app.state.context)
        logger.info(f"{settings.app_name} stopped")

    app = FastAPI(
        title="PostHub API",
        description="Blog posts with images and tags",
        version="0.1.0",
        debug=settings.debug,
        lifespan=lifespan,
    )

    register_error_handlers(app)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(posts_router)
    app.include_router(tags_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "posthub"}

    @app.get("/favicon.ico", include_in_schema=False)
    async def favicon():
        return Response(status_code=204)

    return app


settings = get_settings()
configure_logging(settings.log_level)
app = create_app(settings)


def run() -> None:
    """Run the application with uvicorn."""
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
