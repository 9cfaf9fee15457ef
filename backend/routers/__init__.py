"""Routers package."""

from .posts import router as posts_router
from .tags import router as tags_router

__all__ = [
    "posts_router",
    "tags_router",
]
