"""Database models."""

from database import Base

from models.post import Post, PostTag
from models.tag import Tag

__all__ = [
    "Base",
    "Post",
    "PostTag",
    "Tag",
]
