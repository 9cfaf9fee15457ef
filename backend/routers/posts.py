"""Posts router - create, list, search, and filter posts, and assign their tags."""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from context import AppContext, get_context
from database import get_db
from errors import AppError, ErrorKind, StorageError
from models import Post, PostTag, Tag

router = APIRouter(prefix="/posts", tags=["posts"])
logger = logging.getLogger(__name__)

# Fields accepted by ?sortBy=<field>:<asc|desc>
SORT_FIELDS = {
    "id": Post.id,
    "title": Post.title,
    "desc": Post.desc,
    "image": Post.image,
    "createdAt": Post.created_at,
}


# ============================================================================
# Pydantic Schemas
# ============================================================================

class PostSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    desc: str
    image: str
    tags: list[str] = []


class TagAssociationRequest(BaseModel):
    """Body of POST /posts/{post_id}/tags."""
    model_config = ConfigDict(populate_by_name=True)

    tag_ids: list[str] = Field(alias="tagIds")


# ============================================================================
# Helpers
# ============================================================================

def parse_sort(sort_by: Optional[str]) -> list:
    """Turn ``field:dir`` into ORDER BY clauses.

    Anything other than ``desc`` sorts ascending. Creation time and id are
    always appended so equal keys come back in a stable order.
    """
    clauses = []
    if sort_by:
        field, _, direction = sort_by.partition(":")
        column = SORT_FIELDS.get(field.strip())
        if column is None:
            allowed = ", ".join(SORT_FIELDS)
            raise AppError(ErrorKind.INVALID_INPUT, f"Cannot sort by '{field}'. Allowed fields: {allowed}")
        clauses.append(column.desc() if direction.strip().lower() == "desc" else column.asc())
    clauses.extend([Post.created_at.asc(), Post.id.asc()])
    return clauses


def has_tag(tag_id: str):
    return Post.tag_links.any(PostTag.tag_id == tag_id)


def dedupe(ids: list[str]) -> list[str]:
    """Drop repeated ids, keeping the first occurrence."""
    return list(dict.fromkeys(ids))


# ============================================================================
# Routes
# ============================================================================

@router.post("", response_model=PostSchema, status_code=201)
async def create_post(
    context: Annotated[AppContext, Depends(get_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
    image: UploadFile = File(...),
    title: str = Form(..., min_length=1),
    desc: str = Form(..., min_length=1),
):
    """Upload the image to object storage, then store the post.

    The two steps are not atomic: if the database write fails the uploaded
    image stays in the bucket without a post pointing at it.
    """
    try:
        key = await context.uploader.upload(image)

        post = Post(title=title, desc=desc, image=key, tag_links=[])
        db.add(post)
        await db.commit()
    except (StorageError, SQLAlchemyError) as e:
        logger.exception(f"Failed to create post '{title}': {e}")
        raise AppError(ErrorKind.UPSTREAM_FAILURE, "Failed to create post") from e

    logger.info(f"Created post {post.id} with image {key}")
    return post


@router.get("", response_model=list[PostSchema])
async def list_posts(
    db: Annotated[AsyncSession, Depends(get_db)],
    tag: Optional[str] = Query(None, description="Only posts carrying this tag id"),
    sort_by: Optional[str] = Query(None, alias="sortBy", description="field:asc or field:desc"),
    limit: int = Query(10, ge=1),
    skip: int = Query(0, ge=0),
):
    """List posts with optional tag filter, sorting, and skip/limit pagination.

    ``limit`` must be a positive integer and ``skip`` a non-negative one.
    Anything else (``limit=0``, ``limit=ten``) is rejected with 400 rather
    than falling back to the defaults.
    """
    query = select(Post)
    if tag:
        query = query.where(has_tag(tag))
    query = query.order_by(*parse_sort(sort_by)).offset(skip).limit(limit)

    try:
        result = await db.execute(query)
    except SQLAlchemyError as e:
        logger.exception(f"Failed to fetch posts: {e}")
        raise AppError(ErrorKind.UPSTREAM_FAILURE, "Failed to fetch posts") from e
    return result.scalars().all()


@router.get("/search", response_model=list[PostSchema])
async def search_posts(
    db: Annotated[AsyncSession, Depends(get_db)],
    keyword: str = Query("", description="Case-insensitive text matched against title and description"),
):
    """Search posts by keyword in title or description.

    An empty keyword matches every post.
    """
    query = select(Post).where(
        or_(
            Post.title.icontains(keyword, autoescape=True),
            Post.desc.icontains(keyword, autoescape=True),
        )
    ).order_by(Post.created_at, Post.id)

    try:
        result = await db.execute(query)
    except SQLAlchemyError as e:
        logger.exception(f"Failed to search for posts with '{keyword}': {e}")
        raise AppError(ErrorKind.UPSTREAM_FAILURE, "Failed to search for posts") from e
    return result.scalars().all()


@router.get("/filter", response_model=list[PostSchema])
async def filter_posts(
    db: Annotated[AsyncSession, Depends(get_db)],
    tag: str = Query(..., description="Tag id"),
):
    """Posts carrying the given tag. Unknown tag ids give an empty list."""
    query = select(Post).where(has_tag(tag)).order_by(Post.created_at, Post.id)

    try:
        result = await db.execute(query)
    except SQLAlchemyError as e:
        logger.exception(f"Failed to filter posts by tag {tag}: {e}")
        raise AppError(ErrorKind.UPSTREAM_FAILURE, "Failed to filter posts") from e
    return result.scalars().all()


@router.post("/{post_id}/tags", response_model=PostSchema)
async def associate_tags(
    post_id: str,
    request: TagAssociationRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Replace a post's tags with the given tag ids.

    Ids that don't match an existing tag are dropped silently. The previous
    tag list is discarded, not merged.
    """
    try:
        post = await db.get(Post, post_id)
        if post is None:
            raise AppError(ErrorKind.NOT_FOUND, f"Post {post_id} not found")

        requested = dedupe(request.tag_ids)
        found: set[str] = set()
        if requested:
            result = await db.execute(select(Tag.id).where(Tag.id.in_(requested)))
            found = set(result.scalars().all())

        post.replace_tags([tag_id for tag_id in requested if tag_id in found])
        await db.commit()
    except SQLAlchemyError as e:
        logger.exception(f"Failed to associate tags with post {post_id}: {e}")
        raise AppError(ErrorKind.UPSTREAM_FAILURE, "Failed to associate tags with post") from e

    dropped = len(requested) - len(post.tags)
    if dropped:
        logger.info(f"Post {post_id}: ignored {dropped} unknown tag id(s)")
    return post
