"""Tags router - create tags."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from errors import AppError, ErrorKind
from models import Tag

router = APIRouter(prefix="/tags", tags=["tags"])
logger = logging.getLogger(__name__)


class TagCreate(BaseModel):
    """Body of POST /tags."""
    name: str = Field(..., min_length=1)


class TagSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str


@router.post("", response_model=TagSchema, status_code=201)
async def create_tag(
    request: TagCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Create a tag. Names are not unique; the same name twice gives two tags."""
    tag = Tag(name=request.name)
    db.add(tag)
    try:
        await db.commit()
    except SQLAlchemyError as e:
        logger.exception(f"Failed to create tag '{request.name}': {e}")
        raise AppError(ErrorKind.UPSTREAM_FAILURE, "Failed to create tag") from e

    logger.info(f"Created tag {tag.id}: {tag.name}")
    return tag
