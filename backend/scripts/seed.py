"""Reset the database to a small set of sample posts and tags.

Deletes every post and tag, creates three tags, then two posts that each
carry all three tags.

Usage:
    cd backend && python -m scripts.seed
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings
from context import close_context, init_context
from models import Post, PostTag, Tag

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

POST_DATA = [
    {"title": "Post 1", "desc": "Description for Post 1", "image": "image1.jpg"},
    {"title": "Post 2", "desc": "Description for Post 2", "image": "image2.jpg"},
]

TAG_DATA = [{"name": "Tag 1"}, {"name": "Tag 2"}, {"name": "Tag 3"}]


async def delete_data(session: AsyncSession) -> None:
    """Remove all posts, tag links, and tags."""
    await session.execute(delete(PostTag))
    await session.execute(delete(Post))
    await session.execute(delete(Tag))
    await session.commit()
    logger.info("Existing data deleted")


async def seed_data(session: AsyncSession) -> tuple[list[Tag], list[Post]]:
    """Create the sample tags, then the sample posts tagged with all of them."""
    tags = [Tag(**data) for data in TAG_DATA]
    session.add_all(tags)
    await session.flush()
    tag_ids = [tag.id for tag in tags]

    posts = []
    for data in POST_DATA:
        post = Post(**data, tag_links=[])
        post.replace_tags(tag_ids)
        posts.append(post)
    session.add_all(posts)
    await session.commit()

    logger.info(f"Seeded {len(tags)} tags and {len(posts)} posts")
    return tags, posts


async def main():
    context = await init_context(get_settings())
    try:
        async with context.session_factory() as session:
            await delete_data(session)
            await seed_data(session)
    finally:
        await close_context(context)


if __name__ == "__main__":
    asyncio.run(main())
