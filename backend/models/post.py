"""Post model - a blog post with an image stored in object storage.

Tags are held by reference in ``post_tags``. The link rows carry a position
so a post's tag list keeps the order it was assigned in. There is no foreign
key to ``tags``: a post may reference a tag id that no longer exists.
"""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class PostTag(Base):
    """Link row between a post and one tag id."""

    __tablename__ = "post_tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    post_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("posts.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    tag_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)

    def __repr__(self) -> str:
        return f"<PostTag {self.post_id} -> {self.tag_id}>"


class Post(Base):
    """Blog post."""

    __tablename__ = "posts"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4())
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    desc: Mapped[str] = mapped_column(Text, nullable=False)
    image: Mapped[str] = mapped_column(String(1000), nullable=False)  # storage key
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )

    tag_links: Mapped[list[PostTag]] = relationship(
        PostTag,
        order_by=PostTag.position,
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def tags(self) -> list[str]:
        return [link.tag_id for link in self.tag_links]

    def replace_tags(self, tag_ids: list[str]) -> None:
        """Replace the whole tag list; order is kept as given."""
        self.tag_links = [
            PostTag(tag_id=tag_id, position=position)
            for position, tag_id in enumerate(tag_ids)
        ]

    def __repr__(self) -> str:
        return f"<Post {self.id}: {self.title}>"
