"""Bookmark model for storing user bookmarks."""
import uuid

from sqlalchemy import Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from uuid6 import uuid7

from models.base import Base, TimestampMixin


class Bookmark(Base, TimestampMixin):
    """Bookmark model - a URL and title owned by exactly one principal."""

    __tablename__ = "bookmarks"
    __table_args__ = (
        Index("ix_bookmarks_owner_created", "owner_id", "created_at"),
    )

    # UUIDv7 ids sort in creation order, which breaks created_at ties
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid7)
    owner_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        comment="Auth0 'sub' claim of the principal that created the bookmark",
    )
    url: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<Bookmark id={self.id} owner_id={self.owner_id!r} url={self.url!r}>"
