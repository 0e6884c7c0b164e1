"""SQLAlchemy models."""
from models.base import Base, TimestampMixin
from models.bookmark import Bookmark

__all__ = [
    "Base",
    "Bookmark",
    "TimestampMixin",
]
