"""
Pydantic schemas for change feed events.

Wire form: ``{"eventType": "insert"|"update"|"delete", "new": Bookmark|null,
"old": {"id": ...}|null}``.
"""
from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from schemas.bookmark import BookmarkResponse


class ChangeEventType(StrEnum):
    """Kind of row-level change."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class BookmarkKey(BaseModel):
    """Identifier-only view of a row (delete payloads)."""

    model_config = ConfigDict(frozen=True)

    id: UUID


class ChangeEvent(BaseModel):
    """
    A single row-level change for one owner's bookmarks.

    Insert and update events carry the full row in ``new``. Delete events carry
    the identifier in ``old``; some transports place it in ``new`` instead, so
    ``new`` may also be an identifier-only payload.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    event_type: ChangeEventType = Field(alias="eventType")
    new: BookmarkResponse | BookmarkKey | None = None
    old: BookmarkKey | None = None

    @property
    def row_id(self) -> UUID | None:
        """Identifier of the affected row, preferring ``old`` then ``new``."""
        if self.old is not None:
            return self.old.id
        if self.new is not None:
            return self.new.id
        return None

    @property
    def owner_id(self) -> str | None:
        """Owner of the affected row when the full row is present."""
        if isinstance(self.new, BookmarkResponse):
            return self.new.owner_id
        return None

    def to_json(self) -> str:
        """Serialize using the wire field names."""
        return self.model_dump_json(by_alias=True)

    @classmethod
    def insert(cls, row: BookmarkResponse) -> "ChangeEvent":
        """Build an insert event."""
        return cls(event_type=ChangeEventType.INSERT, new=row)

    @classmethod
    def update(cls, row: BookmarkResponse) -> "ChangeEvent":
        """Build an update event."""
        return cls(event_type=ChangeEventType.UPDATE, new=row)

    @classmethod
    def delete(cls, row_id: UUID) -> "ChangeEvent":
        """Build a delete event."""
        return cls(event_type=ChangeEventType.DELETE, old=BookmarkKey(id=row_id))
