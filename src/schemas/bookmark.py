"""Pydantic schemas for bookmark endpoints."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator

from core.config import get_settings


def validate_required_text(value: str, field_name: str) -> str:
    """
    Trim a required text field and reject it if nothing is left.

    Raises:
        ValueError: If the value is empty or whitespace only.
    """
    trimmed = value.strip()
    if not trimmed:
        raise ValueError(f"{field_name} is required")
    return trimmed


def validate_title_length(title: str) -> str:
    """Validate that title doesn't exceed maximum length."""
    settings = get_settings()
    if len(title) > settings.max_title_length:
        raise ValueError(
            f"Title exceeds maximum length of {settings.max_title_length:,} characters "
            f"(got {len(title):,} characters).",
        )
    return title


class BookmarkCreate(BaseModel):
    """
    Schema for creating a new bookmark.

    Only url and title are accepted. Identity, ownership and timestamps are
    always assigned server-side, so any extra fields in the body are ignored.
    """

    url: str
    title: str

    @field_validator("url")
    @classmethod
    def check_url(cls, v: str) -> str:
        """Require a non-empty URL."""
        return validate_required_text(v, "URL")

    @field_validator("title")
    @classmethod
    def check_title(cls, v: str) -> str:
        """Require a non-empty title within the length limit."""
        return validate_title_length(validate_required_text(v, "Title"))


class BookmarkResponse(BaseModel):
    """
    Schema for a bookmark as returned by the API and carried on the change feed.

    Also the record type held by client-side synchronizers.
    """

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: UUID
    owner_id: str
    url: str
    title: str
    created_at: datetime
    updated_at: datetime


class DeleteResponse(BaseModel):
    """Schema for delete responses. Reports success whether or not a row matched."""

    success: bool = True
