"""
Service layer for bookmark operations.

Every operation is scoped to the caller's AuthContext. Ownership is enforced
here, at the operation boundary: reads filter on owner_id and deletes match
on both id and owner_id, so a guessed id from another owner never matches.

Changes are not published from here. The session's change notification
hooks pick up inserted and deleted rows and publish them after commit.
"""
import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.request_context import AuthContext
from models.bookmark import Bookmark
from schemas.bookmark import BookmarkCreate
from services.exceptions import StoreFailureError

logger = logging.getLogger(__name__)


def parse_bookmark_id(raw_id: str | uuid.UUID) -> uuid.UUID | None:
    """Parse a bookmark identifier, returning None when it cannot be a valid id."""
    if isinstance(raw_id, uuid.UUID):
        return raw_id
    try:
        return uuid.UUID(raw_id)
    except (ValueError, AttributeError, TypeError):
        return None


async def list_bookmarks(db: AsyncSession, auth: AuthContext) -> list[Bookmark]:
    """
    Return all of the owner's bookmarks, newest first.

    Raises:
        StoreFailureError: If the query fails.
    """
    query = (
        select(Bookmark)
        .where(Bookmark.owner_id == auth.owner_id)
        .order_by(Bookmark.created_at.desc(), Bookmark.id.desc())
    )
    try:
        result = await db.execute(query)
    except SQLAlchemyError as e:
        logger.exception("Error fetching bookmarks for owner %s", auth.owner_id)
        raise StoreFailureError("fetch bookmarks") from e
    return list(result.scalars().all())


async def create_bookmark(
    db: AsyncSession,
    auth: AuthContext,
    data: BookmarkCreate,
) -> Bookmark:
    """
    Create a bookmark owned by the caller.

    Note: Uses flush(), not commit. Session generator handles commit at request end.

    Raises:
        StoreFailureError: If the insert fails.
    """
    bookmark = Bookmark(owner_id=auth.owner_id, url=data.url, title=data.title)
    db.add(bookmark)
    try:
        await db.flush()
    except SQLAlchemyError as e:
        logger.exception("Error creating bookmark for owner %s", auth.owner_id)
        raise StoreFailureError("create bookmark") from e
    logger.info("Created bookmark %s for owner %s", bookmark.id, auth.owner_id)
    return bookmark


async def delete_bookmark(
    db: AsyncSession,
    auth: AuthContext,
    bookmark_id: str | uuid.UUID,
) -> bool:
    """
    Delete a bookmark matching both id and owner.

    Returns:
        True if a row was deleted, False if nothing matched (including ids that
        are not valid UUIDs). Callers treat both as success.

    Raises:
        StoreFailureError: If the delete fails.
    """
    parsed_id = parse_bookmark_id(bookmark_id)
    if parsed_id is None:
        return False

    try:
        result = await db.execute(
            select(Bookmark).where(
                Bookmark.id == parsed_id,
                Bookmark.owner_id == auth.owner_id,
            ),
        )
        bookmark = result.scalar_one_or_none()
        if bookmark is None:
            return False
        await db.delete(bookmark)
        await db.flush()
    except SQLAlchemyError as e:
        logger.exception("Error deleting bookmark %s for owner %s", parsed_id, auth.owner_id)
        raise StoreFailureError("delete bookmark") from e
    logger.info("Deleted bookmark %s for owner %s", parsed_id, auth.owner_id)
    return True
