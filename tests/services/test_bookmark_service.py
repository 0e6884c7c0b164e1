"""Tests for the bookmark service layer."""
import uuid
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from core.request_context import AuthContext
from schemas.bookmark import BookmarkCreate
from services import bookmark_service
from services.exceptions import StoreFailureError


async def _create(db: AsyncSession, auth: AuthContext, title: str) -> uuid.UUID:
    bookmark = await bookmark_service.create_bookmark(
        db, auth, BookmarkCreate(url=f"https://{title.lower()}.com", title=title),
    )
    return bookmark.id


class TestCreateBookmark:
    """Tests for create_bookmark."""

    async def test__create_bookmark__assigns_id_owner_and_timestamps(
        self, db_session: AsyncSession, auth_a: AuthContext,
    ) -> None:
        bookmark = await bookmark_service.create_bookmark(
            db_session, auth_a, BookmarkCreate(url="https://x.com", title="X"),
        )

        assert isinstance(bookmark.id, uuid.UUID)
        assert bookmark.owner_id == auth_a.owner_id
        assert bookmark.url == "https://x.com"
        assert bookmark.created_at is not None

    async def test__create_bookmark__store_error_raises_store_failure(
        self, db_session: AsyncSession, auth_a: AuthContext,
    ) -> None:
        error = OperationalError("INSERT", {}, Exception("disk full"))
        with patch.object(db_session, "flush", new_callable=AsyncMock, side_effect=error):
            with pytest.raises(StoreFailureError, match="Failed to create bookmark"):
                await bookmark_service.create_bookmark(
                    db_session, auth_a, BookmarkCreate(url="https://x.com", title="X"),
                )


class TestListBookmarks:
    """Tests for list_bookmarks."""

    async def test__list_bookmarks__newest_first(
        self, db_session: AsyncSession, auth_a: AuthContext,
    ) -> None:
        first = await _create(db_session, auth_a, "First")
        second = await _create(db_session, auth_a, "Second")
        third = await _create(db_session, auth_a, "Third")

        result = await bookmark_service.list_bookmarks(db_session, auth_a)

        assert [b.id for b in result] == [third, second, first]

    async def test__list_bookmarks__only_callers_rows(
        self, db_session: AsyncSession, auth_a: AuthContext, auth_b: AuthContext,
    ) -> None:
        mine = await _create(db_session, auth_a, "Mine")
        await _create(db_session, auth_b, "Theirs")

        result = await bookmark_service.list_bookmarks(db_session, auth_a)

        assert [b.id for b in result] == [mine]

    async def test__list_bookmarks__empty_for_new_owner(
        self, db_session: AsyncSession, auth_a: AuthContext,
    ) -> None:
        assert await bookmark_service.list_bookmarks(db_session, auth_a) == []

    async def test__list_bookmarks__store_error_raises_store_failure(
        self, db_session: AsyncSession, auth_a: AuthContext,
    ) -> None:
        error = OperationalError("SELECT", {}, Exception("connection lost"))
        with patch.object(db_session, "execute", new_callable=AsyncMock, side_effect=error):
            with pytest.raises(StoreFailureError) as exc_info:
                await bookmark_service.list_bookmarks(db_session, auth_a)

        assert str(exc_info.value) == "Failed to fetch bookmarks"
        assert exc_info.value.__cause__ is error


class TestDeleteBookmark:
    """Tests for delete_bookmark."""

    async def test__delete_bookmark__removes_owned_row(
        self, db_session: AsyncSession, auth_a: AuthContext,
    ) -> None:
        bookmark_id = await _create(db_session, auth_a, "Gone")

        deleted = await bookmark_service.delete_bookmark(db_session, auth_a, str(bookmark_id))

        assert deleted is True
        assert await bookmark_service.list_bookmarks(db_session, auth_a) == []

    async def test__delete_bookmark__other_owners_row_untouched(
        self, db_session: AsyncSession, auth_a: AuthContext, auth_b: AuthContext,
    ) -> None:
        bookmark_id = await _create(db_session, auth_a, "Protected")

        deleted = await bookmark_service.delete_bookmark(db_session, auth_b, bookmark_id)

        assert deleted is False
        assert [b.id for b in await bookmark_service.list_bookmarks(db_session, auth_a)] == [
            bookmark_id,
        ]

    async def test__delete_bookmark__missing_id_is_not_an_error(
        self, db_session: AsyncSession, auth_a: AuthContext,
    ) -> None:
        assert await bookmark_service.delete_bookmark(db_session, auth_a, uuid.uuid4()) is False

    @pytest.mark.parametrize("raw_id", ["not-a-uuid", "", "123"])
    async def test__delete_bookmark__malformed_id_matches_nothing(
        self, db_session: AsyncSession, auth_a: AuthContext, raw_id: str,
    ) -> None:
        await _create(db_session, auth_a, "Kept")

        assert await bookmark_service.delete_bookmark(db_session, auth_a, raw_id) is False
        assert len(await bookmark_service.list_bookmarks(db_session, auth_a)) == 1


class TestParseBookmarkId:
    """Tests for parse_bookmark_id."""

    def test__parse_bookmark_id__accepts_uuid_and_string(self) -> None:
        value = uuid.uuid4()

        assert bookmark_service.parse_bookmark_id(value) == value
        assert bookmark_service.parse_bookmark_id(str(value)) == value

    def test__parse_bookmark_id__rejects_garbage(self) -> None:
        assert bookmark_service.parse_bookmark_id("garbage") is None
