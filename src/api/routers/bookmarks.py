"""Bookmark list/create/delete endpoints."""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_auth_context
from core.request_context import AuthContext
from db.session import commit_and_publish
from schemas.bookmark import BookmarkCreate, BookmarkResponse, DeleteResponse
from services import bookmark_service
from services.exceptions import StoreFailureError

router = APIRouter(prefix="/bookmarks", tags=["bookmarks"])


@router.get("/", response_model=list[BookmarkResponse])
async def list_bookmarks(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_async_session),
) -> list[BookmarkResponse]:
    """List all bookmarks for the current user, newest first."""
    try:
        bookmarks = await bookmark_service.list_bookmarks(db, auth)
    except StoreFailureError:
        raise HTTPException(status_code=500, detail="Failed to fetch bookmarks")
    return [BookmarkResponse.model_validate(b) for b in bookmarks]


@router.post("/", response_model=BookmarkResponse, status_code=201)
async def create_bookmark(
    data: BookmarkCreate,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_async_session),
) -> BookmarkResponse:
    """
    Create a new bookmark.

    The id, owner and timestamps are assigned server-side. The row is committed
    before responding, and every open feed subscription for the owner then
    receives the insert.
    """
    try:
        bookmark = await bookmark_service.create_bookmark(db, auth, data)
        await commit_and_publish(db, "create bookmark")
    except StoreFailureError:
        raise HTTPException(status_code=500, detail="Failed to create bookmark")
    return BookmarkResponse.model_validate(bookmark)


@router.delete("/{bookmark_id}", response_model=DeleteResponse)
async def delete_bookmark(
    bookmark_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_async_session),
) -> DeleteResponse:
    """
    Delete a bookmark.

    Scoped to the caller's bookmarks; reports success whether or not a row
    matched, so it never confirms the existence of another user's id.
    """
    try:
        await bookmark_service.delete_bookmark(db, auth, bookmark_id)
        await commit_and_publish(db, "delete bookmark")
    except StoreFailureError:
        raise HTTPException(status_code=500, detail="Failed to delete bookmark")
    return DeleteResponse(success=True)
