"""HTTP client for the bookmarks Access API."""
import logging
from typing import Any
from uuid import UUID

import httpx
from pydantic import TypeAdapter, ValidationError

from schemas.bookmark import BookmarkResponse
from sync.exceptions import InvalidInputError, StoreFailureError, UnauthorizedError

logger = logging.getLogger(__name__)

_bookmark_list = TypeAdapter(list[BookmarkResponse])


def _get_headers(token: str) -> dict[str, str]:
    """Get common headers for API requests."""
    return {"Authorization": f"Bearer {token}"}


def _error_detail(response: httpx.Response) -> str:
    """Extract a readable message from an error response body."""
    try:
        body = response.json()
    except ValueError:
        return f"API error {response.status_code}"
    if not isinstance(body, dict):
        return f"API error {response.status_code}"
    detail = body.get("detail")
    if isinstance(detail, list):
        # FastAPI validation errors return a list of error objects
        messages = []
        for err in detail:
            if isinstance(err, dict):
                loc = err.get("loc", ["unknown"])
                field = loc[-1] if loc else "unknown"
                messages.append(f"{field}: {err.get('msg', 'invalid')}")
        return "; ".join(messages) if messages else "Validation error"
    if detail:
        return str(detail)
    return f"API error {response.status_code}"


def raise_for_api_error(response: httpx.Response) -> None:
    """
    Map an error response onto the synchronizer's error taxonomy.

    Raises:
        UnauthorizedError: On 401.
        InvalidInputError: On 400 or 422.
        StoreFailureError: On any other non-success status.
    """
    if response.is_success:
        return
    status = response.status_code
    if status == 401:
        raise UnauthorizedError("Invalid or expired token")
    if status in (400, 422):
        raise InvalidInputError(_error_detail(response))
    raise StoreFailureError(_error_detail(response))


class BookmarksApiClient:
    """
    Authenticated client for list/create/delete.

    The owner is never sent: the server derives it from the bearer token.
    """

    def __init__(self, client: httpx.AsyncClient, token: str) -> None:
        self._client = client
        self._token = token

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(
                method, path, headers=_get_headers(self._token), **kwargs,
            )
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise StoreFailureError(f"Request failed: {e}") from e
        raise_for_api_error(response)
        return response

    async def list_bookmarks(self) -> list[BookmarkResponse]:
        """Fetch the full snapshot of the owner's bookmarks, newest first."""
        response = await self._request("GET", "/bookmarks/")
        try:
            return _bookmark_list.validate_json(response.content)
        except ValidationError as e:
            raise StoreFailureError("Malformed bookmark list response") from e

    async def create_bookmark(self, url: str, title: str) -> BookmarkResponse:
        """Create a bookmark and return the stored row."""
        response = await self._request("POST", "/bookmarks/", json={"url": url, "title": title})
        try:
            return BookmarkResponse.model_validate_json(response.content)
        except ValidationError as e:
            raise StoreFailureError("Malformed bookmark response") from e

    async def delete_bookmark(self, bookmark_id: UUID | str) -> None:
        """Delete a bookmark; succeeds whether or not it still existed."""
        await self._request("DELETE", f"/bookmarks/{bookmark_id}")
