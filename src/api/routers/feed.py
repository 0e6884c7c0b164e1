"""Server-Sent Events stream of the current user's bookmark changes."""
import logging
from collections.abc import AsyncGenerator, Awaitable, Callable

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from api.dependencies import get_auth_context, get_settings
from core.config import Settings
from core.request_context import AuthContext
from services.change_feed import ChangeFeed, get_change_feed
from services.exceptions import ChangeFeedUnavailableError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookmarks", tags=["feed"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable proxy buffering (nginx)
}


def format_sse_data(payload: str) -> str:
    """Frame a payload as a single SSE data message."""
    return f"data: {payload}\n\n"


def format_sse_comment(comment: str) -> str:
    """Frame an SSE comment line (ignored by clients, keeps the connection alive)."""
    return f": {comment}\n\n"


async def change_event_stream(
    feed: ChangeFeed,
    owner_id: str,
    heartbeat_seconds: float,
    is_disconnected: Callable[[], Awaitable[bool]],
) -> AsyncGenerator[str]:
    """
    Yield SSE frames for one owner's change events until the client goes away.

    The subscription is opened before the first frame is sent and released when
    the generator is closed. Missed events are never replayed. If the feed
    fails while streaming, the stream ends and the client resubscribes.

    Raises:
        ChangeFeedUnavailableError: If the subscription cannot be opened.
    """
    async with feed.subscribe(owner_id) as subscription:
        yield format_sse_comment("connected")
        try:
            while not await is_disconnected():
                event = await subscription.next_event(timeout=heartbeat_seconds)
                if event is None:
                    yield format_sse_comment("ping")
                    continue
                yield format_sse_data(event.to_json())
        except ChangeFeedUnavailableError:
            logger.warning("Change feed lost for owner %s, ending stream", owner_id)
    logger.info("Change stream closed for owner %s", owner_id)


@router.get("/feed")
async def stream_bookmark_changes(
    request: Request,
    auth: AuthContext = Depends(get_auth_context),
    settings: Settings = Depends(get_settings),
) -> StreamingResponse:
    """
    Stream insert/update/delete events for the current user's bookmarks.

    Each event is a `data:` frame holding `{"eventType", "new", "old"}`.
    Comment frames (`: ping`) are sent as heartbeats.
    """
    feed = get_change_feed()
    if feed is None:
        raise HTTPException(status_code=503, detail="Change feed unavailable")

    stream = change_event_stream(
        feed,
        auth.owner_id,
        settings.feed_heartbeat_seconds,
        request.is_disconnected,
    )
    # Open the subscription before any header is sent so failures can still be refused
    try:
        opening = await anext(stream)
    except ChangeFeedUnavailableError as e:
        raise HTTPException(status_code=503, detail="Change feed unavailable") from e

    return StreamingResponse(
        _resume(opening, stream),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


async def _resume(first: str, rest: AsyncGenerator[str]) -> AsyncGenerator[str]:
    """Re-emit an already consumed first frame, then the rest of the stream."""
    try:
        yield first
        async for frame in rest:
            yield frame
    finally:
        await rest.aclose()
