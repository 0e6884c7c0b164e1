"""Client for the bookmarks change feed (Server-Sent Events)."""
import logging
from collections.abc import AsyncIterator, Callable

import httpx
from pydantic import ValidationError

from schemas.change_event import ChangeEvent

logger = logging.getLogger(__name__)

FEED_PATH = "/bookmarks/feed"


async def iter_sse_data(lines: AsyncIterator[str]) -> AsyncIterator[str]:
    """
    Group SSE lines into message payloads.

    Multi-line ``data:`` fields are joined with newlines; comment lines (``:``)
    and other fields are skipped. A blank line ends a message.
    """
    data_lines: list[str] = []
    async for line in lines:
        if not line:
            if data_lines:
                yield "\n".join(data_lines)
                data_lines = []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if field == "data":
            data_lines.append(value.removeprefix(" "))
    if data_lines:
        yield "\n".join(data_lines)


class FeedClient:
    """
    Reads one owner's change events from the server.

    The server scopes the stream by the bearer token. A dropped connection ends
    iteration; nothing is replayed, so callers that care about gaps resync.
    """

    def __init__(self, client: httpx.AsyncClient, token: str) -> None:
        self._client = client
        self._token = token

    async def stream(
        self, owner_id: str, on_connected: Callable[[], None] | None = None,
    ) -> AsyncIterator[ChangeEvent]:
        """
        Yield change events in receipt order until the connection ends.

        ``on_connected`` is called once the server has accepted the subscription.
        """
        headers = {
            "Authorization": f"Bearer {self._token}",
            "Accept": "text/event-stream",
        }
        try:
            async with self._client.stream(
                "GET", FEED_PATH, headers=headers, timeout=httpx.Timeout(10.0, read=None),
            ) as response:
                if not response.is_success:
                    logger.warning(
                        "Change feed for owner %s refused with status %d",
                        owner_id,
                        response.status_code,
                    )
                    return
                logger.info("Change feed connected for owner %s", owner_id)
                if on_connected is not None:
                    on_connected()
                async for payload in iter_sse_data(response.aiter_lines()):
                    try:
                        event = ChangeEvent.model_validate_json(payload)
                    except ValidationError:
                        logger.warning("Ignoring malformed change event: %s", payload)
                        continue
                    yield event
        except httpx.HTTPError as e:
            logger.warning("Change feed for owner %s disconnected: %s", owner_id, e)
            return
        logger.info("Change feed closed for owner %s", owner_id)
