"""Tests for the bookmark change feed SSE endpoint."""
import asyncio
import uuid
from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest
from httpx import AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError

from api.routers.feed import change_event_stream, format_sse_comment, format_sse_data
from conftest import OWNER_A, OWNER_B, auth_headers, eventually
from core.redis import RedisClient
from schemas.bookmark import BookmarkResponse
from schemas.change_event import ChangeEvent
from services.change_feed import ChangeFeed, set_change_feed
from services.exceptions import ChangeFeedUnavailableError


def make_event(owner_id: str = OWNER_A) -> ChangeEvent:
    now = datetime(2026, 1, 1, tzinfo=UTC)
    return ChangeEvent.insert(
        BookmarkResponse(
            id=uuid.uuid4(),
            owner_id=owner_id,
            url="https://x.com",
            title="X",
            created_at=now,
            updated_at=now,
        ),
    )


class BrokenPubSub:
    """PubSub whose SUBSCRIBE or reads fail the way a lost Redis connection does."""

    def __init__(self, fail_subscribe: bool) -> None:
        self.fail_subscribe = fail_subscribe
        self.closed = False

    async def subscribe(self, channel: str) -> None:
        if self.fail_subscribe:
            raise RedisConnectionError("Connection refused")

    async def unsubscribe(self, channel: str) -> None:
        pass

    async def aclose(self) -> None:
        self.closed = True

    async def get_message(self, **kwargs: object) -> dict | None:
        raise RedisConnectionError("Connection reset")


def redis_feed(pubsub: BrokenPubSub | None) -> ChangeFeed:
    """ChangeFeed over a Redis client that connected once but has since gone away."""
    redis_client = RedisClient("redis://localhost:6379")
    redis_client._client = MagicMock()
    redis_client.pubsub = MagicMock(return_value=pubsub)
    return ChangeFeed(redis_client)


class Disconnect:
    """Controllable replacement for Request.is_disconnected."""

    def __init__(self) -> None:
        self.disconnected = False

    async def __call__(self) -> bool:
        return self.disconnected


def test__format_sse_data__frames_payload() -> None:
    assert format_sse_data('{"a": 1}') == 'data: {"a": 1}\n\n'


def test__format_sse_comment__frames_comment() -> None:
    assert format_sse_comment("ping") == ": ping\n\n"


async def test__change_event_stream__starts_with_connected_comment(
    change_feed: ChangeFeed,
) -> None:
    stream = change_event_stream(change_feed, OWNER_A, 1.0, Disconnect())

    assert await anext(stream) == ": connected\n\n"
    assert change_feed.local_subscriber_count(OWNER_A) == 1

    await stream.aclose()


async def test__change_event_stream__yields_owner_events_as_data_frames(
    change_feed: ChangeFeed,
) -> None:
    stream = change_event_stream(change_feed, OWNER_A, 1.0, Disconnect())
    await anext(stream)
    event = make_event()

    await change_feed.publish(OWNER_B, make_event(OWNER_B))
    await change_feed.publish(OWNER_A, event)

    assert await anext(stream) == format_sse_data(event.to_json())
    await stream.aclose()


async def test__change_event_stream__sends_heartbeat_when_idle(
    change_feed: ChangeFeed,
) -> None:
    stream = change_event_stream(change_feed, OWNER_A, 0.01, Disconnect())
    await anext(stream)

    assert await anext(stream) == ": ping\n\n"
    await stream.aclose()


async def test__change_event_stream__ends_and_releases_on_disconnect(
    change_feed: ChangeFeed,
) -> None:
    disconnect = Disconnect()
    stream = change_event_stream(change_feed, OWNER_A, 0.01, disconnect)
    await anext(stream)

    disconnect.disconnected = True
    frames = [frame async for frame in stream]

    assert all(frame == ": ping\n\n" for frame in frames)
    assert change_feed.local_subscriber_count(OWNER_A) == 0


async def test__change_event_stream__released_when_consumer_cancelled(
    change_feed: ChangeFeed,
) -> None:
    async def consume() -> None:
        async for _ in change_event_stream(change_feed, OWNER_A, 10.0, Disconnect()):
            pass

    task = asyncio.create_task(consume())
    await eventually(lambda: change_feed.local_subscriber_count(OWNER_A) == 1)

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)

    assert change_feed.local_subscriber_count(OWNER_A) == 0


async def test__feed_endpoint__without_token_is_401(client: AsyncClient) -> None:
    response = await client.get("/bookmarks/feed")

    assert response.status_code == 401


async def test__feed_endpoint__without_change_feed_is_503(client: AsyncClient) -> None:
    set_change_feed(None)

    response = await client.get(
        "/bookmarks/feed", headers={"Authorization": f"Bearer {OWNER_A}"},
    )

    assert response.status_code == 503


async def test__feed_endpoint__redis_subscribe_failure_is_503(client: AsyncClient) -> None:
    pubsub = BrokenPubSub(fail_subscribe=True)
    set_change_feed(redis_feed(pubsub))

    response = await client.get("/bookmarks/feed", headers=auth_headers(OWNER_A))

    assert response.status_code == 503
    assert response.json() == {"detail": "Change feed unavailable"}
    assert pubsub.closed is True


async def test__feed_endpoint__redis_pubsub_unavailable_is_503(client: AsyncClient) -> None:
    set_change_feed(redis_feed(None))

    response = await client.get("/bookmarks/feed", headers=auth_headers(OWNER_A))

    assert response.status_code == 503


async def test__feed_endpoint__connection_lost_mid_stream_ends_stream(
    client: AsyncClient,
) -> None:
    pubsub = BrokenPubSub(fail_subscribe=False)
    set_change_feed(redis_feed(pubsub))

    response = await client.get("/bookmarks/feed", headers=auth_headers(OWNER_A))

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.text == ": connected\n\n"
    assert pubsub.closed is True


async def test__change_event_stream__subscribe_failure_propagates_before_first_frame() -> None:
    stream = change_event_stream(
        redis_feed(BrokenPubSub(fail_subscribe=True)), OWNER_A, 1.0, Disconnect(),
    )

    with pytest.raises(ChangeFeedUnavailableError):
        await anext(stream)
