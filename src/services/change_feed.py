"""
Per-owner change feed for bookmark rows.

Committed row changes are fanned out to every subscriber of the row's owner.
With Redis connected, events travel over Redis Pub/Sub (one channel per
owner) so that every worker process sees every commit. Without Redis, events
are delivered in-process to local subscribers.

Delivery is live only: there is no replay, so a subscriber that is not
connected when an event is published never sees it.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from pydantic import ValidationError
from redis.asyncio.client import PubSub
from redis.exceptions import RedisError

from core.redis import RedisClient
from schemas.change_event import ChangeEvent
from services.exceptions import ChangeFeedUnavailableError

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "bookmarks"


def channel_name(owner_id: str) -> str:
    """Redis channel carrying one owner's change events."""
    return f"{CHANNEL_PREFIX}:{owner_id}"


class FeedSubscription(ABC):
    """
    A live subscription to one owner's change events.

    Iterate with ``async for`` or poll with ``next_event(timeout)``; the
    latter returns None when nothing arrived within the timeout.
    """

    def __init__(self, owner_id: str) -> None:
        self.owner_id = owner_id

    @abstractmethod
    async def next_event(self, timeout: float | None = None) -> ChangeEvent | None:
        """Wait for the next event, or return None after ``timeout`` seconds."""

    def __aiter__(self) -> "FeedSubscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        while True:
            event = await self.next_event(timeout=1.0)
            if event is not None:
                return event


class LocalSubscription(FeedSubscription):
    """In-process subscription backed by a bounded queue."""

    def __init__(self, owner_id: str, queue_size: int) -> None:
        super().__init__(owner_id)
        self._queue: asyncio.Queue[ChangeEvent] = asyncio.Queue(maxsize=queue_size)
        self.dropped = 0

    def deliver(self, event: ChangeEvent) -> None:
        """Enqueue an event, dropping the oldest one if the queue is full."""
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
            logger.warning(
                "Change feed queue full for owner %s, dropped oldest event (%d dropped)",
                self.owner_id,
                self.dropped,
            )
        self._queue.put_nowait(event)

    async def next_event(self, timeout: float | None = None) -> ChangeEvent | None:
        """Wait for the next queued event."""
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except TimeoutError:
            return None


class RedisSubscription(FeedSubscription):
    """Subscription reading one owner's channel from Redis Pub/Sub."""

    def __init__(self, owner_id: str, pubsub: PubSub) -> None:
        super().__init__(owner_id)
        self._pubsub = pubsub

    async def next_event(self, timeout: float | None = None) -> ChangeEvent | None:
        """
        Wait for the next message on the owner's channel.

        Raises:
            ChangeFeedUnavailableError: If the connection to Redis is lost.
        """
        try:
            message = await self._pubsub.get_message(
                ignore_subscribe_messages=True,
                timeout=timeout,
            )
        except RedisError as e:
            logger.warning("Redis connection lost on %s: %s", channel_name(self.owner_id), e)
            raise ChangeFeedUnavailableError(self.owner_id) from e
        if message is None or message.get("type") != "message":
            return None
        try:
            return ChangeEvent.model_validate_json(message["data"])
        except ValidationError:
            logger.warning(
                "Ignoring malformed change event on %s", channel_name(self.owner_id),
                exc_info=True,
            )
            return None


class ChangeFeed:
    """Fans committed bookmark changes out to the owner's subscribers."""

    def __init__(self, redis_client: RedisClient | None = None, queue_size: int = 100) -> None:
        self._redis = redis_client
        self._queue_size = queue_size
        self._local: dict[str, set[LocalSubscription]] = {}

    @property
    def uses_redis(self) -> bool:
        """True when events travel over Redis Pub/Sub."""
        return self._redis is not None and self._redis.is_connected

    def local_subscriber_count(self, owner_id: str) -> int:
        """Number of in-process subscribers for an owner."""
        return len(self._local.get(owner_id, ()))

    async def publish(self, owner_id: str, event: ChangeEvent) -> None:
        """
        Publish one event to the owner's subscribers.

        A failed Redis publish is logged and the event is lost for remote
        subscribers; clients recover with a fresh snapshot.
        """
        if self.uses_redis:
            published = await self._redis.publish(channel_name(owner_id), event.to_json())
            if not published:
                logger.warning(
                    "Change event %s for owner %s was not published",
                    event.event_type,
                    owner_id,
                )
            return

        for subscription in tuple(self._local.get(owner_id, ())):
            subscription.deliver(event)

    @asynccontextmanager
    async def subscribe(self, owner_id: str) -> AsyncIterator[FeedSubscription]:
        """
        Open a subscription to one owner's events; released on exit.

        Raises:
            ChangeFeedUnavailableError: If Redis is selected but the
                subscription cannot be opened.
        """
        if self.uses_redis:
            async with self._redis_subscription(owner_id) as subscription:
                yield subscription
            return

        subscription = LocalSubscription(owner_id, self._queue_size)
        self._local.setdefault(owner_id, set()).add(subscription)
        logger.info("Change feed subscription opened for owner %s", owner_id)
        try:
            yield subscription
        finally:
            subscribers = self._local.get(owner_id)
            if subscribers is not None:
                subscribers.discard(subscription)
                if not subscribers:
                    del self._local[owner_id]
            logger.info("Change feed subscription released for owner %s", owner_id)

    @asynccontextmanager
    async def _redis_subscription(self, owner_id: str) -> AsyncIterator[FeedSubscription]:
        channel = channel_name(owner_id)
        pubsub = self._redis.pubsub()
        if pubsub is None:
            logger.warning("Redis unavailable, cannot subscribe to %s", channel)
            raise ChangeFeedUnavailableError(owner_id)
        try:
            await pubsub.subscribe(channel)
        except RedisError as e:
            logger.warning("Redis SUBSCRIBE failed for %s: %s", channel, e)
            await pubsub.aclose()
            raise ChangeFeedUnavailableError(owner_id) from e
        logger.info("Change feed subscription opened on %s", channel)
        try:
            yield RedisSubscription(owner_id, pubsub)
        finally:
            try:
                await pubsub.unsubscribe(channel)
                await pubsub.aclose()
            except RedisError as e:
                logger.warning("Redis UNSUBSCRIBE failed for %s: %s", channel, e)
            logger.info("Change feed subscription released on %s", channel)


# Global change feed state using a container to avoid global statement
class _ChangeFeedState:
    """Container for global change feed state."""

    feed: ChangeFeed | None = None


_state = _ChangeFeedState()


def get_change_feed() -> ChangeFeed | None:
    """Get the global change feed instance."""
    return _state.feed


def set_change_feed(feed: ChangeFeed | None) -> None:
    """Set the global change feed instance."""
    _state.feed = feed
