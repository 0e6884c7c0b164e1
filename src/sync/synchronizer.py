"""
Client-side synchronizer for one session's view of the owner's bookmarks.

A session starts UNAUTHENTICATED. ``initialize(owner_id)`` starts the full
snapshot fetch and the change feed subscription as two independent tasks and
moves to INITIALIZING; the first snapshot outcome (success or failure) moves
it to SYNCED. ``teardown()`` moves it to TORN_DOWN, which is final.

Feed events are applied to whatever list is current, in receipt order. An
event applied before the snapshot arrives may be overwritten by it; events
after the snapshot never duplicate rows because the reconciler is keyed by id.

Mutations are confirmed-only: ``create`` and ``delete`` change the list only
after the server accepts them (the matching feed echo is then a no-op).
"""
import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from enum import StrEnum
from typing import Protocol
from uuid import UUID

from schemas.bookmark import BookmarkResponse
from schemas.change_event import ChangeEvent
from sync import reconciler
from sync.exceptions import SyncError, SynchronizerStateError
from sync.reconciler import BookmarkList
from sync.url_utils import prepare_bookmark_input

logger = logging.getLogger(__name__)

LOAD_ERROR_MESSAGE = "Failed to load bookmarks"

Listener = Callable[[BookmarkList], None]


class BookmarksApi(Protocol):
    """The Access API operations the synchronizer needs."""

    async def list_bookmarks(self) -> list[BookmarkResponse]: ...

    async def create_bookmark(self, url: str, title: str) -> BookmarkResponse: ...

    async def delete_bookmark(self, bookmark_id: UUID | str) -> None: ...


class ChangeSource(Protocol):
    """A source of one owner's change events."""

    def stream(
        self, owner_id: str, on_connected: Callable[[], None] | None = None,
    ) -> AsyncIterator[ChangeEvent]: ...


class SyncState(StrEnum):
    """Lifecycle state of a synchronizer."""

    UNAUTHENTICATED = "unauthenticated"
    INITIALIZING = "initializing"
    SYNCED = "synced"
    TORN_DOWN = "torn_down"


class BookmarkSynchronizer:
    """Keeps one session's bookmark list consistent with the server."""

    def __init__(self, api: BookmarksApi, feed: ChangeSource) -> None:
        self._api = api
        self._feed = feed
        self._state = SyncState.UNAUTHENTICATED
        self._owner_id: str | None = None
        self._bookmarks: BookmarkList = ()
        self._error: str | None = None
        self._listeners: list[Listener] = []
        # Bumped on teardown so results of in-flight work are discarded
        self._generation = 0
        self._fetch_task: asyncio.Task | None = None
        self._feed_task: asyncio.Task | None = None
        self._feed_connected = asyncio.Event()

    # --- State ---

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def owner_id(self) -> str | None:
        return self._owner_id

    @property
    def bookmarks(self) -> BookmarkList:
        """The current list, newest first."""
        return self._bookmarks

    @property
    def error(self) -> str | None:
        """Message describing the last snapshot failure, if any."""
        return self._error

    @property
    def feed_connected(self) -> bool:
        """True while the change feed subscription is delivering events."""
        return self._feed_connected.is_set()

    @property
    def _active(self) -> bool:
        return self._state in (SyncState.INITIALIZING, SyncState.SYNCED)

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with the list after every change; returns an unsubscribe function."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _set_bookmarks(self, bookmarks: BookmarkList) -> None:
        if bookmarks is self._bookmarks:
            return
        self._bookmarks = bookmarks
        for listener in tuple(self._listeners):
            listener(bookmarks)

    # --- Lifecycle ---

    def initialize(self, owner_id: str) -> None:
        """
        Start the snapshot fetch and the feed subscription for ``owner_id``.

        Both run concurrently; neither waits for the other. Must be called from
        a running event loop.

        Raises:
            SynchronizerStateError: If the session was already initialized.
        """
        if self._state is not SyncState.UNAUTHENTICATED:
            raise SynchronizerStateError(f"Cannot initialize from state {self._state}")
        if not owner_id:
            raise SynchronizerStateError("An authenticated owner is required")

        self._owner_id = owner_id
        self._state = SyncState.INITIALIZING
        generation = self._generation
        logger.info("Initializing bookmark sync for owner %s", owner_id)
        self._feed_task = asyncio.create_task(self._consume_feed(generation))
        self._fetch_task = asyncio.create_task(self._load_snapshot(generation))

    async def teardown(self) -> None:
        """Release the feed subscription, cancel in-flight work and clear the list. Idempotent."""
        if self._state is SyncState.TORN_DOWN:
            return
        self._state = SyncState.TORN_DOWN
        self._generation += 1
        tasks = [t for t in (self._fetch_task, self._feed_task) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._fetch_task = None
        self._feed_task = None
        self._feed_connected.clear()
        self._error = None
        self._set_bookmarks(())
        logger.info("Bookmark sync torn down for owner %s", self._owner_id)

    async def wait_until_synced(self) -> None:
        """Wait for the initial snapshot to finish loading (successfully or not)."""
        if self._fetch_task is not None:
            await asyncio.wait({self._fetch_task})

    async def wait_until_live(self) -> None:
        """Wait for the snapshot and for the feed to connect (or to end without connecting)."""
        await self.wait_until_synced()
        if self._feed_task is None or self._feed_connected.is_set():
            return
        connected = asyncio.ensure_future(self._feed_connected.wait())
        try:
            await asyncio.wait({connected, self._feed_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            connected.cancel()

    async def resync(self) -> None:
        """
        Replace the list with a fresh snapshot.

        Used after a detected feed gap; never triggered automatically.

        Raises:
            SynchronizerStateError: If the session is not initialized.
        """
        if not self._active:
            raise SynchronizerStateError(f"Cannot resync from state {self._state}")
        await self._load_snapshot(self._generation)

    # --- Snapshot and feed ---

    async def _load_snapshot(self, generation: int) -> None:
        try:
            snapshot = await self._api.list_bookmarks()
        except SyncError as e:
            if generation != self._generation:
                return
            logger.warning("Bookmark snapshot failed for owner %s: %s", self._owner_id, e)
            self._error = LOAD_ERROR_MESSAGE
        else:
            if generation != self._generation:
                return
            self._error = None
            self._set_bookmarks(reconciler.apply_snapshot(self._bookmarks, snapshot))
        if self._state is SyncState.INITIALIZING:
            self._state = SyncState.SYNCED

    def _mark_feed_connected(self) -> None:
        self._feed_connected.set()

    async def _consume_feed(self, generation: int) -> None:
        try:
            async for event in self._feed.stream(self._owner_id, self._mark_feed_connected):
                if generation != self._generation:
                    break
                self.apply_event(event)
        except SyncError as e:
            logger.warning("Change feed failed for owner %s: %s", self._owner_id, e)
        finally:
            if generation == self._generation:
                self._feed_connected.clear()
                logger.info(
                    "Change feed ended for owner %s; call resync() after resubscribing",
                    self._owner_id,
                )

    # --- Applying changes ---

    def apply_event(self, event: ChangeEvent) -> None:
        """Apply one feed event; ignored unless the session is initialized."""
        if not self._active:
            return
        if event.owner_id is not None and event.owner_id != self._owner_id:
            logger.warning(
                "Ignoring %s event for owner %s on owner %s's feed",
                event.event_type,
                event.owner_id,
                self._owner_id,
            )
            return
        self._set_bookmarks(reconciler.apply_event(self._bookmarks, event))

    def apply_insert(self, record: BookmarkResponse) -> None:
        """Prepend a new row, or replace the row with the same id in place."""
        if self._active:
            self._set_bookmarks(reconciler.apply_insert(self._bookmarks, record))

    def apply_update(self, record: BookmarkResponse) -> None:
        """Replace the row with the same id in place; unknown ids are ignored."""
        if self._active:
            self._set_bookmarks(reconciler.apply_update(self._bookmarks, record))

    def apply_delete(self, bookmark_id: UUID) -> None:
        """Remove the row with this id if present."""
        if self._active:
            self._set_bookmarks(reconciler.apply_delete(self._bookmarks, bookmark_id))

    # --- Confirmed mutations ---

    async def create(self, url: str, title: str) -> BookmarkResponse:
        """
        Create a bookmark and add the confirmed row to the list.

        The URL gets an https scheme if it has none and must be well formed.

        Raises:
            InvalidInputError: Before any request, if url or title are invalid.
            UnauthorizedError, StoreFailureError: If the server rejects the request;
                the list is left unchanged.
            SynchronizerStateError: If the session is not initialized.
        """
        if not self._active:
            raise SynchronizerStateError(f"Cannot create from state {self._state}")
        clean_url, clean_title = prepare_bookmark_input(url, title)
        generation = self._generation
        record = await self._api.create_bookmark(clean_url, clean_title)
        if generation == self._generation:
            self.apply_insert(record)
        return record

    async def delete(self, bookmark_id: UUID) -> None:
        """
        Delete a bookmark and drop it from the list once the server confirms.

        Raises:
            UnauthorizedError, StoreFailureError: If the server rejects the request;
                the list is left unchanged.
            SynchronizerStateError: If the session is not initialized.
        """
        if not self._active:
            raise SynchronizerStateError(f"Cannot delete from state {self._state}")
        generation = self._generation
        await self._api.delete_bookmark(bookmark_id)
        if generation == self._generation:
            self.apply_delete(bookmark_id)
