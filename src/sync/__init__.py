"""Client-side synchronization of a user's bookmarks with the server."""
from sync.api_client import BookmarksApiClient
from sync.exceptions import (
    InvalidInputError,
    StoreFailureError,
    SyncError,
    SynchronizerStateError,
    UnauthorizedError,
)
from sync.feed_client import FeedClient
from sync.synchronizer import BookmarkSynchronizer, SyncState

__all__ = [
    "BookmarkSynchronizer",
    "BookmarksApiClient",
    "FeedClient",
    "InvalidInputError",
    "StoreFailureError",
    "SyncError",
    "SyncState",
    "SynchronizerStateError",
    "UnauthorizedError",
]
