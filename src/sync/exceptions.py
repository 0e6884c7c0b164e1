"""Exceptions raised by the client-side bookmark synchronizer."""


class SyncError(Exception):
    """Base class for client-side synchronization errors."""


class UnauthorizedError(SyncError):
    """The session has no valid credentials (HTTP 401)."""


class InvalidInputError(SyncError):
    """The url or title was rejected, either locally or by the server (HTTP 400)."""


class StoreFailureError(SyncError):
    """The server or the transport failed to complete the operation."""


class SynchronizerStateError(SyncError):
    """An operation was attempted in a state that does not allow it."""
