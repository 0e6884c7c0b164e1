"""Shared exceptions for service layer operations."""


class StoreFailureError(Exception):
    """
    Raised when the backing store fails to complete an operation.

    The original database error is chained as ``__cause__`` and has already
    been logged; callers surface a generic failure without retrying.
    """

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Failed to {operation}")


class ChangeFeedUnavailableError(Exception):
    """Raised when a change feed subscription cannot be opened."""

    def __init__(self, owner_id: str) -> None:
        self.owner_id = owner_id
        super().__init__(f"Change feed unavailable for owner {owner_id}")
