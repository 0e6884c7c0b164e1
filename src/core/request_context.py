"""Request context types carrying the authenticated owner identity."""
from dataclasses import dataclass
from enum import StrEnum


class AuthType(StrEnum):
    """Authentication method used for the request."""

    AUTH0 = "auth0"
    DEV = "dev"


@dataclass(frozen=True)
class AuthContext:
    """
    Verified identity of the caller, resolved once per request.

    Passed explicitly into every service call and feed subscription so that
    ownership scoping never depends on ambient state.
    """

    owner_id: str
    auth_type: AuthType
    email: str | None = None
