"""Pytest fixtures for testing."""
import asyncio
import os
from collections.abc import AsyncGenerator, AsyncIterator, Callable, Generator, Iterator
from contextlib import contextmanager
from unittest.mock import AsyncMock, patch

# Must be set before any app imports that trigger Settings validation.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["VITE_DEV_MODE"] = "false"
os.environ["REDIS_ENABLED"] = "false"

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.exc import OperationalError  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from core.config import get_settings  # noqa: E402
from core.request_context import AuthContext, AuthType  # noqa: E402
from models.base import Base  # noqa: E402
from schemas.change_event import ChangeEvent  # noqa: E402
from services.change_feed import ChangeFeed, set_change_feed  # noqa: E402

OWNER_A = "google-oauth2|owner-a"
OWNER_B = "google-oauth2|owner-b"


def auth_headers(owner_id: str) -> dict[str, str]:
    """Bearer header whose token decodes to ``owner_id`` (see fake_jwt fixture)."""
    return {"Authorization": f"Bearer {owner_id}"}


async def eventually(
    condition: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01,
) -> None:
    """Wait until ``condition()`` is true, failing the test after ``timeout`` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            pytest.fail("condition not met before timeout")
        await asyncio.sleep(interval)


@contextmanager
def failing_commit() -> Iterator[AsyncMock]:
    """Make every AsyncSession.commit fail the way a lost database connection does."""
    with patch.object(
        AsyncSession,
        "commit",
        new_callable=AsyncMock,
        side_effect=OperationalError("COMMIT", {}, Exception("connection lost")),
    ) as commit:
        yield commit


class InProcessFeed:
    """Change source reading straight from a ChangeFeed (no HTTP in between)."""

    def __init__(self, feed: ChangeFeed) -> None:
        self._feed = feed

    async def stream(
        self, owner_id: str, on_connected: Callable[[], None] | None = None,
    ) -> AsyncIterator[ChangeEvent]:
        async with self._feed.subscribe(owner_id) as subscription:
            if on_connected is not None:
                on_connected()
            async for event in subscription:
                yield event


@pytest.fixture(autouse=True)
def settings_cache() -> Generator[None]:
    """Clear the settings cache so each test sees the environment above."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def fake_jwt() -> Generator[None]:
    """Treat the bearer token itself as the verified 'sub' claim."""
    with patch("core.auth.decode_jwt", side_effect=lambda token, _settings: {"sub": token}):
        yield


@pytest.fixture(autouse=True)
async def database() -> AsyncGenerator[None]:
    """Create the schema in the in-memory database and drop it afterwards."""
    from db.session import engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture(autouse=True)
def change_feed() -> Generator[ChangeFeed]:
    """In-process change feed installed as the application's feed."""
    feed = ChangeFeed(redis_client=None, queue_size=100)
    set_change_feed(feed)
    yield feed
    set_change_feed(None)


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession]:
    """A session from the application's session factory."""
    from db.session import get_session_factory

    async with get_session_factory()() as session:
        yield session


@pytest.fixture
def auth_a() -> AuthContext:
    return AuthContext(owner_id=OWNER_A, auth_type=AuthType.AUTH0)


@pytest.fixture
def auth_b() -> AuthContext:
    return AuthContext(owner_id=OWNER_B, auth_type=AuthType.AUTH0)


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient]:
    """Unauthenticated test client for the application."""
    from api.main import app

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as test_client:
        yield test_client
