"""Async SQLAlchemy session factory."""
import logging
from collections.abc import AsyncGenerator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from core.config import Settings, get_settings
from db.changes import pop_committed_changes  # importing registers the session listeners
from services.change_feed import get_change_feed
from services.exceptions import StoreFailureError

logger = logging.getLogger(__name__)


def build_engine(settings: Settings) -> AsyncEngine:
    """
    Create the async engine for the configured database.

    SQLite URLs (local development, tests) share a single in-memory connection;
    every other driver gets a bounded connection pool.
    """
    if settings.database_url.startswith("sqlite"):
        return create_async_engine(
            settings.database_url,
            echo=False,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(
        settings.database_url,
        echo=False,
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
    )


engine = build_engine(get_settings())

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def get_session_factory() -> async_sessionmaker:
    """Return the session factory for callers outside a request."""
    return async_session_factory


async def publish_committed_changes(session: AsyncSession) -> None:
    """Hand the session's committed bookmark changes to the change feed, in order."""
    changes = pop_committed_changes(session)
    if not changes:
        return
    feed = get_change_feed()
    if feed is None:
        logger.warning("No change feed configured, dropping %d change event(s)", len(changes))
        return
    for change in changes:
        await feed.publish(change.owner_id, change.event)


async def commit_and_publish(session: AsyncSession, operation: str) -> None:
    """
    Commit the session's unit of work now and publish its row changes.

    Mutating endpoints call this before building their response, so a failed
    commit is reported to the caller instead of surfacing after the response
    has been sent.

    Raises:
        StoreFailureError: If the commit fails; the transaction is rolled back.
    """
    try:
        await session.commit()
    except SQLAlchemyError as e:
        logger.exception("Error committing %s", operation)
        await session.rollback()
        raise StoreFailureError(operation) from e
    await publish_committed_changes(session)


async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """
    Yield an async database session.

    Uses unit-of-work pattern: services use flush() for refreshing objects,
    commit happens once here at request end. This ensures atomic transactions
    per request - if anything fails, all changes are rolled back. Mutating
    endpoints commit earlier through commit_and_publish(); the commit here is
    then a no-op.

    Row changes reach the change feed only after the commit succeeds.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        await publish_committed_changes(session)
