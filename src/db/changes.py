"""
Store-level change notification for bookmark rows.

Session events record every inserted, updated and deleted Bookmark while a
transaction is open. The records are only released for publication once the
transaction commits; a rollback discards them. Services never publish feed
events themselves.
"""
import logging
from typing import NamedTuple

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, UOWTransaction

from models.bookmark import Bookmark
from schemas.bookmark import BookmarkResponse
from schemas.change_event import ChangeEvent

logger = logging.getLogger(__name__)

PENDING_CHANGES_KEY = "pending_bookmark_changes"
COMMITTED_CHANGES_KEY = "committed_bookmark_changes"


class OwnedChange(NamedTuple):
    """A change event together with the owner whose feed it belongs to."""

    owner_id: str
    event: ChangeEvent


def _pending(session: Session) -> list[OwnedChange]:
    return session.info.setdefault(PENDING_CHANGES_KEY, [])


@event.listens_for(Session, "after_flush")
def _collect_bookmark_changes(session: Session, _flush_context: UOWTransaction) -> None:
    # new/dirty/deleted still reflect the pre-flush state here, while
    # defaults (id, timestamps) have already been applied.
    pending = _pending(session)
    for obj in session.new:
        if isinstance(obj, Bookmark):
            row = BookmarkResponse.model_validate(obj)
            pending.append(OwnedChange(obj.owner_id, ChangeEvent.insert(row)))
    for obj in session.dirty:
        if isinstance(obj, Bookmark) and session.is_modified(obj, include_collections=False):
            row = BookmarkResponse.model_validate(obj)
            pending.append(OwnedChange(obj.owner_id, ChangeEvent.update(row)))
    for obj in session.deleted:
        if isinstance(obj, Bookmark):
            pending.append(OwnedChange(obj.owner_id, ChangeEvent.delete(obj.id)))


@event.listens_for(Session, "after_commit")
def _release_committed_changes(session: Session) -> None:
    pending = session.info.pop(PENDING_CHANGES_KEY, [])
    if pending:
        session.info.setdefault(COMMITTED_CHANGES_KEY, []).extend(pending)


@event.listens_for(Session, "after_rollback")
def _discard_uncommitted_changes(session: Session) -> None:
    discarded = session.info.pop(PENDING_CHANGES_KEY, [])
    if discarded:
        logger.debug("Discarded %d uncommitted bookmark change(s)", len(discarded))


def pop_committed_changes(session: Session | AsyncSession) -> list[OwnedChange]:
    """Take the committed-but-unpublished changes recorded on a session, in flush order."""
    return session.info.pop(COMMITTED_CHANGES_KEY, [])
