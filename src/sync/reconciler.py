"""
Reconciler: pure functions applying snapshots and change events to a list.

The list is a tuple of bookmarks, newest first. Every function returns a new
tuple and never mutates its input, and every operation is keyed by id:

- a snapshot replaces the list wholesale;
- an insert prepends a new id, or replaces an existing id in place;
- an update replaces an existing id in place, otherwise does nothing;
- a delete removes an id if present, otherwise does nothing.

Applying the same event twice therefore yields the same list as applying it
once, and no sequence of events can leave two rows with the same id.
"""
import logging
from collections.abc import Iterable
from uuid import UUID

from schemas.bookmark import BookmarkResponse
from schemas.change_event import ChangeEvent, ChangeEventType

logger = logging.getLogger(__name__)

BookmarkList = tuple[BookmarkResponse, ...]


def _index_of(current: BookmarkList, bookmark_id: UUID) -> int | None:
    for index, bookmark in enumerate(current):
        if bookmark.id == bookmark_id:
            return index
    return None


def apply_snapshot(_current: BookmarkList, snapshot: Iterable[BookmarkResponse]) -> BookmarkList:
    """Replace the list with a full snapshot, keeping the first row for any repeated id."""
    seen: set[UUID] = set()
    rows = []
    for bookmark in snapshot:
        if bookmark.id in seen:
            continue
        seen.add(bookmark.id)
        rows.append(bookmark)
    return tuple(rows)


def apply_insert(current: BookmarkList, record: BookmarkResponse) -> BookmarkList:
    """Prepend a new row, or replace the row with the same id in place."""
    index = _index_of(current, record.id)
    if index is None:
        return (record, *current)
    return (*current[:index], record, *current[index + 1:])


def apply_update(current: BookmarkList, record: BookmarkResponse) -> BookmarkList:
    """Replace the row with the same id in place; unknown ids are ignored."""
    index = _index_of(current, record.id)
    if index is None:
        return current
    return (*current[:index], record, *current[index + 1:])


def apply_delete(current: BookmarkList, bookmark_id: UUID) -> BookmarkList:
    """Remove the row with this id; an absent id is not an error."""
    index = _index_of(current, bookmark_id)
    if index is None:
        return current
    return (*current[:index], *current[index + 1:])


def apply_event(current: BookmarkList, event: ChangeEvent) -> BookmarkList:
    """
    Apply one change event.

    Deletes take the row id from ``old`` and fall back to ``new``. Events
    missing the data they need are logged as anomalies and leave the list as is.
    """
    if event.event_type is ChangeEventType.DELETE:
        row_id = event.row_id
        if row_id is None:
            logger.warning("Delete event without a row id, ignoring: %s", event.to_json())
            return current
        return apply_delete(current, row_id)

    if not isinstance(event.new, BookmarkResponse):
        logger.warning(
            "%s event without a full row, ignoring: %s",
            event.event_type.value.capitalize(),
            event.to_json(),
        )
        return current

    if event.event_type is ChangeEventType.INSERT:
        return apply_insert(current, event.new)
    return apply_update(current, event.new)
