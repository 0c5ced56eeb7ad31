"""
In-memory ordered bookmark collection for one user session.

Every writer (pagination, live updates, optimistic mutations, the add action)
goes through this store; it is the single source of truth for rendering.
Mutations are synchronous, so on one event loop they never interleave.

Invariants held after every operation:
- ids are unique;
- iteration follows position ascending (missing positions last), then
  created_at descending.
"""
import logging
from collections.abc import Callable, Iterable, Iterator, Sequence

from schemas.bookmark import Bookmark, sort_key

logger = logging.getLogger(__name__)

Snapshot = tuple[Bookmark, ...]


class BookmarkStore:
    """Deduplicated, ordered collection of Bookmark records."""

    def __init__(self, records: Iterable[Bookmark] = ()) -> None:
        self._items: list[Bookmark] = []
        self._index: dict[str, Bookmark] = {}
        for record in records:
            self.insert(record)

    # -- reads -----------------------------------------------------------

    @property
    def items(self) -> Snapshot:
        """Current records in display order."""
        return tuple(self._items)

    @property
    def ids(self) -> list[str]:
        """Ids in display order."""
        return [record.id for record in self._items]

    def get(self, record_id: str) -> Bookmark | None:
        """Look up a record by id."""
        return self._index.get(record_id)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._index

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Bookmark]:
        return iter(tuple(self._items))

    def filter(self, predicate: Callable[[Bookmark], bool]) -> Snapshot:
        """Derived read-only view; the underlying order is not touched."""
        return tuple(record for record in self._items if predicate(record))

    # -- writes ----------------------------------------------------------

    def _resort(self) -> None:
        # list.sort is stable: records with equal keys keep their relative order
        self._items.sort(key=sort_key)

    def insert(self, record: Bookmark, *, at_start: bool = False) -> bool:
        """
        Add a record unless its id is already present.

        ``at_start`` is used for freshly created bookmarks: among records with
        an identical sort key the new one comes first. Pagination appends.

        Returns:
            True if the record was added, False if the id already existed.
        """
        if record.id in self._index:
            return False
        self._index[record.id] = record
        if at_start:
            self._items.insert(0, record)
        else:
            self._items.append(record)
        self._resort()
        return True

    def remove(self, record_id: str) -> bool:
        """Remove a record by id. Returns False if it was not present."""
        record = self._index.pop(record_id, None)
        if record is None:
            return False
        self._items = [item for item in self._items if item.id != record_id]
        return True

    def replace(self, record: Bookmark) -> bool:
        """
        Upsert by id.

        An existing record is swapped in place; the list is re-sorted only when
        the sort key changed. A missing id is inserted at the start.

        Returns:
            True if an existing record was replaced, False if it was inserted.
        """
        existing = self._index.get(record.id)
        if existing is None:
            self.insert(record, at_start=True)
            return False
        self._index[record.id] = record
        index = next(i for i, item in enumerate(self._items) if item.id == record.id)
        self._items[index] = record
        if sort_key(existing) != sort_key(record):
            self._resort()
        return True

    def reorder(self, sequence: Sequence[str]) -> list[Bookmark]:
        """
        Assign dense positions following the given id sequence.

        The sequence may be partial: listed ids (unknown or repeated ids are
        skipped) take positions 0..k-1 in the given order and the remaining
        records follow in their current order. Nothing is persisted here.

        Returns:
            Every record, in its new order, carrying its new position.
        """
        ordered: list[Bookmark] = []
        seen: set[str] = set()
        for record_id in sequence:
            record = self._index.get(record_id)
            if record is None or record_id in seen:
                continue
            seen.add(record_id)
            ordered.append(record)
        ordered.extend(record for record in self._items if record.id not in seen)

        self._items = [record.with_position(i) for i, record in enumerate(ordered)]
        self._index = {record.id: record for record in self._items}
        return list(self._items)

    def move(self, source_id: str, target_id: str) -> list[Bookmark] | None:
        """
        Drag-and-drop reorder: put source at target's index.

        The source is removed from its index and inserted at the index the
        target occupied, then every position is recomputed densely.

        Returns:
            The re-positioned records, or None (store untouched) when dropping
            onto itself or when either id is not in the store.
        """
        if source_id == target_id:
            return None
        ids = self.ids
        if source_id not in self._index or target_id not in self._index:
            logger.debug("Ignoring move %s -> %s: record missing", source_id, target_id)
            return None
        target_index = ids.index(target_id)
        ids.remove(source_id)
        ids.insert(target_index, source_id)
        return self.reorder(ids)

    def snapshot(self) -> Snapshot:
        """Capture the whole list; records are immutable so a tuple suffices."""
        return tuple(self._items)

    def restore(self, snapshot: Snapshot) -> None:
        """Replace the whole list with a previously captured snapshot."""
        self._items = list(snapshot)
        self._index = {record.id: record for record in self._items}

    def clear(self) -> None:
        """Drop every record."""
        self._items = []
        self._index = {}
