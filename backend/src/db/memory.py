"""In-memory bookmark backend for local development and tests."""
import asyncio
import logging
import uuid
from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime

from pydantic import ValidationError

from db.backend import BackendError
from schemas.bookmark import Bookmark, ChangeEvent, sort_key

logger = logging.getLogger(__name__)

_CLOSED = object()


class QueueSubscription:
    """Change stream backed by an asyncio.Queue."""

    def __init__(self, backend: "InMemoryBackend", owner_id: str) -> None:
        self.owner_id = owner_id
        self._backend = backend
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def push(self, event: ChangeEvent) -> None:
        """Queue an event for delivery."""
        if not self.closed:
            self._queue.put_nowait(event)

    def __aiter__(self) -> "QueueSubscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    async def close(self) -> None:
        """Stop delivery; a pending iteration ends cleanly."""
        if self.closed:
            return
        self.closed = True
        self._queue.put_nowait(_CLOSED)
        self._backend._unsubscribe(self)


class InMemoryBackend:
    """
    Backend that keeps rows in a dict and fans changes out to subscribers.

    Mirrors the hosted backend's behaviour closely enough to drive the sync
    engine: server-assigned ids and timestamps, owner-filtered change events
    for every write, and the same list ordering. ``fail_next`` makes the next
    call(s) of an operation raise BackendError.
    """

    def __init__(self, rows: Iterable[Bookmark] = ()) -> None:
        self._rows: dict[str, Bookmark] = {row.id: row for row in rows}
        self._subscriptions: dict[str, set[QueueSubscription]] = defaultdict(set)
        self._failures: dict[str, int] = defaultdict(int)
        self.calls: list[tuple] = []

    def fail_next(self, operation: str, times: int = 1) -> None:
        """Make the next `times` calls of `operation` fail."""
        self._failures[operation] += times

    def _check_failure(self, operation: str) -> None:
        if self._failures[operation] > 0:
            self._failures[operation] -= 1
            raise BackendError(operation, "injected failure")

    def rows(self, owner_id: str) -> list[Bookmark]:
        """All rows for an owner in list order."""
        return sorted(
            (row for row in self._rows.values() if row.user_id == owner_id),
            key=sort_key,
        )

    def _emit(self, owner_id: str | None, event: ChangeEvent) -> None:
        for subscription in list(self._subscriptions.get(owner_id, ())):
            subscription.push(event)

    async def select(self, owner_id: str, start: int, stop: int) -> list[Bookmark]:
        """Fetch one ordered page of an owner's bookmarks."""
        self.calls.append(("select", owner_id, start, stop))
        self._check_failure("select")
        return self.rows(owner_id)[start:stop]

    async def count(self, owner_id: str) -> int:
        """Count an owner's bookmarks."""
        self.calls.append(("count", owner_id))
        self._check_failure("count")
        return sum(1 for row in self._rows.values() if row.user_id == owner_id)

    async def insert(self, records: Sequence[dict]) -> list[Bookmark]:
        """Insert rows, assigning ids and creation timestamps."""
        self.calls.append(("insert", len(records)))
        self._check_failure("insert")
        try:
            created = [
                Bookmark.model_validate({
                    "id": uuid.uuid4().hex,
                    "created_at": datetime.now(UTC),
                    **record,
                })
                for record in records
            ]
        except ValidationError as e:
            raise BackendError("insert", str(e)) from e
        for row in created:
            if row.id in self._rows:
                raise BackendError("insert", f"duplicate id {row.id}")
        for row in created:
            self._rows[row.id] = row
            self._emit(row.user_id, ChangeEvent.inserted(row))
        return created

    async def delete(self, owner_id: str, record_id: str) -> None:
        """Delete one bookmark; deleting a missing row is not an error."""
        self.calls.append(("delete", owner_id, record_id))
        self._check_failure("delete")
        row = self._rows.get(record_id)
        if row is None or row.user_id != owner_id:
            return
        del self._rows[record_id]
        self._emit(owner_id, ChangeEvent.deleted(record_id))

    async def upsert(self, records: Sequence[Bookmark]) -> None:
        """Insert or replace whole records by id."""
        self.calls.append(("upsert", [record.id for record in records]))
        self._check_failure("upsert")
        for record in records:
            existing = self._rows.get(record.id)
            if existing == record:
                continue
            self._rows[record.id] = record
            if existing is None:
                self._emit(record.user_id, ChangeEvent.inserted(record))
            else:
                self._emit(record.user_id, ChangeEvent.updated(record))

    def subscribe(self, owner_id: str) -> QueueSubscription:
        """Open a change stream for one owner."""
        subscription = QueueSubscription(self, owner_id)
        self._subscriptions[owner_id].add(subscription)
        logger.info("Opened change stream for owner %s", owner_id)
        return subscription

    def subscriber_count(self, owner_id: str) -> int:
        """Number of open change streams for an owner."""
        return len(self._subscriptions.get(owner_id, ()))

    def _unsubscribe(self, subscription: QueueSubscription) -> None:
        self._subscriptions[subscription.owner_id].discard(subscription)

    async def close(self) -> None:
        """Close every open change stream."""
        for subscriptions in list(self._subscriptions.values()):
            for subscription in list(subscriptions):
                await subscription.close()
