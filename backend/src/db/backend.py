"""
Remote persistence contract for bookmarks.

The sync engine depends only on the operations declared here; any backend
(hosted table API, in-memory store for development/tests) can be injected.
"""
from collections.abc import AsyncIterator, Sequence
from typing import Protocol, runtime_checkable

from schemas.bookmark import Bookmark, ChangeEvent


class BackendError(Exception):
    """Raised when a remote persistence call fails."""

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        super().__init__(f"{operation} failed: {message}")


@runtime_checkable
class Subscription(Protocol):
    """An open change stream for one owner."""

    def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        """Iterate change events until the stream is closed."""
        ...

    async def close(self) -> None:
        """Stop the stream and release its resources. Idempotent."""
        ...


@runtime_checkable
class BookmarkBackend(Protocol):
    """
    Operations the sync engine needs from remote persistence.

    ``select`` returns records ordered by position ascending (missing positions
    last), then created_at descending, sliced to the half-open range
    ``[start, stop)``. Every method raises BackendError on failure.
    """

    async def select(self, owner_id: str, start: int, stop: int) -> list[Bookmark]:
        """Fetch one ordered page of an owner's bookmarks."""
        ...

    async def count(self, owner_id: str) -> int:
        """Count an owner's bookmarks."""
        ...

    async def insert(self, records: Sequence[dict]) -> list[Bookmark]:
        """Insert new rows and return them as stored (ids and timestamps assigned)."""
        ...

    async def delete(self, owner_id: str, record_id: str) -> None:
        """Delete one bookmark by id."""
        ...

    async def upsert(self, records: Sequence[Bookmark]) -> None:
        """Insert or update whole records, keyed by id."""
        ...

    def subscribe(self, owner_id: str) -> Subscription:
        """Open a change stream filtered to one owner."""
        ...

    async def close(self) -> None:
        """Release any connections held by the backend."""
        ...
