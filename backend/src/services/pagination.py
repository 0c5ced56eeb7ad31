"""Infinite-scroll page loading into the bookmark store."""
import logging
from dataclasses import dataclass

from db.backend import BackendError, BookmarkBackend
from services.bookmark_store import BookmarkStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PageResult:
    """Outcome of a load_next call."""

    appended: int = 0
    error: str | None = None
    # True when the call did nothing because a load was in flight or the
    # caller is gated (search active)
    skipped: bool = False

    @property
    def ok(self) -> bool:
        """True unless the fetch failed."""
        return self.error is None


class PaginationController:
    """
    Fetches successive pages of an owner's bookmarks and merges them.

    Page 0 is the server-rendered initial page, so a controller created for
    that page starts at ``current_page=1``. The range for the next fetch is
    ``[current_page * page_size, (current_page + 1) * page_size)``.

    Calls are single-flight: while one load is in progress further calls
    return immediately with ``skipped=True``. A failed fetch leaves
    ``current_page`` and ``has_more`` unchanged so a retry asks for the same
    range. Callers must not load while a search filter is active.
    """

    def __init__(
        self,
        backend: BookmarkBackend,
        store: BookmarkStore,
        owner_id: str,
        page_size: int,
        has_more: bool = True,
        current_page: int = 1,
    ) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self._backend = backend
        self._store = store
        self.owner_id = owner_id
        self.page_size = page_size
        self.has_more = has_more
        self.current_page = current_page
        self.loading = False

    @property
    def next_range(self) -> tuple[int, int]:
        """Half-open index range the next load will request."""
        start = self.current_page * self.page_size
        return start, start + self.page_size

    async def load_next(self) -> PageResult:
        """
        Load the next page into the store.

        Returns:
            PageResult with the number of newly added records, or the error.
        """
        if self.loading:
            return PageResult(skipped=True)
        if not self.has_more:
            return PageResult()

        self.loading = True
        start, stop = self.next_range
        try:
            records = await self._backend.select(self.owner_id, start, stop)
        except BackendError as e:
            logger.warning("Failed to load bookmarks [%d, %d): %s", start, stop, e)
            return PageResult(error=str(e))
        finally:
            self.loading = False

        # Records already present (live inserts, optimistic adds) are skipped
        appended = sum(1 for record in records if self._store.insert(record))
        self.current_page += 1
        if len(records) < self.page_size:
            self.has_more = False
        logger.debug(
            "Loaded page %d: %d fetched, %d new, has_more=%s",
            self.current_page - 1, len(records), appended, self.has_more,
        )
        return PageResult(appended=appended)
