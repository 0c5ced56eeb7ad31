"""Search over loaded bookmarks."""
import asyncio
import contextlib
import logging
from collections.abc import Callable

from schemas.bookmark import Bookmark

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.3


def matches_query(bookmark: Bookmark, query: str) -> bool:
    """Case-insensitive substring match on title or URL; a blank query matches all."""
    needle = query.strip().lower()
    if not needle:
        return True
    return needle in bookmark.title.lower() or needle in bookmark.url.lower()


class DebouncedQuery:
    """
    Search text that only takes effect after typing pauses.

    ``set`` records the raw input and (re)starts the timer; ``value`` changes
    once ``delay`` seconds pass without another ``set``. Must be used from a
    running event loop.
    """

    def __init__(
        self,
        delay: float = DEFAULT_DEBOUNCE_SECONDS,
        on_change: Callable[[str], None] | None = None,
    ) -> None:
        self.delay = delay
        self.raw = ""
        self.value = ""
        self._on_change = on_change
        self._pending: asyncio.Task | None = None

    @property
    def is_active(self) -> bool:
        """True while a non-blank query is committed."""
        return bool(self.value.strip())

    @property
    def pending(self) -> bool:
        """True while a commit is scheduled."""
        return self._pending is not None and not self._pending.done()

    def set(self, raw: str) -> None:
        """Record new input and restart the debounce timer."""
        self.raw = raw
        self.cancel()
        self._pending = asyncio.get_running_loop().create_task(self._commit_later(raw))

    async def _commit_later(self, raw: str) -> None:
        await asyncio.sleep(self.delay)
        self._commit(raw)

    def _commit(self, raw: str) -> None:
        if raw == self.value:
            return
        self.value = raw
        if self._on_change is not None:
            self._on_change(raw)

    def flush(self) -> None:
        """Commit the latest input immediately."""
        self.cancel()
        self._commit(self.raw)

    def cancel(self) -> None:
        """Drop a scheduled commit."""
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    async def wait(self) -> None:
        """Wait for a scheduled commit to happen (no-op if none)."""
        if self._pending is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._pending
