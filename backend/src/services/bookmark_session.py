"""
View root for one user's bookmark list.

Wires the store to its writers (pagination, live updates, optimistic
mutations, the add-action channel) and exposes what a view needs: the
ordered, search-filtered sequence and the callbacks for add, delete, reorder,
search and load-more. The backend is injected; the session owns the lifetime
of the subscriptions it opens.
"""
import logging
from collections.abc import Iterable
from types import TracebackType

from core.config import Settings, get_settings
from db.backend import BookmarkBackend
from schemas.bookmark import Bookmark, ChangeEvent
from services.bookmark_draft import BookmarkDraft, Extractor
from services.bookmark_store import BookmarkStore
from services.event_channel import EventChannel
from services.live_updates import LiveUpdateListener
from services.metadata_extractor import extract_metadata
from services.notifications import Notifier, error, log_notifier
from services.optimistic import NOT_APPLIED, MutationResult, OptimisticCoordinator
from services.pagination import PageResult, PaginationController
from services.search import DebouncedQuery, matches_query

logger = logging.getLogger(__name__)


class BookmarkSession:
    """One open bookmark list for one owner."""

    def __init__(
        self,
        backend: BookmarkBackend,
        owner_id: str,
        initial: Iterable[Bookmark] = (),
        total_count: int | None = None,
        page_size: int | None = None,
        notifier: Notifier = log_notifier,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        initial = list(initial)
        self.owner_id = owner_id
        self.total_count = len(initial) if total_count is None else total_count
        self._backend = backend
        self._notify = notifier

        self.store = BookmarkStore(initial)
        self.channel: EventChannel[ChangeEvent] = EventChannel(name=f"bookmarks-{owner_id}")
        self.pagination = PaginationController(
            backend,
            self.store,
            owner_id,
            page_size=page_size or settings.page_size,
            has_more=len(initial) < self.total_count,
        )
        self.coordinator = OptimisticCoordinator(backend, self.store, owner_id, notifier)
        self.listener = LiveUpdateListener(backend, self.store, owner_id)
        self.search = DebouncedQuery(delay=settings.search_debounce_seconds)
        self._unsubscribe_channel = None
        self.is_open = False

    @classmethod
    async def load(
        cls,
        backend: BookmarkBackend,
        owner_id: str,
        page_size: int | None = None,
        notifier: Notifier = log_notifier,
        settings: Settings | None = None,
    ) -> "BookmarkSession":
        """
        Build a session from the first page and total count.

        Nothing is subscribed until ``open()``, so a failed load leaves no
        stream behind for the caller to clean up.

        Raises:
            BackendError: If the first page or the count cannot be fetched.
        """
        settings = settings or get_settings()
        page_size = page_size or settings.page_size
        initial = await backend.select(owner_id, 0, page_size)
        total = await backend.count(owner_id)
        return cls(
            backend,
            owner_id,
            initial=initial,
            total_count=total,
            page_size=page_size,
            notifier=notifier,
            settings=settings,
        )

    # -- lifecycle -------------------------------------------------------

    def open(self) -> None:
        """Start receiving live updates and same-session add events."""
        if self.is_open:
            return
        self.is_open = True
        self.listener.start()
        self._unsubscribe_channel = self.channel.subscribe(self.listener.apply)

    async def close(self) -> None:
        """Tear down subscriptions; afterwards no event reaches the store."""
        if not self.is_open:
            return
        self.is_open = False
        self.search.cancel()
        if self._unsubscribe_channel is not None:
            self._unsubscribe_channel()
            self._unsubscribe_channel = None
        self.channel.close()
        await self.listener.stop()

    async def __aenter__(self) -> "BookmarkSession":
        self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    # -- reads -----------------------------------------------------------

    @property
    def is_searching(self) -> bool:
        """True while a committed search query filters the list."""
        return self.search.is_active

    @property
    def visible(self) -> tuple[Bookmark, ...]:
        """Records to render: store order, filtered by the committed query."""
        if not self.is_searching:
            return self.store.items
        query = self.search.value
        return self.store.filter(lambda record: matches_query(record, query))

    @property
    def has_more(self) -> bool:
        """True while more pages may exist on the server."""
        return self.pagination.has_more

    @property
    def loading_more(self) -> bool:
        """True while a page fetch is in flight."""
        return self.pagination.loading

    # -- actions ---------------------------------------------------------

    def set_search_query(self, text: str) -> None:
        """Update the search input; the filter applies after the debounce delay."""
        self.search.set(text)

    async def load_more(self) -> PageResult:
        """Fetch the next page unless a search filter is active."""
        if self.is_searching:
            return PageResult(skipped=True)
        result = await self.pagination.load_next()
        if result.error is not None:
            self._notify(error("Failed to load more"))
        return result

    async def delete(self, record_id: str) -> MutationResult:
        """Optimistically delete a bookmark."""
        return await self.coordinator.delete(record_id)

    async def move(self, source_id: str, target_id: str) -> MutationResult:
        """Optimistically drop one bookmark onto another's slot."""
        if self.is_searching:
            # Dragging is disabled over a filtered view
            return NOT_APPLIED
        return await self.coordinator.move(source_id, target_id)

    def new_draft(self, extractor: Extractor = extract_metadata) -> BookmarkDraft:
        """Create an add-bookmark draft publishing into this session."""
        return BookmarkDraft(
            self._backend,
            self.owner_id,
            self.channel,
            extractor=extractor,
            notifier=self._notify,
        )
