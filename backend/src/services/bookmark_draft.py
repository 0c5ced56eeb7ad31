"""State and actions of the add-bookmark form."""
import logging
from collections.abc import Awaitable, Callable

from pydantic import ValidationError

from db.backend import BackendError, BookmarkBackend
from schemas.bookmark import Bookmark, BookmarkCreate, ChangeEvent
from schemas.metadata import PageMetadata
from schemas.validators import is_http_url
from services.event_channel import EventChannel
from services.exceptions import InvalidUrlError
from services.metadata_extractor import extract_metadata
from services.notifications import Notifier, error, log_notifier, success

logger = logging.getLogger(__name__)

Extractor = Callable[[str], Awaitable[PageMetadata]]


class BookmarkDraft:
    """
    A new bookmark being composed.

    Entering a URL pre-fills the preview fields from the page. The fetched
    title only replaces the current title when that title is empty or was
    itself filled in automatically, so a title the user typed is kept.

    ``submit`` inserts the bookmark remotely and publishes the stored record
    on the session channel so the list shows it before the change stream
    echoes it back.
    """

    def __init__(
        self,
        backend: BookmarkBackend,
        owner_id: str,
        channel: EventChannel[ChangeEvent],
        extractor: Extractor = extract_metadata,
        notifier: Notifier = log_notifier,
    ) -> None:
        self._backend = backend
        self.owner_id = owner_id
        self._channel = channel
        self._extract = extractor
        self._notify = notifier
        self.reset()

    def reset(self) -> None:
        """Clear every field."""
        self.url = ""
        self.title = ""
        self.favicon_url: str | None = None
        self.preview_image_url: str | None = None
        self.preview_description: str | None = None
        self.auto_fetched = False
        self.fetching = False
        self.submitting = False

    def set_title(self, title: str) -> None:
        """User edit of the title; it is no longer considered auto-filled."""
        self.title = title
        self.auto_fetched = False

    async def update_url(self, url: str) -> bool:
        """
        Record a new URL and pre-fill metadata from the page.

        Input that is not an absolute http(s) URL is stored as typed and no
        fetch is made.

        Returns:
            True if metadata was fetched and applied.
        """
        title_was_auto = self.auto_fetched
        self.url = url
        self.auto_fetched = False
        if not url.startswith(("http://", "https://")) or not is_http_url(url):
            return False

        self.fetching = True
        try:
            metadata = await self._extract(url)
        except InvalidUrlError:
            return False
        finally:
            self.fetching = False

        if self.url != url:
            # Superseded by a newer URL while fetching
            return False
        if not self.title or title_was_auto:
            self.title = metadata.title
            self.auto_fetched = True
        self.favicon_url = metadata.favicon_url
        self.preview_image_url = metadata.preview_image_url
        self.preview_description = metadata.preview_description
        return True

    def to_create(self) -> BookmarkCreate:
        """
        Validate the draft.

        Raises:
            ValidationError: If the URL or title is missing or invalid.
        """
        return BookmarkCreate(
            url=self.url,
            title=self.title,
            favicon_url=self.favicon_url,
            preview_image_url=self.preview_image_url,
            preview_description=self.preview_description,
        )

    async def submit(self) -> Bookmark | None:
        """
        Save the draft.

        Returns:
            The stored bookmark, or None if validation or the insert failed.
            On failure the draft keeps its fields so the user can retry.
        """
        if not self.url.strip() or not self.title.strip():
            self._notify(error("Please fill in all fields"))
            return None
        try:
            create = self.to_create()
        except ValidationError:
            self._notify(error("Please enter a valid URL"))
            return None

        self.submitting = True
        try:
            stored = await self._backend.insert([create.to_row(self.owner_id)])
        except BackendError as e:
            logger.warning("Error adding bookmark %s: %s", create.url, e)
            self._notify(error("Failed to add bookmark"))
            return None
        finally:
            self.submitting = False

        if not stored:
            # A backend that returns no representation; rely on the change stream
            self._notify(success("Bookmark added"))
            self.reset()
            return None
        record = stored[0]
        self._channel.publish(ChangeEvent.inserted(record))
        self._notify(success("Bookmark added"))
        self.reset()
        return record
