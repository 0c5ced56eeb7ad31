"""Applies the live change stream to the bookmark store."""
import asyncio
import contextlib
import logging

from db.backend import BackendError, BookmarkBackend, Subscription
from schemas.bookmark import ChangeEvent, ChangeKind
from services.bookmark_store import BookmarkStore

logger = logging.getLogger(__name__)


class LiveUpdateListener:
    """
    Subscribes to an owner's change stream and mirrors it into the store.

    No ordering is assumed relative to pagination or optimistic writes;
    dedup by id is what keeps the store consistent. An insert echo for a
    record that is already present is a no-op.

    ``stop()`` cancels the consumer and closes the subscription; once it
    returns no further event reaches the store.
    """

    def __init__(self, backend: BookmarkBackend, store: BookmarkStore, owner_id: str) -> None:
        self._backend = backend
        self._store = store
        self.owner_id = owner_id
        self._subscription: Subscription | None = None
        self._task: asyncio.Task | None = None
        self.active = False

    def apply(self, event: ChangeEvent) -> bool:
        """
        Apply one event to the store.

        Returns:
            True if the store changed.
        """
        if not self.active:
            return False
        record = event.record
        if record is not None and record.user_id not in (None, self.owner_id):
            logger.warning(
                "Dropping %s event for bookmark %s owned by another user",
                event.kind, event.record_id,
            )
            return False
        if event.kind == ChangeKind.INSERT:
            return self._store.insert(record, at_start=True)
        if event.kind == ChangeKind.DELETE:
            return self._store.remove(event.record_id)
        self._store.replace(record)
        return True

    async def _consume(self, subscription: Subscription) -> None:
        try:
            async for event in subscription:
                self.apply(event)
        except BackendError as e:
            logger.warning("Change stream for owner %s ended: %s", self.owner_id, e)
        except Exception:
            logger.exception("Change stream consumer for owner %s failed", self.owner_id)

    def start(self) -> None:
        """Open the subscription and start applying events."""
        if self._task is not None:
            return
        self.active = True
        self._subscription = self._backend.subscribe(self.owner_id)
        self._task = asyncio.create_task(
            self._consume(self._subscription),
            name=f"bookmark-changes-{self.owner_id}",
        )
        logger.info("Live updates started for owner %s", self.owner_id)

    async def stop(self) -> None:
        """Tear down the subscription. Safe to call more than once."""
        self.active = False
        task, self._task = self._task, None
        subscription, self._subscription = self._subscription, None
        try:
            if task is not None:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        finally:
            if subscription is not None:
                await subscription.close()
                logger.info("Live updates stopped for owner %s", self.owner_id)
