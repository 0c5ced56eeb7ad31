"""
Optimistic delete and reorder with whole-list rollback.

Each mutation follows the same four steps: snapshot the store, apply the
change locally, make the remote call, and on failure restore the snapshot and
notify. Success needs no follow-up because local state is already correct.

Rollback restores the entire snapshot, so changes applied by other writers
between the snapshot and the failure are discarded (last snapshot wins).
"""
import logging
from dataclasses import dataclass

from db.backend import BackendError, BookmarkBackend
from services.bookmark_store import BookmarkStore
from services.notifications import Notifier, error, log_notifier, success

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MutationResult:
    """Outcome of an optimistic mutation."""

    applied: bool
    rolled_back: bool = False
    error: str | None = None


NOT_APPLIED = MutationResult(applied=False)


class OptimisticCoordinator:
    """Runs local-first mutations against the store and the backend."""

    def __init__(
        self,
        backend: BookmarkBackend,
        store: BookmarkStore,
        owner_id: str,
        notifier: Notifier = log_notifier,
    ) -> None:
        self._backend = backend
        self._store = store
        self.owner_id = owner_id
        self._notify = notifier

    async def delete(self, record_id: str) -> MutationResult:
        """
        Remove a bookmark locally, then delete it remotely.

        An id that is not in the store (for example already removed by a live
        delete) is a no-op and no remote call is made.
        """
        snapshot = self._store.snapshot()
        if not self._store.remove(record_id):
            return NOT_APPLIED
        self._notify(success("Deleted"))
        try:
            await self._backend.delete(self.owner_id, record_id)
        except BackendError as e:
            logger.warning("Delete of bookmark %s failed, rolling back: %s", record_id, e)
            self._store.restore(snapshot)
            self._notify(error("Failed to delete"))
            return MutationResult(applied=True, rolled_back=True, error=str(e))
        return MutationResult(applied=True)

    async def move(self, source_id: str, target_id: str) -> MutationResult:
        """
        Drop source onto target, then persist every new position.

        Dropping onto itself, or when either record is no longer in the store,
        does nothing.
        """
        snapshot = self._store.snapshot()
        moved = self._store.move(source_id, target_id)
        if moved is None:
            return NOT_APPLIED
        rows = [
            record if record.user_id == self.owner_id
            else record.model_copy(update={"user_id": self.owner_id})
            for record in moved
        ]
        try:
            await self._backend.upsert(rows)
        except BackendError as e:
            logger.warning(
                "Reorder of bookmark %s onto %s failed, rolling back: %s",
                source_id, target_id, e,
            )
            self._store.restore(snapshot)
            self._notify(error("Failed to reorder"))
            return MutationResult(applied=True, rolled_back=True, error=str(e))
        return MutationResult(applied=True)
