"""Explicit in-process publish/subscribe channel."""
import logging
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Handler = Callable[[T], None]


class EventChannel(Generic[T]):
    """
    Synchronous publish/subscribe between components of one session.

    Used to hand a freshly created bookmark from the add action to the list
    view without waiting for the remote change stream to echo it. Handlers run
    in subscription order; a failing handler is logged and the rest still run.
    """

    def __init__(self, name: str = "events") -> None:
        self.name = name
        self._handlers: list[Handler] = []

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        """
        Register a handler.

        Returns:
            A callable that removes the handler again.
        """
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def publish(self, message: T) -> int:
        """
        Deliver a message to every current handler.

        Returns:
            Number of handlers that received it.
        """
        delivered = 0
        for handler in list(self._handlers):
            try:
                handler(message)
            except Exception:
                logger.exception("Handler on channel %r failed", self.name)
                continue
            delivered += 1
        return delivered

    @property
    def subscriber_count(self) -> int:
        """Number of registered handlers."""
        return len(self._handlers)

    def close(self) -> None:
        """Remove every handler."""
        self._handlers.clear()
