"""User-visible transient notifications (toasts) emitted by the sync engine."""
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

logger = logging.getLogger(__name__)


class NotificationLevel(StrEnum):
    """Severity of a notification."""

    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    """A short message for the view layer to display."""

    level: NotificationLevel
    message: str


Notifier = Callable[[Notification], None]


def log_notifier(notification: Notification) -> None:
    """Default notifier: write the message to the log."""
    if notification.level == NotificationLevel.ERROR:
        logger.warning("%s", notification.message)
    else:
        logger.info("%s", notification.message)


def success(message: str) -> Notification:
    """Build a success notification."""
    return Notification(NotificationLevel.SUCCESS, message)


def error(message: str) -> Notification:
    """Build an error notification."""
    return Notification(NotificationLevel.ERROR, message)
