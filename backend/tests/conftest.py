"""Pytest fixtures for testing."""
from collections.abc import AsyncGenerator, Callable, Generator
from datetime import UTC, datetime, timedelta

import pytest

from core.config import get_settings
from db.memory import InMemoryBackend
from schemas.bookmark import Bookmark
from services.notifications import Notification

OWNER_ID = "user-1"
BASE_TIME = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)

BookmarkFactory = Callable[..., Bookmark]


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None]:
    """Settings are cached per process; reset around each test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def owner_id() -> str:
    """Opaque owner id used by the fixtures."""
    return OWNER_ID


@pytest.fixture
def make_bookmark() -> BookmarkFactory:
    """
    Factory for bookmarks.

    ``age`` is minutes before BASE_TIME, so a larger age means an older record.
    """

    def _make(
        id: str,  # noqa: A002
        position: int | None = None,
        age: int = 0,
        title: str | None = None,
        url: str | None = None,
        user_id: str = OWNER_ID,
    ) -> Bookmark:
        return Bookmark(
            id=id,
            user_id=user_id,
            title=title or f"Bookmark {id}",
            url=url or f"https://example.com/{id}",
            created_at=BASE_TIME - timedelta(minutes=age),
            position=position,
        )

    return _make


@pytest.fixture
def notifications() -> list[Notification]:
    """Collected notifications; pass ``notifications.append`` as the notifier."""
    return []


@pytest.fixture
async def backend() -> AsyncGenerator[InMemoryBackend]:
    """Empty in-memory backend, closed after the test."""
    memory_backend = InMemoryBackend()
    yield memory_backend
    await memory_backend.close()
