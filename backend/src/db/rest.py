"""HTTP backend for a PostgREST-style bookmarks table with an SSE change feed."""
import json
import logging
from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx
from pydantic import ValidationError

from core.config import Settings, get_settings
from db.backend import BackendError
from schemas.bookmark import Bookmark, ChangeEvent, ChangeKind

logger = logging.getLogger(__name__)

TABLE_PATH = "/bookmarks"
CHANGES_PATH = "/bookmarks/changes"
LIST_ORDER = "position.asc.nullslast,created_at.desc"

_EVENT_KINDS = {
    "INSERT": ChangeKind.INSERT,
    "UPDATE": ChangeKind.UPDATE,
    "DELETE": ChangeKind.DELETE,
}


def parse_content_range_total(header: str | None) -> int:
    """
    Read the total from a Content-Range header such as ``0-19/42`` or ``*/0``.

    Raises:
        ValueError: If the header is missing or carries no total.
    """
    if not header or "/" not in header:
        raise ValueError(f"Missing total in Content-Range: {header!r}")
    total = header.rsplit("/", 1)[1]
    if total == "*":
        raise ValueError("Content-Range total was not requested")
    return int(total)


def parse_change_payload(payload: Any) -> ChangeEvent | None:
    """
    Convert a change-feed message into a ChangeEvent.

    Messages look like ``{"eventType": "INSERT", "new": {...}, "old": {...}}``.
    Deletes usually carry only ``old.id``. Unknown event types and messages
    that are not shaped like this return None.
    """
    if not isinstance(payload, dict):
        return None
    kind = _EVENT_KINDS.get(str(payload.get("eventType", "")).upper())
    if kind is None:
        return None
    if kind == ChangeKind.DELETE:
        old = payload.get("old")
        if not isinstance(old, dict) or old.get("id") is None:
            return None
        return ChangeEvent.deleted(str(old["id"]))
    new = payload.get("new")
    if not isinstance(new, dict):
        return None
    return ChangeEvent(kind=kind, record=Bookmark.model_validate(new))


async def iter_sse_data(lines: AsyncIterator[str]) -> AsyncIterator[str]:
    """Yield the joined ``data:`` payload of each server-sent event."""
    data: list[str] = []
    async for line in lines:
        if not line:
            if data:
                yield "\n".join(data)
                data = []
            continue
        if line.startswith(":"):
            # comment / keep-alive
            continue
        field, _, value = line.partition(":")
        if field == "data":
            data.append(value.removeprefix(" "))
    if data:
        yield "\n".join(data)


class SSESubscription:
    """Change stream read from a server-sent events response."""

    def __init__(self, client: httpx.AsyncClient, owner_id: str, headers: dict[str, str]) -> None:
        self.owner_id = owner_id
        self._client = client
        self._headers = headers
        self._events: AsyncIterator[ChangeEvent] | None = None
        self.closed = False

    def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        if self._events is None:
            self._events = self._stream()
        return self._events

    async def _stream(self) -> AsyncIterator[ChangeEvent]:
        try:
            async with self._client.stream(
                "GET",
                CHANGES_PATH,
                params={"user_id": f"eq.{self.owner_id}"},
                headers={**self._headers, "Accept": "text/event-stream"},
                timeout=httpx.Timeout(self._client.timeout.connect, read=None),
            ) as response:
                response.raise_for_status()
                async for data in iter_sse_data(response.aiter_lines()):
                    if self.closed:
                        return
                    try:
                        event = parse_change_payload(json.loads(data))
                    except (json.JSONDecodeError, ValidationError) as e:
                        logger.warning("Skipping malformed change event: %s", e)
                        continue
                    if event is not None:
                        yield event
        except httpx.HTTPError as e:
            raise BackendError("subscribe", str(e)) from e

    async def close(self) -> None:
        """Stop reading the stream and close the response."""
        if self.closed:
            return
        self.closed = True
        if self._events is not None:
            await self._events.aclose()


class RestBackend:
    """
    Bookmark backend speaking the PostgREST table protocol over httpx.

    Paging uses the ``Range`` header, counts come from ``Content-Range`` with
    ``Prefer: count=exact``, and upserts use ``resolution=merge-duplicates``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
        }
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            http2=True,
        )

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "RestBackend":
        """Build a backend from BACKEND_URL / BACKEND_API_KEY / BACKEND_TIMEOUT."""
        settings = settings or get_settings()
        return cls(
            base_url=settings.backend_url,
            api_key=settings.backend_api_key,
            timeout=settings.backend_timeout,
        )

    async def _request(
        self,
        operation: str,
        method: str,
        *,
        params: dict[str, str] | None = None,
        json_body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(
                method,
                TABLE_PATH,
                params=params,
                json=json_body,
                headers={**self._headers, **(headers or {})},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise BackendError(operation, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise BackendError(operation, str(e) or type(e).__name__) from e
        return response

    @staticmethod
    def _parse_rows(operation: str, response: httpx.Response) -> list[Bookmark]:
        try:
            return [Bookmark.model_validate(row) for row in response.json()]
        except (ValueError, TypeError) as e:
            # ValidationError and JSONDecodeError are both ValueErrors
            raise BackendError(operation, f"unexpected response body: {e}") from e

    async def select(self, owner_id: str, start: int, stop: int) -> list[Bookmark]:
        """Fetch one ordered page of an owner's bookmarks."""
        if stop <= start:
            return []
        response = await self._request(
            "select",
            "GET",
            params={
                "select": "*",
                "user_id": f"eq.{owner_id}",
                "order": LIST_ORDER,
            },
            headers={"Range-Unit": "items", "Range": f"{start}-{stop - 1}"},
        )
        return self._parse_rows("select", response)

    async def count(self, owner_id: str) -> int:
        """Count an owner's bookmarks via Content-Range."""
        response = await self._request(
            "count",
            "HEAD",
            params={"select": "id", "user_id": f"eq.{owner_id}"},
            headers={"Prefer": "count=exact"},
        )
        try:
            return parse_content_range_total(response.headers.get("content-range"))
        except ValueError as e:
            raise BackendError("count", str(e)) from e

    async def insert(self, records: Sequence[dict]) -> list[Bookmark]:
        """Insert rows and return them as stored."""
        response = await self._request(
            "insert",
            "POST",
            json_body=list(records),
            headers={"Prefer": "return=representation"},
        )
        return self._parse_rows("insert", response)

    async def delete(self, owner_id: str, record_id: str) -> None:
        """Delete one bookmark by id."""
        await self._request(
            "delete",
            "DELETE",
            params={"id": f"eq.{record_id}", "user_id": f"eq.{owner_id}"},
        )

    async def upsert(self, records: Sequence[Bookmark]) -> None:
        """Insert or update whole records keyed by id."""
        if not records:
            return
        await self._request(
            "upsert",
            "POST",
            json_body=[record.to_row() for record in records],
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

    def subscribe(self, owner_id: str) -> SSESubscription:
        """Open the owner-filtered change feed."""
        return SSESubscription(self._client, owner_id, self._headers)

    async def close(self) -> None:
        """Close the HTTP client if this backend created it."""
        if self._owns_client:
            await self._client.aclose()
