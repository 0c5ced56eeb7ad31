"""Pydantic schemas for bookmark records and change events."""
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from schemas.validators import normalize_title, parse_http_url


class Bookmark(BaseModel):
    """
    A saved URL with display metadata and a sort position.

    Immutable: the list store swaps whole records instead of editing them,
    which lets a snapshot be a plain tuple of references.

    The wire format uses the column names of the remote table (``og_image``,
    ``og_description``); attribute names describe what the fields hold.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    user_id: str | None = None
    title: str
    url: str
    favicon_url: str | None = None
    preview_image_url: str | None = Field(default=None, alias="og_image")
    preview_description: str | None = Field(default=None, alias="og_description")
    created_at: datetime
    position: int | None = None

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def coerce_identifier(cls, v: Any) -> Any:
        """Accept integer identifiers from backends that use serial keys."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("created_at")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        """Treat naive timestamps as UTC so ordering never compares naive to aware."""
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    def with_position(self, position: int | None) -> "Bookmark":
        """Return a copy with a new sort position (self if unchanged)."""
        if position == self.position:
            return self
        return self.model_copy(update={"position": position})

    def to_row(self) -> dict[str, Any]:
        """Serialize using the remote table's column names."""
        return self.model_dump(mode="json", by_alias=True)


def sort_key(bookmark: Bookmark) -> tuple[bool, int, float]:
    """
    Total order for bookmark lists.

    Position ascending with missing positions last, then newest first.
    """
    return (
        bookmark.position is None,
        bookmark.position if bookmark.position is not None else 0,
        -bookmark.created_at.timestamp(),
    )


class BookmarkCreate(BaseModel):
    """Schema for creating a new bookmark."""

    url: str
    title: str
    favicon_url: str | None = None
    preview_image_url: str | None = Field(default=None, alias="og_image")
    preview_description: str | None = Field(default=None, alias="og_description")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("url")
    @classmethod
    def check_url(cls, v: str) -> str:
        """Require an absolute http(s) URL."""
        parse_http_url(v)
        return v.strip()

    @field_validator("title")
    @classmethod
    def check_title(cls, v: str) -> str:
        """Require a non-blank title."""
        title = normalize_title(v)
        if title is None:
            raise ValueError("Title is required")
        return title

    def to_row(self, user_id: str) -> dict[str, Any]:
        """Serialize for a remote insert, stamped with the owner."""
        return {"user_id": user_id, **self.model_dump(mode="json", by_alias=True)}


class ChangeKind(StrEnum):
    """Kinds of change notifications delivered by the live update stream."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class ChangeEvent(BaseModel):
    """
    A single change notification.

    ``record`` is present for inserts and updates. ``record_id`` is always set;
    delete notifications often carry nothing else.
    """

    model_config = ConfigDict(frozen=True)

    kind: ChangeKind
    record_id: str
    record: Bookmark | None = None

    @model_validator(mode="before")
    @classmethod
    def fill_record_id(cls, data: Any) -> Any:
        """Derive record_id from the record when only the record was supplied."""
        if isinstance(data, dict) and data.get("record_id") is None:
            record = data.get("record")
            if isinstance(record, Bookmark):
                data = {**data, "record_id": record.id}
            elif isinstance(record, dict) and record.get("id") is not None:
                data = {**data, "record_id": str(record["id"])}
        return data

    @model_validator(mode="after")
    def check_record(self) -> "ChangeEvent":
        """Inserts and updates must carry the record they describe."""
        if self.kind != ChangeKind.DELETE and self.record is None:
            raise ValueError(f"{self.kind} events require a record")
        if self.record is not None and self.record.id != self.record_id:
            raise ValueError("record_id does not match record.id")
        return self

    @classmethod
    def inserted(cls, record: Bookmark) -> "ChangeEvent":
        """Build an insert event."""
        return cls(kind=ChangeKind.INSERT, record_id=record.id, record=record)

    @classmethod
    def updated(cls, record: Bookmark) -> "ChangeEvent":
        """Build an update event."""
        return cls(kind=ChangeKind.UPDATE, record_id=record.id, record=record)

    @classmethod
    def deleted(cls, record_id: str) -> "ChangeEvent":
        """Build a delete event."""
        return cls(kind=ChangeKind.DELETE, record_id=record_id)
