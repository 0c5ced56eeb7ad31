"""Pydantic schemas for URL metadata previews."""
from pydantic import BaseModel, ConfigDict, Field


class PageMetadata(BaseModel):
    """
    Metadata extracted from a web page for pre-filling a new bookmark.

    Serialized with the same field names the bookmark table uses.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str
    favicon_url: str | None = None
    preview_image_url: str | None = Field(default=None, alias="og_image")
    preview_description: str | None = Field(default=None, alias="og_description")


class MetadataRequest(BaseModel):
    """Request body for the metadata preview endpoint."""

    url: str | None = None
