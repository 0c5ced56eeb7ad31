"""URL metadata preview endpoint."""
import logging

from fastapi import APIRouter, HTTPException

from schemas.metadata import MetadataRequest, PageMetadata
from services import metadata_extractor
from services.exceptions import InvalidUrlError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["metadata"])


@router.post("/fetch-metadata", response_model=PageMetadata, response_model_by_alias=True)
async def fetch_metadata(data: MetadataRequest) -> PageMetadata:
    """
    Fetch a page and return its preview metadata for a new bookmark.

    Network failures are not errors: the response falls back to the hostname
    as title and a favicon-service icon.

    - **url**: absolute http(s) URL of the page
    """
    if data.url is None or not data.url.strip():
        raise HTTPException(status_code=400, detail="URL is required")
    try:
        return await metadata_extractor.extract_metadata(data.url)
    except InvalidUrlError as e:
        logger.info("Rejected metadata request: %s", e.reason)
        raise HTTPException(status_code=400, detail="Invalid URL") from e
