"""
Shared validation functions for Pydantic schemas.

URL validation lives here so the extractor, the add-bookmark draft and the API
reject malformed input the same way.
"""
from urllib.parse import SplitResult, urlsplit

from services.exceptions import InvalidUrlError

ALLOWED_SCHEMES = ("http", "https")


def parse_http_url(url: str | None) -> SplitResult:
    """
    Parse and validate an absolute http(s) URL.

    Args:
        url: The raw URL string.

    Returns:
        The split URL (scheme, netloc, path, query, fragment).

    Raises:
        InvalidUrlError: If the URL is empty, not http(s), or has no hostname.
    """
    if url is None or not url.strip():
        raise InvalidUrlError(url or "", "URL is required")
    candidate = url.strip()
    try:
        parsed = urlsplit(candidate)
        # .port raises ValueError on a non-numeric or out-of-range port
        _ = parsed.port
    except ValueError as e:
        raise InvalidUrlError(candidate) from e
    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        raise InvalidUrlError(candidate, "URL must start with http:// or https://")
    if not parsed.hostname:
        raise InvalidUrlError(candidate, "Invalid URL (no hostname)")
    return parsed


def is_http_url(url: str | None) -> bool:
    """Return True if the URL would pass parse_http_url."""
    try:
        parse_http_url(url)
    except InvalidUrlError:
        return False
    return True


def page_origin(url: str) -> str:
    """Return scheme://host[:port] of an already validated URL."""
    parsed = urlsplit(url)
    # Drop any user:password@ prefix
    host = parsed.netloc.rpartition("@")[2]
    return f"{parsed.scheme.lower()}://{host.lower()}"


def normalize_title(value: str | None) -> str | None:
    """Trim surrounding whitespace; blank titles become None."""
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None
