"""Shared exceptions for service layer operations."""


class InvalidUrlError(ValueError):
    """
    Raised when a URL is rejected before any network call is made.

    Covers empty input, non-http(s) schemes, and URLs without a hostname.
    """

    def __init__(self, url: str, reason: str = "Invalid URL") -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"{reason}: {url!r}")


class SSRFBlockedError(Exception):
    """Raised when a URL targets a private/internal network address."""

    pass
