"""Metadata extraction service: fetch a page and derive bookmark preview fields."""
import asyncio
import ipaddress
import logging
import socket
from dataclasses import dataclass
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from core.config import get_settings
from schemas.metadata import PageMetadata
from schemas.validators import page_origin, parse_http_url
from services.exceptions import SSRFBlockedError

logger = logging.getLogger(__name__)

# Desktop browser UA; many sites serve bot user agents a challenge page with no metadata.
USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
)
DEFAULT_TIMEOUT = 5.0
DESCRIPTION_MAX_LENGTH = 200
ELLIPSIS = '...'


def is_private_ip(ip_str: str) -> bool:
    """
    Check if an IP address is private, loopback, or otherwise internal.

    Args:
        ip_str: IP address string (IPv4 or IPv6).

    Returns:
        True if the IP is private/internal, False if public.
    """
    try:
        ip = ipaddress.ip_address(ip_str)
        return (
            ip.is_private
            or ip.is_loopback
            or ip.is_link_local
            or ip.is_multicast
            or ip.is_reserved
            or ip.is_unspecified
        )
    except ValueError:
        # Unparseable addresses are treated as internal
        return True


def validate_url_not_private(url: str) -> None:
    """
    Validate that a URL does not target a private/internal network.

    Resolves the hostname to check the actual IP address, preventing
    DNS rebinding attacks where a hostname resolves to an internal IP.

    Args:
        url: The URL to validate.

    Raises:
        SSRFBlockedError: If the URL targets a private network.
        ValueError: If the URL is malformed or the hostname does not resolve.
    """
    hostname = parse_http_url(url).hostname

    if hostname.lower() in ('localhost', 'localhost.localdomain'):
        raise SSRFBlockedError(f"Blocked request to localhost: {url}")

    try:
        addrinfo = socket.getaddrinfo(hostname, None, socket.AF_UNSPEC, socket.SOCK_STREAM)
    except socket.gaierror as e:
        raise ValueError(f"Could not resolve hostname: {hostname}") from e
    for _, _, _, _, sockaddr in addrinfo:
        ip_str = sockaddr[0]
        if is_private_ip(ip_str):
            raise SSRFBlockedError(
                f"Blocked request to private/internal address: {url} resolves to {ip_str}",
            )


@dataclass
class FetchResult:
    """Result of fetching a page (raw body before extraction)."""

    html: str | None
    final_url: str
    status_code: int | None
    error: str | None


async def fetch_page(  # noqa: ASYNC109
    url: str,
    timeout: float = DEFAULT_TIMEOUT,
    block_private: bool = True,
) -> FetchResult:
    """
    Fetch a page body with a hard deadline.

    Best-effort fetch that returns error info on failure rather than raising.
    The deadline covers DNS validation, connect, redirects and the body read;
    when it expires the request is cancelled and the connection closed.

    A non-2xx response is not an error here: error pages often still carry a
    usable <title>, so the body is returned along with the status code.

    Args:
        url:
            The (already validated) URL to fetch.
        timeout:
            Total deadline in seconds.
        block_private:
            Refuse hosts that resolve to private/internal addresses.

    Returns:
        FetchResult containing the body text or error info.
    """
    try:
        async with asyncio.timeout(timeout):
            if block_private:
                await asyncio.to_thread(validate_url_not_private, url)
            async with httpx.AsyncClient(
                follow_redirects=True,
                timeout=timeout,
                headers={'User-Agent': USER_AGENT},
                http2=True,
            ) as client:
                response = await client.get(url)
                final_url = str(response.url)
                if block_private and final_url != url:
                    await asyncio.to_thread(validate_url_not_private, final_url)
                return FetchResult(
                    html=response.text,
                    final_url=final_url,
                    status_code=response.status_code,
                    error=None,
                )
    except (SSRFBlockedError, ValueError) as e:
        return FetchResult(html=None, final_url=url, status_code=None, error=str(e))
    except (TimeoutError, httpx.TimeoutException):
        return FetchResult(html=None, final_url=url, status_code=None, error="Request timed out")
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        return FetchResult(
            html=None, final_url=url, status_code=None, error=f"Request failed: {e}",
        )


def favicon_service_url(hostname: str) -> str:
    """Third-party favicon URL for a host, used when the page declares none."""
    return get_settings().favicon_service_url.format(hostname=hostname)


def fallback_metadata(hostname: str) -> PageMetadata:
    """Metadata used when the page could not be fetched at all."""
    return PageMetadata(
        title=hostname,
        favicon_url=favicon_service_url(hostname),
        preview_image_url=None,
        preview_description=None,
    )


def truncate_description(text: str, max_length: int = DESCRIPTION_MAX_LENGTH) -> str:
    """Cut text to max_length characters, ending in an ellipsis when shortened."""
    if len(text) <= max_length:
        return text
    return text[:max_length - len(ELLIPSIS)] + ELLIPSIS


def _clean(text: str | None) -> str | None:
    if text is None:
        return None
    cleaned = ' '.join(text.split())
    return cleaned or None


def find_meta_content(soup: BeautifulSoup, key: str) -> str | None:
    """
    Return the content of the first <meta> whose property or name equals key.

    Matches on ``property`` first (Open Graph), then on ``name`` (standard and
    Twitter tags). Attribute order in the markup does not matter.
    """
    key = key.lower()
    metas = soup.find_all('meta')
    for attr in ('property', 'name'):
        for meta in metas:
            value = meta.get(attr)
            if value and value.strip().lower() == key:
                content = _clean(meta.get('content'))
                if content:
                    return content
    return None


def find_link_href(soup: BeautifulSoup, rel: str) -> str | None:
    """Return the href of the first <link> whose rel tokens include rel."""
    for link in soup.find_all('link', href=True):
        tokens = link.get('rel') or []
        if isinstance(tokens, str):
            tokens = tokens.split()
        if rel in (token.lower() for token in tokens):
            href = link['href'].strip()
            if href:
                return href
    return None


def resolve_url(raw: str, origin: str) -> str | None:
    """
    Resolve a possibly relative URL against the page origin.

    Returns None when the reference cannot be parsed (e.g. a broken IPv6 host).
    """
    try:
        return urljoin(origin + '/', raw)
    except ValueError:
        logger.debug('Unresolvable URL reference %r on %s', raw, origin)
        return None


def extract_page_metadata(html: str, url: str) -> PageMetadata:
    """
    Extract preview metadata from page HTML.

    Pure function with no I/O. Uses BeautifulSoup for parsing.

    Title priority: og:title, <title>, hostname.
    Description priority: og:description, meta description, None.
    Image priority: og:image, twitter:image, None.
    Favicon priority: rel=icon, rel=apple-touch-icon, favicon service.

    Args:
        html:
            Raw HTML string to parse.
        url:
            The requested URL; relative image and icon references resolve
            against its origin.

    Returns:
        PageMetadata with every field resolved (title and favicon always set).
    """
    settings = get_settings()
    hostname = parse_http_url(url).hostname
    origin = page_origin(url)
    soup = BeautifulSoup(html, 'lxml')

    title = find_meta_content(soup, 'og:title')
    if not title:
        title_tag = soup.find('title')
        if title_tag:
            title = _clean(title_tag.get_text())

    description = (
        find_meta_content(soup, 'og:description')
        or find_meta_content(soup, 'description')
    )
    if description:
        description = truncate_description(
            description, settings.metadata_description_max_length,
        )

    image = find_meta_content(soup, 'og:image') or find_meta_content(soup, 'twitter:image')

    icon = find_link_href(soup, 'icon') or find_link_href(soup, 'apple-touch-icon')

    return PageMetadata(
        title=title or hostname,
        favicon_url=(icon and resolve_url(icon, origin)) or favicon_service_url(hostname),
        # A preview image that cannot be resolved is passed through as written
        preview_image_url=(image and resolve_url(image, origin)) or image,
        preview_description=description,
    )


async def extract_metadata(url: str, timeout: float | None = None) -> PageMetadata:  # noqa: ASYNC109
    """
    Fetch a URL and extract its preview metadata.

    This is the entry point used to pre-fill a new bookmark. It never fails
    because of the network: any fetch problem yields the hostname-based
    fallback.

    Args:
        url: The URL to describe.
        timeout: Total fetch deadline in seconds (defaults to METADATA_TIMEOUT).

    Returns:
        PageMetadata for the page.

    Raises:
        InvalidUrlError: If the URL is malformed; no request is made.
    """
    settings = get_settings()
    parsed = parse_http_url(url)
    url = url.strip()
    result = await fetch_page(
        url,
        timeout=settings.metadata_timeout if timeout is None else timeout,
        block_private=settings.metadata_block_private_addresses,
    )
    if result.error or result.html is None:
        logger.warning("Metadata fetch failed for %s: %s", url, result.error)
        return fallback_metadata(parsed.hostname)
    return extract_page_metadata(result.html, url)
