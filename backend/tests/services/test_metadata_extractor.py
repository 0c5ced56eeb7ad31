"""
Tests for the metadata extractor.

Tests cover:
- extract_page_metadata: pure parsing with the title/description/image/favicon fallbacks
- fetch_page / extract_metadata: mocked HTTP (success, error status, failures, deadline)
- URL validation before any network call
- SSRF guard helpers
"""
import asyncio
from collections.abc import Generator
from unittest.mock import AsyncMock, patch

import httpx
import pytest
import respx

from services.exceptions import InvalidUrlError, SSRFBlockedError
from services.metadata_extractor import (
    USER_AGENT,
    extract_metadata,
    extract_page_metadata,
    fetch_page,
    is_private_ip,
    truncate_description,
    validate_url_not_private,
)

PAGE_URL = 'https://example.com/articles/42'
FALLBACK_ICON = 'https://www.google.com/s2/favicons?domain=example.com&sz=64'


@pytest.fixture
def allow_all_hosts() -> Generator[None]:
    """Skip DNS-based SSRF validation so tests need no network."""
    with patch('services.metadata_extractor.validate_url_not_private'):
        yield


def page(head: str) -> str:
    return f'<html><head>{head}</head><body><p>Body</p></body></html>'


class TestExtractPageMetadata:
    """Tests for the pure HTML extraction."""

    def test__title__og_title_preferred(self) -> None:
        html = page('<title>Tag title</title><meta property="og:title" content="OG title">')
        assert extract_page_metadata(html, PAGE_URL).title == 'OG title'

    def test__title__falls_back_to_title_tag(self) -> None:
        html = page('<title>\n  Tag   title \n</title>')
        assert extract_page_metadata(html, PAGE_URL).title == 'Tag title'

    def test__title__falls_back_to_hostname(self) -> None:
        assert extract_page_metadata(page(''), PAGE_URL).title == 'example.com'

    def test__title__entities_decoded(self) -> None:
        html = page('<meta property="og:title" content="Tom &amp; Jerry&#39;s &quot;Show&quot;">')
        assert extract_page_metadata(html, PAGE_URL).title == 'Tom & Jerry\'s "Show"'

    def test__meta__attribute_order_does_not_matter(self) -> None:
        html = page(
            '<meta content="Reversed title" property="og:title">'
            '<meta content="Reversed description" name="description">',
        )
        metadata = extract_page_metadata(html, PAGE_URL)
        assert metadata.title == 'Reversed title'
        assert metadata.preview_description == 'Reversed description'

    def test__meta__property_match_is_case_insensitive(self) -> None:
        html = page('<META PROPERTY="OG:TITLE" CONTENT="Shouty">')
        assert extract_page_metadata(html, PAGE_URL).title == 'Shouty'

    def test__meta__empty_content_ignored(self) -> None:
        html = page('<meta property="og:title" content="  "><title>Real</title>')
        assert extract_page_metadata(html, PAGE_URL).title == 'Real'

    def test__description__og_preferred(self) -> None:
        html = page(
            '<meta name="description" content="Plain">'
            '<meta property="og:description" content="Open Graph">',
        )
        assert extract_page_metadata(html, PAGE_URL).preview_description == 'Open Graph'

    def test__description__meta_name_fallback(self) -> None:
        html = page('<meta name="description" content="Plain">')
        assert extract_page_metadata(html, PAGE_URL).preview_description == 'Plain'

    def test__description__missing(self) -> None:
        assert extract_page_metadata(page(''), PAGE_URL).preview_description is None

    def test__description__truncated_to_200(self) -> None:
        html = page(f'<meta property="og:description" content="{"x" * 250}">')
        description = extract_page_metadata(html, PAGE_URL).preview_description
        assert len(description) == 200
        assert description == 'x' * 197 + '...'

    def test__image__og_image_absolute(self) -> None:
        html = page('<meta property="og:image" content="https://cdn.example.net/a.png">')
        assert extract_page_metadata(html, PAGE_URL).preview_image_url == (
            'https://cdn.example.net/a.png'
        )

    def test__image__relative_resolved_against_origin(self) -> None:
        html = page('<meta property="og:image" content="images/cover.png">')
        assert extract_page_metadata(html, PAGE_URL).preview_image_url == (
            'https://example.com/images/cover.png'
        )

    def test__image__twitter_fallback(self) -> None:
        html = page('<meta name="twitter:image" content="/tw.jpg">')
        assert extract_page_metadata(html, PAGE_URL).preview_image_url == (
            'https://example.com/tw.jpg'
        )

    def test__image__unparseable_reference_kept_as_written(self) -> None:
        html = page('<meta property="og:image" content="http://[broken/x.png">')
        metadata = extract_page_metadata(html, PAGE_URL)
        assert metadata.preview_image_url == 'http://[broken/x.png'
        assert metadata.title == 'example.com'

    def test__favicon__unparseable_href_uses_service(self) -> None:
        html = page('<link rel="icon" href="https://[bad">')
        assert extract_page_metadata(html, PAGE_URL).favicon_url == FALLBACK_ICON

    def test__image__missing(self) -> None:
        assert extract_page_metadata(page(''), PAGE_URL).preview_image_url is None

    def test__favicon__link_icon(self) -> None:
        html = page(
            '<link rel="apple-touch-icon" href="/apple.png">'
            '<link href="/favicon.ico" rel="icon">',
        )
        assert extract_page_metadata(html, PAGE_URL).favicon_url == (
            'https://example.com/favicon.ico'
        )

    def test__favicon__shortcut_icon(self) -> None:
        html = page('<link rel="shortcut icon" href="//static.example.com/fav.ico">')
        assert extract_page_metadata(html, PAGE_URL).favicon_url == (
            'https://static.example.com/fav.ico'
        )

    def test__favicon__apple_touch_icon_fallback(self) -> None:
        html = page('<link rel="apple-touch-icon" href="/apple.png">')
        assert extract_page_metadata(html, PAGE_URL).favicon_url == (
            'https://example.com/apple.png'
        )

    def test__favicon__service_fallback(self) -> None:
        assert extract_page_metadata(page(''), PAGE_URL).favicon_url == FALLBACK_ICON

    def test__non_html_body(self) -> None:
        metadata = extract_page_metadata('{"json": true}', PAGE_URL)
        assert metadata.title == 'example.com'
        assert metadata.favicon_url == FALLBACK_ICON


class TestTruncateDescription:
    """Tests for truncate_description."""

    def test__short_text_unchanged(self) -> None:
        assert truncate_description('x' * 200) == 'x' * 200

    def test__long_text_cut(self) -> None:
        assert truncate_description('abcdefghij', max_length=8) == 'abcde...'


class TestExtractMetadata:
    """Tests for the fetching entry point."""

    @pytest.mark.asyncio
    async def test__extract_metadata__success(self, allow_all_hosts) -> None:
        html = page(
            '<meta property="og:title" content="Hello">'
            '<meta property="og:description" content="World">'
            '<meta property="og:image" content="/hero.png">'
            '<link rel="icon" href="/icon.svg">',
        )
        with respx.mock:
            route = respx.get(PAGE_URL).mock(return_value=httpx.Response(200, text=html))
            metadata = await extract_metadata(PAGE_URL)

        assert route.called
        assert route.calls[0].request.headers['user-agent'] == USER_AGENT
        assert metadata.title == 'Hello'
        assert metadata.preview_description == 'World'
        assert metadata.preview_image_url == 'https://example.com/hero.png'
        assert metadata.favicon_url == 'https://example.com/icon.svg'

    @pytest.mark.asyncio
    async def test__extract_metadata__error_status_body_still_parsed(
        self, allow_all_hosts,
    ) -> None:
        html = page('<title>Page not found</title>')
        with respx.mock:
            respx.get(PAGE_URL).mock(return_value=httpx.Response(404, text=html))
            metadata = await extract_metadata(PAGE_URL)
        assert metadata.title == 'Page not found'

    @pytest.mark.asyncio
    @pytest.mark.parametrize('exc', [
        httpx.ConnectError('refused'),
        httpx.ReadTimeout('slow'),
        httpx.RemoteProtocolError('bad'),
    ])
    async def test__extract_metadata__fetch_failure_returns_fallback(
        self, allow_all_hosts, exc: Exception,
    ) -> None:
        with respx.mock:
            respx.get(PAGE_URL).mock(side_effect=exc)
            metadata = await extract_metadata(PAGE_URL)

        assert metadata.title == 'example.com'
        assert metadata.favicon_url == FALLBACK_ICON
        assert 'example.com' in metadata.favicon_url
        assert metadata.preview_image_url is None
        assert metadata.preview_description is None

    @pytest.mark.asyncio
    async def test__extract_metadata__hard_deadline(self, allow_all_hosts) -> None:
        """A response slower than the deadline is abandoned and the fallback returned."""

        async def never_responds(*_args, **_kwargs) -> None:
            await asyncio.sleep(10)

        with patch('services.metadata_extractor.httpx.AsyncClient') as mock_client_class:
            mock_client = AsyncMock()
            mock_client.get.side_effect = never_responds
            mock_client.__aenter__.return_value = mock_client
            mock_client.__aexit__.return_value = None
            mock_client_class.return_value = mock_client

            metadata = await extract_metadata(PAGE_URL, timeout=0.05)

            mock_client_class.assert_called_once_with(
                follow_redirects=True,
                timeout=0.05,
                headers={'User-Agent': USER_AGENT},
                http2=True,
            )
            mock_client.__aexit__.assert_awaited()

        assert metadata.title == 'example.com'

    @pytest.mark.asyncio
    @pytest.mark.parametrize('url', ['', '   ', 'not a url', 'ftp://example.com/file', 'https://'])
    async def test__extract_metadata__malformed_url_rejected_without_fetch(
        self, url: str,
    ) -> None:
        with patch('services.metadata_extractor.fetch_page') as mock_fetch:
            with pytest.raises(InvalidUrlError):
                await extract_metadata(url)
            mock_fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test__extract_metadata__private_host_not_fetched(self) -> None:
        with respx.mock(assert_all_called=False):
            route = respx.get('http://127.0.0.1:8080/admin').mock(
                return_value=httpx.Response(200, text=page('<title>Internal</title>')),
            )
            metadata = await extract_metadata('http://127.0.0.1:8080/admin')

        assert not route.called
        assert metadata.title == '127.0.0.1'

    @pytest.mark.asyncio
    async def test__fetch_page__redirect_to_private_blocked(self) -> None:
        """The final URL after redirects is validated too."""

        def only_private(url: str) -> None:
            if 'internal' in url:
                raise SSRFBlockedError(f'Blocked {url}')

        with patch(
            'services.metadata_extractor.validate_url_not_private', side_effect=only_private,
        ), respx.mock:
            respx.get(PAGE_URL).mock(return_value=httpx.Response(
                302, headers={'Location': 'http://internal.example/secret'},
            ))
            respx.get('http://internal.example/secret').mock(
                return_value=httpx.Response(200, text=page('<title>Secret</title>')),
            )
            result = await fetch_page(PAGE_URL)

        assert result.html is None
        assert 'Blocked' in result.error


class TestSSRFHelpers:
    """Tests for is_private_ip and validate_url_not_private."""

    @pytest.mark.parametrize(('ip', 'expected'), [
        ('127.0.0.1', True),
        ('10.0.0.5', True),
        ('192.168.1.1', True),
        ('169.254.169.254', True),
        ('::1', True),
        ('0.0.0.0', True),
        ('not-an-ip', True),
        ('93.184.216.34', False),
        ('2606:4700:4700::1111', False),
    ])
    def test__is_private_ip(self, ip: str, expected: bool) -> None:
        assert is_private_ip(ip) is expected

    def test__validate_url_not_private__localhost(self) -> None:
        with pytest.raises(SSRFBlockedError):
            validate_url_not_private('http://localhost:8080/api')

    def test__validate_url_not_private__loopback_ip(self) -> None:
        with pytest.raises(SSRFBlockedError):
            validate_url_not_private('http://127.0.0.1:3000/')

    def test__validate_url_not_private__resolved_private(self) -> None:
        fake = [(2, 1, 6, '', ('10.1.2.3', 0))]
        with patch('services.metadata_extractor.socket.getaddrinfo', return_value=fake):
            with pytest.raises(SSRFBlockedError):
                validate_url_not_private('https://intranet.example.com/')

    def test__validate_url_not_private__resolved_public(self) -> None:
        fake = [(2, 1, 6, '', ('93.184.216.34', 0))]
        with patch('services.metadata_extractor.socket.getaddrinfo', return_value=fake):
            validate_url_not_private('https://example.com/')
