"""Tests for application configuration."""
import pytest
from pydantic import ValidationError

from core.config import Settings, get_settings


class TestDefaults:
    """Defaults match the behaviour the list and extractor are built around."""

    def test_defaults(self) -> None:
        settings = Settings(_env_file=None)
        assert settings.page_size == 20
        assert settings.search_debounce_seconds == 0.3
        assert settings.metadata_timeout == 5.0
        assert settings.metadata_description_max_length == 200
        assert settings.metadata_block_private_addresses is True
        assert "{hostname}" in settings.favicon_service_url

    def test_env_aliases(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PAGE_SIZE", "50")
        monkeypatch.setenv("METADATA_TIMEOUT", "2.5")
        monkeypatch.setenv("BACKEND_URL", "https://db.example/rest/v1")
        settings = Settings(_env_file=None)
        assert settings.page_size == 50
        assert settings.metadata_timeout == 2.5
        assert settings.backend_url == "https://db.example/rest/v1"

    def test_page_size_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, PAGE_SIZE=0)

    def test_favicon_service_requires_placeholder(self) -> None:
        with pytest.raises(ValidationError, match="hostname"):
            Settings(_env_file=None, FAVICON_SERVICE_URL="https://icons.example/fixed.png")

    def test_get_settings_is_cached(self) -> None:
        assert get_settings() is get_settings()


class TestCorsOriginsParsing:
    """Tests for CORS origins parsing from environment variables."""

    def test_parse_multiple_origins_comma_separated(self) -> None:
        settings = Settings(
            _env_file=None,
            CORS_ORIGINS="  http://localhost:3000 , https://example.com,",
        )
        assert settings.cors_origins == ["http://localhost:3000", "https://example.com"]

    def test_parse_empty_string(self) -> None:
        settings = Settings(_env_file=None, CORS_ORIGINS="")
        assert settings.cors_origins == []
