"""Application configuration using pydantic-settings."""
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Remote persistence (PostgREST-style table API + change feed)
    backend_url: str = Field(
        default="http://localhost:54321/rest/v1", validation_alias="BACKEND_URL",
    )
    backend_api_key: str = Field(default="", validation_alias="BACKEND_API_KEY")
    backend_timeout: float = Field(default=10.0, validation_alias="BACKEND_TIMEOUT")

    # Bookmark list behaviour. page_size must match the server-rendered first page.
    page_size: int = Field(default=20, gt=0, validation_alias="PAGE_SIZE")
    search_debounce_seconds: float = Field(
        default=0.3, ge=0, validation_alias="SEARCH_DEBOUNCE_SECONDS",
    )

    # Metadata extraction
    metadata_timeout: float = Field(default=5.0, gt=0, validation_alias="METADATA_TIMEOUT")
    metadata_description_max_length: int = Field(
        default=200, gt=3, validation_alias="METADATA_DESCRIPTION_MAX_LENGTH",
    )
    metadata_block_private_addresses: bool = Field(
        default=True, validation_alias="METADATA_BLOCK_PRIVATE_ADDRESSES",
    )
    favicon_service_url: str = Field(
        default="https://www.google.com/s2/favicons?domain={hostname}&sz=64",
        validation_alias="FAVICON_SERVICE_URL",
    )

    # CORS - comma-separated list of allowed origins (stored as string, parsed via property)
    cors_origins_str: str = Field(
        default="http://localhost:3000",
        validation_alias="CORS_ORIGINS",
    )

    @field_validator("favicon_service_url")
    @classmethod
    def check_favicon_placeholder(cls, v: str) -> str:
        """Require the {hostname} placeholder so the fallback stays keyed by host."""
        if "{hostname}" not in v:
            raise ValueError("FAVICON_SERVICE_URL must contain a '{hostname}' placeholder")
        return v

    @property
    def cors_origins(self) -> list[str]:
        """Parse comma-separated CORS origins string into a list."""
        if not self.cors_origins_str:
            return []
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
