"""
Application configuration using Pydantic Settings.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_PROXY_TEMPLATES = [
    "https://api.codetabs.com/v1/proxy?quest={url}",
    "https://corsproxy.io/?{url}",
    "https://api.allorigins.win/raw?url={url}",
]


class FetchSettings(BaseSettings):
    """Network settings for the retrieving fetcher."""

    model_config = SettingsConfigDict(env_prefix="FETCH_")

    # Ordered relay list; "{url}" is replaced by the percent-encoded target
    proxy_templates: list[str] = Field(default_factory=lambda: list(DEFAULT_PROXY_TEMPLATES))
    direct: bool = Field(
        default=True,
        description="Try a direct request before falling back to proxies",
    )
    user_agent: str = Field(default="GamerFeedBot/1.0 (+https://gamerfeed.dev/bot.html)")

    # Per-attempt timeouts (seconds)
    feed_timeout: float = Field(default=8.0, gt=0)
    page_timeout: float = Field(default=5.0, gt=0)
    batch_timeout: float = Field(default=10.0, gt=0)

    max_concurrent_feeds: int = Field(default=16, ge=1)

    @field_validator("proxy_templates")
    @classmethod
    def validate_templates(cls, v: list[str]) -> list[str]:
        for template in v:
            if "{url}" not in template:
                raise ValueError(f"Proxy template must contain '{{url}}': {template}")
        return v


class ScrapeSettings(BaseSettings):
    """Settings for the Open Graph image scraping pass."""

    model_config = SettingsConfigDict(env_prefix="SCRAPE_")

    enabled: bool = True
    batch_size: int = Field(default=10, ge=1)
    batch_delay_seconds: float = Field(default=0.2, ge=0.0)


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "GamerFeed News Pipeline"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = Field(default="INFO")
    json_logs: bool = Field(default=True)

    # Database (feed registry and cache adapters)
    database_url: str = Field(
        default="sqlite+aiosqlite:///./newsfeed.db",
        description="Async database URL (SQLAlchemy format)",
    )
    feed_registry: Literal["static", "database"] = "static"
    cache_backend: Literal["memory", "database"] = "database"

    # Scheduler
    refresh_interval_minutes: int = Field(
        default=15,
        description="Interval between full refresh runs",
    )

    # Parsing
    document_parser: Literal["dom", "regex"] = "dom"
    summary_length: int = Field(default=150, ge=10)

    # Post-processing
    dedup_scope: Literal["source", "title"] = "source"
    recency_window_hours: int = Field(default=168, ge=1)

    # Cache output
    cache_key: str = "news_cache"
    cache_preview_key: str = "news_cache_preview"
    cache_medium_key: str = "news_cache_medium"
    cache_health_key: str = "feed_health_status"
    cache_meta_key: str = "news_cache_meta"
    preview_count: int = Field(default=16, ge=1)
    medium_count: int = Field(default=64, ge=1)

    # Nested
    fetch: FetchSettings = Field(default_factory=FetchSettings)
    scrape: ScrapeSettings = Field(default_factory=ScrapeSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
