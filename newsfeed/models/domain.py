"""
Domain models for the news pipeline.
These are the core business entities, independent of database/cache representation.
"""
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# =============================================================================
# Enums
# =============================================================================

class Language(str, Enum):
    """Languages a feed can publish in."""
    DE = "de"
    EN = "en"


class PriorityTier(str, Enum):
    """Polling tier of a feed. Informational only."""
    PRIMARY = "primary"
    SECONDARY = "secondary"


class FeedStatus(str, Enum):
    """Outcome of the last run for one feed."""
    SUCCESS = "success"
    WARNING = "warning"  # Fetched, but no articles
    ERROR = "error"


# =============================================================================
# Feeds
# =============================================================================

class FeedConfig(BaseModel):
    """A configured publisher feed. Read-only for the duration of a run."""

    model_config = ConfigDict(frozen=True)

    id: str
    url: str
    display_name: str
    language: Language = Language.EN
    priority_tier: PriorityTier = PriorityTier.SECONDARY
    poll_interval_minutes: int = 60
    requires_scrape_fallback: bool = False  # Feed XML never carries usable images


class FeedHealth(BaseModel):
    """Health of one feed after a run."""
    status: FeedStatus
    message: str


# =============================================================================
# Articles
# =============================================================================

class Article(BaseModel):
    """
    Canonical article handed to the front end.

    Serialized with camelCase keys (publicationDate, imageUrl, ...) so the
    cached JSON matches what clients already consume.
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: str  # guid/id, falling back to the link
    title: str
    source: str  # Feed display name
    publication_date: datetime
    summary: str = ""
    link: str
    image_url: str
    needs_scraping: bool = False
    language: Language = Language.EN

    @field_validator("publication_date")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """Naive timestamps are taken as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    def to_cache(self) -> dict:
        """JSON-ready representation used for the cache."""
        return self.model_dump(mode="json", by_alias=True)


class CachedNews(BaseModel):
    """Metadata written next to the cached article list."""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    count: int = 0
