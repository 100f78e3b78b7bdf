"""
Base classes and data models for feed ingestion.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from newsfeed.models.domain import Article, FeedConfig, FeedHealth, FeedStatus
from newsfeed.services.ingestion.errors import FetchAttemptError


class FeedDialect(str, Enum):
    """Syndication format of a feed document."""
    RSS = "rss"
    ATOM = "atom"


@dataclass(frozen=True)
class EnclosureHint:
    """An <enclosure> attached to an item."""
    url: str
    mime_type: Optional[str] = None


@dataclass
class RawItem:
    """
    One feed entry as extracted by the parser.

    This is the intermediate format between the feed document and the
    canonical Article. Items without title, link or a parseable timestamp
    are never produced.
    """
    # Required fields
    title: str
    link: str
    published_at_raw: str
    guid_or_id: str

    # Content
    description_html: str = ""
    content_html: str = ""

    # Image hints
    enclosure: Optional[EnclosureHint] = None
    thumbnail: Optional[str] = None  # media:content image or other string hint
    media_thumbnail_url: Optional[str] = None
    inline_image_url: Optional[str] = None  # First <img src> seen by the parser


@dataclass
class FetchAttempt:
    """One direct or proxied request made by the fetcher."""
    target: str
    via: str  # "direct" or proxy hostname
    error: Optional[FetchAttemptError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class FetchResult:
    """Outcome of fetching a URL through all attempts."""
    body: bytes = b""
    ok: bool = False
    error_detail: str = ""
    attempts: list[FetchAttempt] = field(default_factory=list)

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    @property
    def attempt_errors(self) -> list[str]:
        return [str(a.error) for a in self.attempts if a.error is not None]


@dataclass
class AggregationError:
    """Per-feed failure record, used for diagnostics on total failure."""
    feed_name: str
    attempt_errors: list[str] = field(default_factory=list)


@dataclass
class FeedOutcome:
    """Result slot of one feed's unit of work."""
    feed: FeedConfig
    articles: list[Article] = field(default_factory=list)
    error: Optional[AggregationError] = None
    parse_error: Optional[str] = None  # Set when the body was fetched but not parseable

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def health(self) -> FeedHealth:
        if self.parse_error is not None:
            return FeedHealth(
                status=FeedStatus.ERROR,
                message=f"Failed during parse. Error: {self.parse_error}",
            )
        if self.error is not None:
            return FeedHealth(
                status=FeedStatus.ERROR,
                message=f"All fetch attempts failed. Last error: "
                f"{self.error.attempt_errors[-1] if self.error.attempt_errors else 'unknown'}",
            )
        if not self.articles:
            return FeedHealth(
                status=FeedStatus.WARNING,
                message="Feed fetched successfully, but no articles were found.",
            )
        return FeedHealth(
            status=FeedStatus.SUCCESS,
            message=f"Successfully fetched and parsed {len(self.articles)} articles.",
        )


@dataclass
class RunReport:
    """Everything one aggregator run produced."""
    articles: list[Article] = field(default_factory=list)
    errors: list[AggregationError] = field(default_factory=list)
    health: dict[str, FeedHealth] = field(default_factory=dict)
    feeds_attempted: int = 0
    feeds_succeeded: int = 0
    duration_seconds: float = 0.0

    def __str__(self) -> str:
        return (
            f"feeds={self.feeds_succeeded}/{self.feeds_attempted}, "
            f"articles={len(self.articles)}, errors={len(self.errors)}, "
            f"time={self.duration_seconds:.1f}s"
        )


class FeedRegistry(ABC):
    """Read accessor for the configured feeds."""

    @abstractmethod
    async def list_feeds(self) -> list[FeedConfig]:
        """Return the ordered feed configurations for this run."""
        pass
