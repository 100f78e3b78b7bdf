"""
Post-processing: deduplication, recency window and ordering.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Literal, Optional

from newsfeed.models.domain import Article
from newsfeed.services.ingestion.images import is_placeholder
from newsfeed.services.ingestion.text import normalize_title

logger = logging.getLogger(__name__)

DedupScope = Literal["source", "title"]

DEFAULT_WINDOW = timedelta(hours=168)


class PostProcessor:
    """
    Turns the merged article list into the published one.

    Pure and total: never raises, never mutates the articles it keeps.
    """

    def __init__(self, dedup_scope: DedupScope = "source", window: timedelta = DEFAULT_WINDOW):
        if dedup_scope not in ("source", "title"):
            raise ValueError(f"Unknown dedup scope: {dedup_scope}")
        self.dedup_scope = dedup_scope
        self.window = window

    def dedup_key(self, article: Article) -> str:
        """Normalized title, prefixed with the source when deduplicating per source."""
        key = normalize_title(article.title)
        if self.dedup_scope == "source":
            return f"{article.source}:{key}"
        return key

    def deduplicate(self, articles: list[Article]) -> list[Article]:
        """
        Collapse articles sharing a dedup key.

        The first article seen wins, unless it only has a placeholder image
        and a later duplicate has a real one. Kept articles stay in the
        position of the first occurrence.
        """
        kept: dict[str, Article] = {}
        for article in articles:
            key = self.dedup_key(article)
            existing = kept.get(key)
            if existing is None:
                kept[key] = article
            elif is_placeholder(existing.image_url) and not is_placeholder(article.image_url):
                kept[key] = article
        return list(kept.values())

    def process(self, articles: list[Article], now: Optional[datetime] = None) -> list[Article]:
        """
        Deduplicate, drop articles older than the window, sort newest first.

        Args:
            articles: Merged articles of one run
            now: Reference time for the window (current UTC time by default)

        Returns:
            New list, sorted by publication date descending (stable for ties)
        """
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        cutoff = now - self.window

        unique = self.deduplicate(articles)
        recent = [a for a in unique if a.publication_date >= cutoff]
        recent.sort(key=lambda a: a.publication_date, reverse=True)

        logger.info(
            f"Post-processed {len(articles)} articles: "
            f"{len(unique)} after deduplication, {len(recent)} within window"
        )
        return recent
