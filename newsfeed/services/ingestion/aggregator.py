"""
Feed Aggregator - Orchestrates one ingestion run across all feeds.

Each feed is an independent unit of work (fetch, parse, resolve images)
run concurrently under a semaphore. Every unit fills its own FeedOutcome
slot; slots are merged sequentially once all units have settled, so no
shared collection is mutated concurrently.
"""

import asyncio
import logging
import time
from typing import Optional

from newsfeed.config import Settings
from newsfeed.models.domain import Article, FeedConfig
from newsfeed.services.ingestion.base import (
    AggregationError,
    FeedOutcome,
    RawItem,
    RunReport,
)
from newsfeed.services.ingestion.documents import DocumentParser, create_document_parser
from newsfeed.services.ingestion.errors import AllSourcesFailed, FetchAttemptError, ParseError
from newsfeed.services.ingestion.fetcher import RetrievingFetcher
from newsfeed.services.ingestion.images import ImageResolver
from newsfeed.services.ingestion.parser import FeedParser
from newsfeed.services.ingestion.scraper import Scraper
from newsfeed.services.ingestion.text import (
    DEFAULT_SUMMARY_LENGTH,
    parse_timestamp,
    strip_html_and_truncate,
)

logger = logging.getLogger(__name__)


class FeedAggregator:
    """
    Fetches, parses and normalizes all feeds of a run.

    Features:
    - Bounded concurrent fan-out, one unit of work per feed
    - Per-feed and per-item failure containment
    - Open Graph scraping pass over articles left with a placeholder
    - Loud failure only when every feed failed
    """

    def __init__(
        self,
        fetcher: RetrievingFetcher,
        parser: Optional[FeedParser] = None,
        resolver: Optional[ImageResolver] = None,
        scraper: Optional[Scraper] = None,
        documents: Optional[DocumentParser] = None,
        max_concurrent_feeds: int = 16,
        summary_length: int = DEFAULT_SUMMARY_LENGTH,
        feed_timeout: Optional[float] = None,
    ):
        """
        Initialize the aggregator.

        Args:
            fetcher: Retrieving fetcher shared by feed fetches and scraping
            parser: Feed parser (built on `documents` if omitted)
            resolver: Image resolver (built on `documents` if omitted)
            scraper: Scraper for the image pass; None disables the pass
            documents: Document parser injected into the default components
            max_concurrent_feeds: Upper bound on feeds processed at once
            summary_length: Summary length before the ellipsis
            feed_timeout: Per-attempt feed fetch timeout (fetcher default if omitted)
        """
        documents = documents or create_document_parser("dom")
        self.fetcher = fetcher
        self.documents = documents
        self.parser = parser or FeedParser(documents)
        self.resolver = resolver or ImageResolver(documents)
        self.scraper = scraper
        self.max_concurrent_feeds = max_concurrent_feeds
        self.summary_length = summary_length
        self.feed_timeout = feed_timeout

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        fetcher: RetrievingFetcher,
        feed_timeout: Optional[float] = None,
    ) -> "FeedAggregator":
        """Wire the pipeline components from application settings."""
        documents = create_document_parser(settings.document_parser)
        scraper = None
        if settings.scrape.enabled:
            scraper = Scraper(fetcher, documents, settings.scrape)
        return cls(
            fetcher=fetcher,
            scraper=scraper,
            documents=documents,
            max_concurrent_feeds=settings.fetch.max_concurrent_feeds,
            summary_length=settings.summary_length,
            feed_timeout=feed_timeout,
        )

    async def run(self, feeds: list[FeedConfig]) -> list[Article]:
        """
        Fetch all feeds and return the merged, image-resolved articles.

        Raises:
            AllSourcesFailed: Feeds were attempted and none succeeded
        """
        report = await self.run_with_report(feeds)
        return report.articles

    async def run_with_report(self, feeds: list[FeedConfig]) -> RunReport:
        """Like run(), but also return per-feed health and failure records."""
        start_time = time.monotonic()
        if not feeds:
            return RunReport()

        semaphore = asyncio.Semaphore(self.max_concurrent_feeds)
        results = await asyncio.gather(
            *(self._process_feed(feed, semaphore) for feed in feeds),
            return_exceptions=True,
        )

        report = RunReport(feeds_attempted=len(feeds))
        for feed, result in zip(feeds, results):
            if isinstance(result, Exception):
                logger.error(f"Unexpected failure processing {feed.display_name}: {result}")
                result = FeedOutcome(
                    feed=feed,
                    error=AggregationError(
                        feed_name=feed.display_name,
                        attempt_errors=[str(FetchAttemptError.unknown(str(result)))],
                    ),
                )

            report.health[feed.id] = result.health
            if result.success:
                report.feeds_succeeded += 1
                report.articles.extend(result.articles)
            else:
                report.errors.append(result.error)

        if report.feeds_succeeded == 0:
            raise AllSourcesFailed(report.errors, health=report.health)

        for error in report.errors:
            logger.warning(
                f"Feed {error.feed_name} failed: {', '.join(error.attempt_errors)}"
            )

        if self.scraper is not None:
            report.articles = await self.scraper.scrape_articles(report.articles)

        report.duration_seconds = time.monotonic() - start_time
        logger.info(f"Aggregation finished: {report}")
        return report

    async def _process_feed(self, feed: FeedConfig, semaphore: asyncio.Semaphore) -> FeedOutcome:
        """Fetch, parse and normalize one feed into its own outcome slot."""
        async with semaphore:
            result = await self.fetcher.fetch(feed.url, timeout=self.feed_timeout)

        if not result.ok:
            return FeedOutcome(
                feed=feed,
                error=AggregationError(feed_name=feed.display_name, attempt_errors=result.attempt_errors),
            )

        try:
            items = self.parser.parse(result.body)
        except ParseError as e:
            logger.warning(f"Could not parse {feed.display_name} ({feed.url}): {e}")
            return FeedOutcome(
                feed=feed,
                error=AggregationError(
                    feed_name=feed.display_name,
                    attempt_errors=result.attempt_errors + [f"parseError:{e}"],
                ),
                parse_error=str(e),
            )

        articles = []
        for item in items:
            try:
                articles.append(self.build_article(item, feed))
            except Exception as e:
                logger.warning(f"Skipping item {item.link} from {feed.display_name}: {e}")

        logger.debug(f"Fetched {len(articles)} articles from {feed.display_name}")
        return FeedOutcome(feed=feed, articles=articles)

    def build_article(self, item: RawItem, feed: FeedConfig) -> Article:
        """Normalize a RawItem into the canonical Article."""
        image = self.resolver.resolve(item, feed)
        return Article(
            id=item.guid_or_id or item.link,
            title=item.title.strip(),
            source=feed.display_name,
            publication_date=parse_timestamp(item.published_at_raw),
            summary=strip_html_and_truncate(
                item.description_html or item.content_html,
                self.summary_length,
                self.documents,
            ),
            link=item.link,
            image_url=image.image_url,
            needs_scraping=image.needs_scraping,
            language=feed.language,
        )
