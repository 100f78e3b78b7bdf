"""
Refresh job: rebuilds the published article list from scratch.

Each run:
1. Reads the feed list from the registry
2. Fetches, parses and normalizes every feed (aggregator)
3. Scrapes images for articles left with a placeholder
4. Deduplicates, applies the recency window and sorts (post-processor)
5. Publishes the full list, preview slices, feed health and run metadata
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
import structlog

from newsfeed.config import Settings, get_settings
from newsfeed.models.database import Database
from newsfeed.models.domain import Article, CachedNews, FeedHealth
from newsfeed.services.cache import CacheStore, InMemoryCacheStore, SqlCacheStore
from newsfeed.services.ingestion import (
    AllSourcesFailed,
    FeedAggregator,
    FeedRegistry,
    PostProcessor,
    RetrievingFetcher,
    SqlFeedRegistry,
    StaticFeedRegistry,
)

logger = structlog.get_logger()


def health_payload(health: dict[str, FeedHealth]) -> dict:
    """Health map in the shape consumers read: {feed_id: {status, message}}."""
    return {feed_id: h.model_dump(mode="json") for feed_id, h in health.items()}


class NewsRefreshJob:
    """
    Runs the ingestion pipeline and publishes its output to the cache.

    A run either publishes a complete new article list or, when every feed
    failed, only the health map; the previously published list is kept.
    """

    def __init__(
        self,
        registry: FeedRegistry,
        cache: CacheStore,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.registry = registry
        self.cache = cache
        self.settings = settings or get_settings()
        self.client = client
        self.post_processor = PostProcessor(
            dedup_scope=self.settings.dedup_scope,
            window=timedelta(hours=self.settings.recency_window_hours),
        )

    async def run(self, now: Optional[datetime] = None) -> dict:
        """
        Execute one refresh.

        Returns:
            Run statistics

        Raises:
            AllSourcesFailed: No feed could be fetched and parsed
        """
        start_time = datetime.now(timezone.utc)
        feeds = await self.registry.list_feeds()
        logger.info("Starting news refresh", feeds=len(feeds))

        async with RetrievingFetcher(self.settings.fetch, self.client) as fetcher:
            aggregator = FeedAggregator.from_settings(self.settings, fetcher)
            try:
                report = await aggregator.run_with_report(feeds)
            except AllSourcesFailed as e:
                await self.cache.put(self.settings.cache_health_key, health_payload(e.health))
                logger.error("News refresh failed", error=str(e))
                raise

        articles = self.post_processor.process(report.articles, now=now)
        await self.publish(articles, report.health, now or start_time)

        elapsed = (datetime.now(timezone.utc) - start_time).total_seconds()
        stats = {
            "feeds_attempted": report.feeds_attempted,
            "feeds_succeeded": report.feeds_succeeded,
            "feeds_failed": len(report.errors),
            "articles_fetched": len(report.articles),
            "articles_published": len(articles),
            "elapsed_seconds": elapsed,
        }
        logger.info("News refresh completed", **stats)
        return stats

    async def publish(
        self,
        articles: list[Article],
        health: dict[str, FeedHealth],
        timestamp: datetime,
    ) -> None:
        """Write the article list, its slices, feed health and metadata."""
        payload = [article.to_cache() for article in articles]
        settings = self.settings

        await self.cache.put(settings.cache_key, payload)
        await self.cache.put(settings.cache_preview_key, payload[:settings.preview_count])
        await self.cache.put(settings.cache_medium_key, payload[:settings.medium_count])
        await self.cache.put(settings.cache_health_key, health_payload(health))
        await self.cache.put(
            settings.cache_meta_key,
            CachedNews(timestamp=timestamp, count=len(payload)).model_dump(mode="json"),
        )


async def build_job(settings: Optional[Settings] = None) -> tuple[NewsRefreshJob, Optional[Database]]:
    """Wire registry and cache adapters from settings. The database is None when unused."""
    settings = settings or get_settings()
    database = None
    if settings.feed_registry == "database" or settings.cache_backend == "database":
        database = Database(settings.database_url)
        await database.create_tables()

    if settings.feed_registry == "database":
        registry = SqlFeedRegistry(database)
        added = await registry.seed_defaults()
        if added:
            logger.info("Seeded feed registry", feeds=added)
    else:
        registry = StaticFeedRegistry()

    cache = SqlCacheStore(database) if settings.cache_backend == "database" else InMemoryCacheStore()
    return NewsRefreshJob(registry, cache, settings), database


async def run_refresh_job(settings: Optional[Settings] = None) -> dict:
    """Entry point for running the refresh job once."""
    job, database = await build_job(settings)
    try:
        return await job.run()
    finally:
        if database is not None:
            await database.dispose()


if __name__ == "__main__":
    # Run job directly for testing
    asyncio.run(run_refresh_job())
