"""
Tests for the cache stores and feed registries.

SQL-backed adapters run against a throwaway SQLite file.
"""

import asyncio

import pytest

from newsfeed.models.database import Database, DBFeed
from newsfeed.models.domain import Language, PriorityTier
from newsfeed.services.cache import InMemoryCacheStore, SqlCacheStore
from newsfeed.services.ingestion.registry import (
    DEFAULT_FEEDS,
    SqlFeedRegistry,
    StaticFeedRegistry,
    feed_from_record,
)


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'newsfeed.db'}"


class TestInMemoryCacheStore:
    """Tests for the process-local cache."""

    def test_missing_key(self):
        assert asyncio.run(InMemoryCacheStore().get("news_cache")) is None

    def test_put_replaces(self):
        async def run():
            cache = InMemoryCacheStore()
            await cache.put("news_cache", [{"title": "a"}])
            await cache.put("news_cache", [{"title": "b"}])
            return await cache.get("news_cache"), cache.keys()

        value, keys = asyncio.run(run())
        assert value == [{"title": "b"}]
        assert keys == ["news_cache"]

    def test_values_are_copied(self):
        """Mutating a stored or returned value does not change the cache."""
        async def run():
            cache = InMemoryCacheStore()
            value = {"count": 1}
            await cache.put("meta", value)
            value["count"] = 2
            fetched = await cache.get("meta")
            fetched["count"] = 3
            return await cache.get("meta")

        assert asyncio.run(run()) == {"count": 1}


class TestSqlCacheStore:
    """Tests for the database-backed cache."""

    def test_round_trip_and_replace(self, database_url):
        async def run():
            database = Database(database_url)
            await database.create_tables()
            cache = SqlCacheStore(database)
            try:
                missing = await cache.get("news_cache")
                await cache.put("news_cache", [{"title": "a"}])
                await cache.put("news_cache", [{"title": "b"}, {"title": "c"}])
                await cache.put("feed_health_status", {"good": {"status": "success", "message": "ok"}})
                return missing, await cache.get("news_cache"), await cache.get("feed_health_status")
            finally:
                await database.dispose()

        missing, articles, health = asyncio.run(run())
        assert missing is None
        assert articles == [{"title": "b"}, {"title": "c"}]
        assert health["good"]["status"] == "success"


class TestFeedFromRecord:
    """Tests for registry record conversion."""

    def test_full_record(self):
        feed = feed_from_record({
            "id": "gematsu",
            "url": "https://www.gematsu.com/feed",
            "name": "Gematsu",
            "language": "en",
            "priority": "primary",
            "update_interval": 15,
            "needs_scraping": True,
        })
        assert feed.display_name == "Gematsu"
        assert feed.priority_tier == PriorityTier.PRIMARY
        assert feed.poll_interval_minutes == 15
        assert feed.requires_scrape_fallback

    def test_defaults(self):
        feed = feed_from_record({"id": "x", "url": "https://x.example/feed", "name": "X"})
        assert feed.language == Language.EN
        assert feed.priority_tier == PriorityTier.SECONDARY
        assert feed.poll_interval_minutes == 60
        assert not feed.requires_scrape_fallback

    def test_unknown_language_rejected(self):
        with pytest.raises(ValueError):
            feed_from_record({"id": "x", "url": "https://x.example", "name": "X", "language": "fr"})


class TestStaticFeedRegistry:
    """Tests for the built-in feed list."""

    def test_default_feeds(self):
        feeds = asyncio.run(StaticFeedRegistry().list_feeds())
        assert len(feeds) == len(DEFAULT_FEEDS)
        assert len({f.id for f in feeds}) == len(feeds)
        assert any(f.requires_scrape_fallback for f in feeds)

    def test_custom_records(self):
        registry = StaticFeedRegistry([{"id": "a", "url": "https://a.example/feed", "name": "A"}])
        feeds = asyncio.run(registry.list_feeds())
        assert [f.id for f in feeds] == ["a"]


class TestSqlFeedRegistry:
    """Tests for the database-backed registry."""

    def test_seed_once_and_list(self, database_url):
        async def run():
            database = Database(database_url)
            await database.create_tables()
            registry = SqlFeedRegistry(database)
            try:
                first = await registry.seed_defaults()
                second = await registry.seed_defaults()
                return first, second, await registry.list_feeds()
            finally:
                await database.dispose()

        first, second, feeds = asyncio.run(run())
        assert first == len(DEFAULT_FEEDS)
        assert second == 0
        assert [f.id for f in feeds] == sorted(r["id"] for r in DEFAULT_FEEDS)

    def test_invalid_rows_skipped(self, database_url):
        async def run():
            database = Database(database_url)
            await database.create_tables()
            try:
                async with database.async_session() as session:
                    session.add(DBFeed(id="b-good", url="https://b.example/feed", name="B", language="de"))
                    session.add(DBFeed(id="a-bad", url="https://a.example/feed", name="A", language="xx"))
                    await session.commit()
                return await SqlFeedRegistry(database).list_feeds()
            finally:
                await database.dispose()

        feeds = asyncio.run(run())
        assert [f.id for f in feeds] == ["b-good"]
        assert feeds[0].language == Language.DE
