"""
Services layer for the news pipeline.

1. Ingestion (ingestion/):
   - Fetching, parsing and normalizing publisher feeds
   - Image resolution and Open Graph scraping
   - Deduplication and recency ordering

2. Cache (cache.py):
   - Key/value store the refresh job publishes to
"""

from newsfeed.services.cache import CacheStore, InMemoryCacheStore, SqlCacheStore

__all__ = [
    "CacheStore",
    "InMemoryCacheStore",
    "SqlCacheStore",
]
