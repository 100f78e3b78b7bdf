"""
Key/value cache the refresh job publishes its output to.

Values are JSON-compatible (lists and dicts of primitives). The pipeline
treats the store as opaque get/put; consumers read the same keys.
"""

import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from newsfeed.models.database import Database, DBCacheEntry

logger = logging.getLogger(__name__)


class CacheStore(ABC):
    """Opaque put/get store."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Stored value, or None when the key was never written."""
        pass

    @abstractmethod
    async def put(self, key: str, value: Any) -> None:
        """Store a value, replacing any previous one."""
        pass


class InMemoryCacheStore(CacheStore):
    """Process-local store, for tests and one-off runs."""

    def __init__(self):
        self._data: dict[str, Any] = {}

    async def get(self, key: str) -> Optional[Any]:
        return copy.deepcopy(self._data.get(key))

    async def put(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def keys(self) -> list[str]:
        return list(self._data)


class SqlCacheStore(CacheStore):
    """Store backed by the `cache_entries` table."""

    def __init__(self, database: Database):
        self.database = database

    async def get(self, key: str) -> Optional[Any]:
        async with self.database.async_session() as session:
            entry = await session.get(DBCacheEntry, key)
            return entry.value if entry is not None else None

    async def put(self, key: str, value: Any) -> None:
        async with self.database.async_session() as session:
            entry = await session.get(DBCacheEntry, key)
            if entry is None:
                session.add(DBCacheEntry(key=key, value=value))
            else:
                entry.value = value
            await session.commit()
        logger.debug(f"Cache entry {key} written")
