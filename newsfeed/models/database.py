"""
SQLAlchemy database models for the news pipeline.
Uses SQLAlchemy 2.0 async patterns.

Two tables back the external-collaborator adapters: the feed registry
and the key/value cache the refresh job publishes to.
"""
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text, func
from sqlalchemy.ext.asyncio import AsyncAttrs, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from newsfeed.models.domain import Language, PriorityTier


# =============================================================================
# Base
# =============================================================================

class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all database models."""
    pass


# =============================================================================
# Feeds
# =============================================================================

class DBFeed(Base):
    """Configured publisher feed, managed outside the pipeline."""
    __tablename__ = "feeds"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    language: Mapped[str] = mapped_column(String(5), default=Language.EN.value)
    priority: Mapped[str] = mapped_column(String(20), default=PriorityTier.SECONDARY.value)
    update_interval: Mapped[int] = mapped_column(Integer, default=60)  # Minutes
    needs_scraping: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())


# =============================================================================
# Cache
# =============================================================================

class DBCacheEntry(Base):
    """One published cache value (article list, slices, health map, metadata)."""
    __tablename__ = "cache_entries"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())


# =============================================================================
# Database Connection
# =============================================================================

class Database:
    """Database connection manager."""

    def __init__(self, database_url: str):
        self.engine = create_async_engine(
            database_url,
            echo=False,  # Set to True for SQL logging
            future=True,
        )
        self.async_session = async_sessionmaker(
            self.engine,
            expire_on_commit=False,
        )

    async def create_tables(self):
        """Create all tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self):
        """Close pooled connections."""
        await self.engine.dispose()
