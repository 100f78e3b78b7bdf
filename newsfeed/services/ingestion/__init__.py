"""
Feed ingestion pipeline.

This module turns a list of publisher feeds into the published article list:
- Retrieving fetcher with direct and relay attempts
- RSS/Atom parsing over a pluggable document parser (DOM or regex)
- Image resolution with publisher-specific rewrites
- Open Graph scraping for articles without images
- Aggregation, deduplication and recency ordering
"""

from newsfeed.services.ingestion.base import (
    AggregationError,
    FeedDialect,
    FeedOutcome,
    FeedRegistry,
    FetchResult,
    RawItem,
    RunReport,
)
from newsfeed.services.ingestion.errors import (
    AllSourcesFailed,
    FetchAttemptError,
    IngestionError,
    ParseError,
)
from newsfeed.services.ingestion.documents import (
    DocumentParser,
    DomDocumentParser,
    RegexDocumentParser,
    create_document_parser,
)
from newsfeed.services.ingestion.fetcher import RetrievingFetcher
from newsfeed.services.ingestion.parser import FeedParser
from newsfeed.services.ingestion.images import ImageResolution, ImageResolver, is_placeholder
from newsfeed.services.ingestion.scraper import Scraper
from newsfeed.services.ingestion.aggregator import FeedAggregator
from newsfeed.services.ingestion.postprocess import PostProcessor
from newsfeed.services.ingestion.registry import SqlFeedRegistry, StaticFeedRegistry
from newsfeed.services.ingestion.text import strip_html_and_truncate

__all__ = [
    # Data
    "AggregationError",
    "FeedDialect",
    "FeedOutcome",
    "FetchResult",
    "RawItem",
    "RunReport",
    # Errors
    "AllSourcesFailed",
    "FetchAttemptError",
    "IngestionError",
    "ParseError",
    # Document parsing
    "DocumentParser",
    "DomDocumentParser",
    "RegexDocumentParser",
    "create_document_parser",
    # Pipeline
    "RetrievingFetcher",
    "FeedParser",
    "ImageResolution",
    "ImageResolver",
    "is_placeholder",
    "Scraper",
    "FeedAggregator",
    "PostProcessor",
    "strip_html_and_truncate",
    # Registry
    "FeedRegistry",
    "SqlFeedRegistry",
    "StaticFeedRegistry",
]
