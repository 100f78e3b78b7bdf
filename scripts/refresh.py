#!/usr/bin/env python3
"""
CLI tool for the news pipeline.

Usage:
    # Run one refresh and print the result (nothing is published)
    python -m scripts.refresh run --verbose

    # Run one refresh, save the articles and publish them to the cache
    python -m scripts.refresh run --output news.json --publish

    # Fetch every feed and report per-feed health
    python -m scripts.refresh health

    # List configured feeds
    python -m scripts.refresh feeds

    # Run scheduler (continuous)
    python -m scripts.refresh serve --interval 15
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import timedelta

from newsfeed.config import get_settings
from newsfeed.jobs.refresh_news import build_job
from newsfeed.main import serve
from newsfeed.models.domain import FeedStatus
from newsfeed.services.ingestion import (
    AllSourcesFailed,
    FeedAggregator,
    PostProcessor,
    RetrievingFetcher,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

STATUS_LABELS = {
    FeedStatus.SUCCESS: "✓ OK",
    FeedStatus.WARNING: "! EMPTY",
    FeedStatus.ERROR: "✗ FAILED",
}


def load_settings(args):
    """Application settings with command line overrides applied."""
    settings = get_settings()
    updates = {}
    if getattr(args, "parser", None):
        updates["document_parser"] = args.parser
    if getattr(args, "dedup_scope", None):
        updates["dedup_scope"] = args.dedup_scope
    if getattr(args, "interval", None):
        updates["refresh_interval_minutes"] = args.interval
    if getattr(args, "no_scrape", False):
        updates["scrape"] = settings.scrape.model_copy(update={"enabled": False})
    return settings.model_copy(update=updates) if updates else settings


async def load_feeds(settings):
    """Feeds from the configured registry backend."""
    job, database = await build_job(settings)
    try:
        return await job.registry.list_feeds()
    finally:
        if database is not None:
            await database.dispose()


async def cmd_run(args):
    """Run the pipeline once."""
    settings = load_settings(args)

    if args.publish:
        job, database = await build_job(settings)
        try:
            stats = await job.run()
            articles = await job.cache.get(settings.cache_key) or []
        except AllSourcesFailed as e:
            print(f"Refresh failed: {e}")
            return 1
        finally:
            if database is not None:
                await database.dispose()
        print(f"Published {stats['articles_published']} articles")
    else:
        feeds = await load_feeds(settings)
        print(f"Fetching {len(feeds)} feeds...")
        async with RetrievingFetcher(settings.fetch) as fetcher:
            aggregator = FeedAggregator.from_settings(
                settings, fetcher, feed_timeout=settings.fetch.batch_timeout
            )
            try:
                report = await aggregator.run_with_report(feeds)
            except AllSourcesFailed as e:
                print(f"Refresh failed: {e}")
                return 1

        processed = PostProcessor(
            settings.dedup_scope,
            timedelta(hours=settings.recency_window_hours),
        ).process(report.articles)
        articles = [a.to_cache() for a in processed]

        print("\n" + "=" * 60)
        print("REFRESH RESULTS")
        print("=" * 60)
        print(report)
        for error in report.errors:
            print(f"  {error.feed_name}: {', '.join(error.attempt_errors)}")
        print("-" * 60)
        print(f"Total articles: {len(articles)}")

    if args.output:
        with open(args.output, "w") as f:
            json.dump(articles, f, indent=2, ensure_ascii=False)

        print(f"\nArticles saved to: {args.output}")

    if args.verbose:
        print("\n" + "=" * 60)
        print("SAMPLE ARTICLES")
        print("=" * 60)

        for article in articles[:10]:
            print(f"\n[{article['source']}] {article['title']}")
            print(f"  URL: {article['link']}")
            print(f"  Date: {article['publicationDate']}")
            print(f"  Image: {article['imageUrl']}")

    return 0


async def cmd_health(args):
    """Fetch all feeds and show per-feed health."""
    settings = load_settings(args)
    settings = settings.model_copy(
        update={"scrape": settings.scrape.model_copy(update={"enabled": False})}
    )
    feeds = await load_feeds(settings)

    print(f"Checking {len(feeds)} feeds...")
    async with RetrievingFetcher(settings.fetch) as fetcher:
        aggregator = FeedAggregator.from_settings(
            settings, fetcher, feed_timeout=settings.fetch.batch_timeout
        )
        try:
            health = (await aggregator.run_with_report(feeds)).health
        except AllSourcesFailed as e:
            health = e.health

    print("\n" + "=" * 60)
    print("FEED HEALTH")
    print("=" * 60)

    all_healthy = True
    for feed in feeds:
        status = health.get(feed.id)
        if status is None:
            continue
        print(f"  {feed.display_name}: {STATUS_LABELS[status.status]}")
        if status.status != FeedStatus.SUCCESS:
            print(f"    {status.message}")
        if status.status == FeedStatus.ERROR:
            all_healthy = False

    return 0 if all_healthy else 1


async def cmd_feeds(args):
    """List configured feeds."""
    settings = load_settings(args)
    feeds = await load_feeds(settings)

    print("\n" + "=" * 50)
    print("FEED CONFIGURATION")
    print("=" * 50)
    print(f"Total feeds: {len(feeds)}")
    print()

    for feed in feeds:
        print(f"  {feed.display_name} ({feed.id})")
        print(f"    URL: {feed.url}")
        print(f"    Language: {feed.language.value}, Priority: {feed.priority_tier.value}, "
              f"Interval: {feed.poll_interval_minutes} min")
        if feed.requires_scrape_fallback:
            print("    Images: scraped from article pages")
        print()

    return 0


async def cmd_serve(args):
    """Run continuous scheduler."""
    settings = load_settings(args)
    print(f"Starting scheduler (refresh every {settings.refresh_interval_minutes} minutes)")
    print("Press Ctrl+C to stop")
    await serve(settings)
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="GamerFeed News Pipeline CLI"
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Run command
    run_parser = subparsers.add_parser("run", help="Run one refresh")
    run_parser.add_argument(
        "--output", "-o",
        help="Output file for articles (JSON)"
    )
    run_parser.add_argument(
        "--publish", "-p",
        action="store_true",
        help="Publish to the configured cache and registry backends"
    )
    run_parser.add_argument(
        "--parser",
        choices=["dom", "regex"],
        help="Document parser realization (default: from settings)"
    )
    run_parser.add_argument(
        "--dedup-scope",
        choices=["source", "title"],
        help="Deduplicate per source or across sources"
    )
    run_parser.add_argument(
        "--no-scrape",
        action="store_true",
        help="Skip the Open Graph image scraping pass"
    )
    run_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show article previews"
    )

    # Health command
    health_parser = subparsers.add_parser("health", help="Check feed health")
    health_parser.add_argument(
        "--parser",
        choices=["dom", "regex"],
        help="Document parser realization (default: from settings)"
    )

    # Feeds command
    subparsers.add_parser("feeds", help="List configured feeds")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run continuous scheduler")
    serve_parser.add_argument(
        "--interval", "-i",
        type=int,
        help="Refresh interval in minutes (default: from settings)"
    )

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    # Run command
    if args.command == "run":
        return asyncio.run(cmd_run(args))
    elif args.command == "health":
        return asyncio.run(cmd_health(args))
    elif args.command == "feeds":
        return asyncio.run(cmd_feeds(args))
    elif args.command == "serve":
        return asyncio.run(cmd_serve(args))

    return 0


if __name__ == "__main__":
    sys.exit(main())
