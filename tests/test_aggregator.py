"""
Tests for the feed aggregator, end to end over httpx.MockTransport.
"""

import asyncio
from datetime import datetime, timezone

import httpx
import pytest

from newsfeed.config import FetchSettings, ScrapeSettings, Settings
from newsfeed.models.domain import FeedConfig, FeedStatus, Language
from newsfeed.services.ingestion.aggregator import FeedAggregator
from newsfeed.services.ingestion.base import RawItem
from newsfeed.services.ingestion.documents import RegexDocumentParser
from newsfeed.services.ingestion.errors import AllSourcesFailed
from newsfeed.services.ingestion.fetcher import RetrievingFetcher
from newsfeed.services.ingestion.images import placeholder_url
from newsfeed.services.ingestion.postprocess import PostProcessor
from newsfeed.services.ingestion.scraper import Scraper


GOOD_FEED_XML = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/">
  <channel>
    <title>GoodSite</title>
    <item>
      <title>Oldest story</title>
      <link>https://good.example/news/1</link>
      <pubDate>Mon, 15 Jan 2024 09:00:00 GMT</pubDate>
      <description><![CDATA[<p>First <b>story</b></p>]]></description>
      <media:thumbnail url="https://cdn.good.example/1.jpg"/>
    </item>
    <item>
      <title>Newest story</title>
      <link>https://good.example/news/3</link>
      <pubDate>Wed, 17 Jan 2024 09:00:00 GMT</pubDate>
      <description>Third story</description>
    </item>
    <item>
      <title>Middle story</title>
      <link>https://good.example/news/2</link>
      <pubDate>Tue, 16 Jan 2024 09:00:00 GMT</pubDate>
      <description><![CDATA[<img src="/img/2.jpg"><p>Second story</p>]]></description>
    </item>
  </channel>
</rss>
"""

GOOD = FeedConfig(
    id="good",
    url="https://good.example/feed",
    display_name="GoodSite",
    language=Language.DE,
)
DOWN = FeedConfig(id="down", url="https://down.example/feed", display_name="DownSite")
HTML_PAGE = FeedConfig(id="html", url="https://html.example/feed", display_name="HtmlSite")
EMPTY = FeedConfig(id="empty", url="https://empty.example/feed", display_name="EmptySite")

NOW = datetime(2024, 1, 18, 12, 0, tzinfo=timezone.utc)


def handler(request: httpx.Request) -> httpx.Response:
    host = request.url.host
    if host == "good.example" and request.url.path == "/feed":
        return httpx.Response(200, text=GOOD_FEED_XML)
    if host == "down.example":
        raise httpx.ConnectTimeout("timed out", request=request)
    if host == "html.example":
        return httpx.Response(200, text="<html><body>Maintenance</body></html>")
    if host == "empty.example":
        return httpx.Response(200, text='<rss version="2.0"><channel><title>x</title></channel></rss>')
    return httpx.Response(404)


def make_fetcher(transport_handler=handler) -> RetrievingFetcher:
    return RetrievingFetcher(
        FetchSettings(proxy_templates=[]),
        client=httpx.AsyncClient(transport=httpx.MockTransport(transport_handler)),
    )


def make_aggregator(with_scraper=False, **kwargs) -> FeedAggregator:
    fetcher = make_fetcher()
    scraper = None
    if with_scraper:
        scraper = Scraper(fetcher, settings=ScrapeSettings(batch_delay_seconds=0))
    return FeedAggregator(fetcher, scraper=scraper, **kwargs)


class TestEndToEnd:
    """A good feed and an unreachable one, through to post-processing."""

    def test_partial_failure(self):
        """The good feed's articles survive the other feed's timeout."""
        aggregator = make_aggregator(with_scraper=True)

        report = asyncio.run(aggregator.run_with_report([GOOD, DOWN]))
        articles = PostProcessor().process(report.articles, now=NOW)

        assert [a.title for a in articles] == ["Newest story", "Middle story", "Oldest story"]
        assert report.feeds_attempted == 2
        assert report.feeds_succeeded == 1
        assert [e.feed_name for e in report.errors] == ["DownSite"]
        assert report.errors[0].attempt_errors == ["timeout"]

    def test_article_fields(self):
        aggregator = make_aggregator(with_scraper=True)

        articles = asyncio.run(aggregator.run([GOOD, DOWN]))
        by_title = {a.title: a for a in articles}

        oldest = by_title["Oldest story"]
        assert oldest.id == "https://good.example/news/1"
        assert oldest.source == "GoodSite"
        assert oldest.language == Language.DE
        assert oldest.summary == "First story"
        assert oldest.publication_date == datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc)
        assert oldest.image_url == "https://cdn.good.example/1.jpg"

        assert by_title["Middle story"].image_url == "https://good.example/img/2.jpg"
        assert by_title["Middle story"].summary == "Second story"

        # Article page is a 404, so the placeholder stays
        newest = by_title["Newest story"]
        assert newest.image_url == placeholder_url("GoodSite")
        assert not newest.needs_scraping

    def test_health(self):
        report = asyncio.run(make_aggregator().run_with_report([GOOD, DOWN, EMPTY]))

        assert report.health["good"].status == FeedStatus.SUCCESS
        assert report.health["good"].message == "Successfully fetched and parsed 3 articles."
        assert report.health["down"].status == FeedStatus.ERROR
        assert report.health["down"].message == "All fetch attempts failed. Last error: timeout"
        assert report.health["empty"].status == FeedStatus.WARNING

    def test_parse_failure_health(self):
        """An HTML page served in place of the feed is a parse failure."""
        report = asyncio.run(make_aggregator().run_with_report([GOOD, HTML_PAGE]))

        health = report.health["html"]
        assert health.status == FeedStatus.ERROR
        assert health.message.startswith("Failed during parse. Error: ")
        assert report.errors[0].attempt_errors[-1].startswith("parseError:")

    def test_regex_parser_same_articles(self):
        """Both document parsers produce the same run."""
        dom = asyncio.run(make_aggregator().run([GOOD]))
        regex = asyncio.run(make_aggregator(documents=RegexDocumentParser()).run([GOOD]))
        assert dom == regex

    def test_feed_order_preserved(self):
        """Articles are merged in feed order, then item order."""
        other = FeedConfig(id="good2", url="https://good.example/feed", display_name="GoodMirror")
        articles = asyncio.run(make_aggregator().run([GOOD, other]))
        assert [a.source for a in articles] == ["GoodSite"] * 3 + ["GoodMirror"] * 3


class TestTotalFailure:
    """AllSourcesFailed and its diagnostics."""

    def test_empty_feed_list(self):
        """No feeds is an empty run, not a failure."""
        report = asyncio.run(make_aggregator().run_with_report([]))
        assert report.articles == []
        assert report.feeds_attempted == 0

    def test_single_failure_raises(self):
        with pytest.raises(AllSourcesFailed) as exc_info:
            asyncio.run(make_aggregator().run([DOWN]))

        assert "DownSite (timeout)" in str(exc_info.value)
        assert exc_info.value.health["down"].status == FeedStatus.ERROR

    def test_diagnostics_bounded_to_five_feeds(self):
        """Six failing feeds: five listed, then an ellipsis."""
        feeds = [
            FeedConfig(id=f"down-{i}", url=f"https://down.example/{i}", display_name=f"Down{i}")
            for i in range(6)
        ]

        with pytest.raises(AllSourcesFailed) as exc_info:
            asyncio.run(make_aggregator().run(feeds))

        message = str(exc_info.value)
        for i in range(5):
            assert f"Down{i} (timeout)" in message
        assert "Down5" not in message
        assert message.endswith("...")
        assert len(exc_info.value.errors) == 6

    def test_parse_failures_only(self):
        with pytest.raises(AllSourcesFailed):
            asyncio.run(make_aggregator().run([HTML_PAGE]))


class TestFailureContainment:
    """Unexpected errors stay within their feed or item."""

    def test_crashing_feed_contained(self):
        class CrashingParser:
            def parse(self, content, dialect_hint=None):
                raise RuntimeError("parser bug")

        aggregator = FeedAggregator(make_fetcher(), parser=CrashingParser())

        with pytest.raises(AllSourcesFailed) as exc_info:
            asyncio.run(aggregator.run([GOOD]))

        assert exc_info.value.errors[0].attempt_errors == ["unknown:parser bug"]

    def test_bad_item_skipped(self):
        """An item that fails normalization does not take the feed down."""
        class SelectiveAggregator(FeedAggregator):
            def build_article(self, item: RawItem, feed: FeedConfig):
                if item.title == "Middle story":
                    raise ValueError("bad item")
                return super().build_article(item, feed)

        aggregator = SelectiveAggregator(make_fetcher())
        articles = asyncio.run(aggregator.run([GOOD]))
        assert [a.title for a in articles] == ["Oldest story", "Newest story"]


class TestFromSettings:
    """Wiring from application settings."""

    def test_scraper_enabled(self):
        aggregator = FeedAggregator.from_settings(Settings(), make_fetcher())
        assert aggregator.scraper is not None

    def test_scraper_disabled_and_regex_parser(self):
        settings = Settings(document_parser="regex", scrape=ScrapeSettings(enabled=False), summary_length=40)
        aggregator = FeedAggregator.from_settings(settings, make_fetcher())

        assert aggregator.scraper is None
        assert isinstance(aggregator.documents, RegexDocumentParser)
        assert aggregator.summary_length == 40

    def test_feed_timeout_passed_to_fetcher(self):
        """An explicit feed timeout bounds every feed fetch attempt."""
        class RecordingFetcher(RetrievingFetcher):
            def __init__(self, *args, **kwargs):
                super().__init__(*args, **kwargs)
                self.timeouts = []

            async def fetch(self, url, timeout=None, **kwargs):
                self.timeouts.append(timeout)
                return await super().fetch(url, timeout, **kwargs)

        fetcher = RecordingFetcher(
            FetchSettings(proxy_templates=[]),
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        settings = Settings(scrape=ScrapeSettings(enabled=False))
        aggregator = FeedAggregator.from_settings(
            settings, fetcher, feed_timeout=settings.fetch.batch_timeout
        )

        asyncio.run(aggregator.run([GOOD]))
        assert fetcher.timeouts == [10.0]

    def test_feed_timeout_defaults_to_fetcher_setting(self):
        aggregator = FeedAggregator.from_settings(Settings(), make_fetcher())
        assert aggregator.feed_timeout is None
