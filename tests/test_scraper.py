"""
Tests for Open Graph image scraping.
"""

import asyncio
from datetime import datetime, timezone

import httpx
import pytest

from newsfeed.config import FetchSettings, ScrapeSettings
from newsfeed.models.domain import Article
from newsfeed.services.ingestion.documents import DomDocumentParser, RegexDocumentParser
from newsfeed.services.ingestion.fetcher import RetrievingFetcher
from newsfeed.services.ingestion.images import placeholder_url
from newsfeed.services.ingestion.scraper import (
    Scraper,
    find_meta_image,
    find_youtube_thumbnail,
    needs_scrape,
)


PAGE_WITH_OG = """<html><head>
<meta name="twitter:image" content="https://cdn.example/twitter.jpg">
<meta property="og:image" content="/images/og.jpg">
</head><body><p>Article</p></body></html>"""

PAGE_WITH_EMBED = """<html><head><title>Video</title></head><body>
<iframe src="https://www.youtube-nocookie.com/embed/dQw4w9WgXcQ?rel=0"></iframe>
</body></html>"""

PAGE_WITH_WATCH_LINK = """<html><body>
<a href="https://www.youtube.com/watch?feature=share&v=abc123">Trailer</a>
</body></html>"""

PAGE_WITH_EMOJI = """<html><head>
<meta property="og:image" content="https://s.w.org/images/core/emoji/14.0.0/72x72/1f3ae.png">
</head><body></body></html>"""

PAGES = {
    "/og": PAGE_WITH_OG,
    "/embed": PAGE_WITH_EMBED,
    "/watch": PAGE_WITH_WATCH_LINK,
    "/emoji": PAGE_WITH_EMOJI,
    "/plain": "<html><body><p>No images</p></body></html>",
}


def page_handler(request: httpx.Request) -> httpx.Response:
    page = PAGES.get(request.url.path)
    if page is None:
        return httpx.Response(404)
    return httpx.Response(200, text=page)


def make_scraper(handler=page_handler, documents=None, batch_size=10) -> Scraper:
    fetcher = RetrievingFetcher(
        FetchSettings(proxy_templates=[]),
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    return Scraper(
        fetcher,
        documents or DomDocumentParser(),
        ScrapeSettings(batch_size=batch_size, batch_delay_seconds=0),
    )


def make_article(path: str, image_url=None, needs_scraping=True, title=None) -> Article:
    return Article(
        id=path,
        title=title or f"Article {path}",
        source="BareFeed",
        publication_date=datetime(2024, 1, 15, tzinfo=timezone.utc),
        link=f"https://bare.example{path}",
        image_url=image_url or placeholder_url("BareFeed"),
        needs_scraping=needs_scraping,
    )


@pytest.mark.parametrize("documents", [DomDocumentParser(), RegexDocumentParser()], ids=lambda p: p.name)
class TestPageLookups:
    """Meta and YouTube lookups on parsed pages."""

    def test_og_image_before_twitter(self, documents):
        """Keys are checked in priority order, not document order."""
        assert find_meta_image(documents.parse_html(PAGE_WITH_OG)) == "/images/og.jpg"

    def test_twitter_image_fallback(self, documents):
        page = '<meta name="twitter:image" content="https://cdn.example/tw.jpg">'
        assert find_meta_image(documents.parse_html(page)) == "https://cdn.example/tw.jpg"

    def test_youtube_embed(self, documents):
        assert find_youtube_thumbnail(documents.parse_html(PAGE_WITH_EMBED)) == (
            "https://img.youtube.com/vi/dQw4w9WgXcQ/hqdefault.jpg"
        )

    def test_youtube_watch_link(self, documents):
        assert find_youtube_thumbnail(documents.parse_html(PAGE_WITH_WATCH_LINK)) == (
            "https://img.youtube.com/vi/abc123/hqdefault.jpg"
        )

    def test_nothing_found(self, documents):
        document = documents.parse_html(PAGES["/plain"])
        assert find_meta_image(document) is None
        assert find_youtube_thumbnail(document) is None


class TestScrapeOgImage:
    """Tests for scrape_og_image()."""

    def test_relative_og_image_resolved(self):
        image = asyncio.run(make_scraper().scrape_og_image("https://bare.example/og"))
        assert image == "https://bare.example/images/og.jpg"

    def test_youtube_fallback(self):
        image = asyncio.run(make_scraper().scrape_og_image("https://bare.example/embed"))
        assert image == "https://img.youtube.com/vi/dQw4w9WgXcQ/hqdefault.jpg"

    def test_emoji_rejected(self):
        assert asyncio.run(make_scraper().scrape_og_image("https://bare.example/emoji")) is None

    def test_fetch_failure_returns_none(self):
        """HTTP errors never propagate."""
        assert asyncio.run(make_scraper().scrape_og_image("https://bare.example/missing")) is None

    def test_transport_error_returns_none(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        assert asyncio.run(make_scraper(handler).scrape_og_image("https://bare.example/og")) is None

    def test_parser_failure_returns_none(self):
        """Unexpected errors while reading the page are contained."""
        class BrokenParser(DomDocumentParser):
            def parse_html(self, content):
                raise RuntimeError("boom")

        scraper = make_scraper(documents=BrokenParser())
        assert asyncio.run(scraper.scrape_og_image("https://bare.example/og")) is None


class TestScrapeArticles:
    """Tests for the batched scraping pass."""

    def test_needs_scrape(self):
        assert needs_scrape(make_article("/og"))
        assert needs_scrape(make_article("/og", needs_scraping=False))
        assert not needs_scrape(make_article("/og", image_url="https://cdn.example/a.jpg", needs_scraping=False))

    def test_order_preserved_and_flags_cleared(self):
        """Selected articles are updated in place; others are untouched."""
        articles = [
            make_article("/og"),
            make_article("/done", image_url="https://cdn.example/real.jpg", needs_scraping=False),
            make_article("/plain"),
            make_article("/embed"),
        ]

        result = asyncio.run(make_scraper(batch_size=2).scrape_articles(articles))

        assert [a.id for a in result] == ["/og", "/done", "/plain", "/embed"]
        assert result[0].image_url == "https://bare.example/images/og.jpg"
        assert result[1] is articles[1]
        assert result[2].image_url == placeholder_url("BareFeed")
        assert result[3].image_url == "https://img.youtube.com/vi/dQw4w9WgXcQ/hqdefault.jpg"
        assert not any(a.needs_scraping for a in result)

    def test_originals_not_mutated(self):
        articles = [make_article("/og")]
        asyncio.run(make_scraper().scrape_articles(articles))
        assert articles[0].needs_scraping
        assert articles[0].image_url == placeholder_url("BareFeed")

    def test_nothing_to_scrape(self):
        """No requests are made when every article has an image."""
        def handler(request):
            raise AssertionError("unexpected request")

        articles = [make_article("/x", image_url="https://cdn.example/a.jpg", needs_scraping=False)]
        result = asyncio.run(make_scraper(handler).scrape_articles(articles))
        assert result == articles
