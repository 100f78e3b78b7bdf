"""
Open Graph image scraping for articles whose feed carried no usable image.
"""

import asyncio
import logging
import re
from typing import Optional

from newsfeed.config import ScrapeSettings
from newsfeed.models.domain import Article
from newsfeed.services.ingestion.documents import DocumentParser, DomDocumentParser, HtmlDocument
from newsfeed.services.ingestion.fetcher import RetrievingFetcher
from newsfeed.services.ingestion.images import EMOJI_MARKER, absolutize, is_placeholder

logger = logging.getLogger(__name__)

# Checked in order against both property= and name= attributes
IMAGE_META_KEYS = ("og:image", "og:image:url", "twitter:image")

YOUTUBE_THUMBNAIL_URL = "https://img.youtube.com/vi/{video_id}/hqdefault.jpg"
_YOUTUBE_EMBED_RE = re.compile(r"youtube(?:-nocookie)?\.com/embed/([^/?&#\"']+)")
_YOUTUBE_WATCH_RE = re.compile(r"youtube\.com/watch\?(?:.*&)?v=([^&#\"']+)")


def find_meta_image(document: HtmlDocument) -> Optional[str]:
    """Content of the first og:image, og:image:url or twitter:image meta tag."""
    metas = document.elements("meta")
    for key in IMAGE_META_KEYS:
        for attrs in metas:
            if key in (attrs.get("property"), attrs.get("name")):
                content = (attrs.get("content") or "").strip()
                if content:
                    return content
    return None


def find_youtube_thumbnail(document: HtmlDocument) -> Optional[str]:
    """Thumbnail of an embedded YouTube player, or of a linked watch page."""
    for attrs in document.elements("iframe"):
        match = _YOUTUBE_EMBED_RE.search(attrs.get("src", ""))
        if match:
            return YOUTUBE_THUMBNAIL_URL.format(video_id=match.group(1))
    for attrs in document.elements("a"):
        match = _YOUTUBE_WATCH_RE.search(attrs.get("href", ""))
        if match:
            return YOUTUBE_THUMBNAIL_URL.format(video_id=match.group(1))
    return None


def needs_scrape(article: Article) -> bool:
    return article.needs_scraping or is_placeholder(article.image_url)


class Scraper:
    """
    Looks up representative images on article pages.

    Pages are fetched through the same RetrievingFetcher as feeds, with the
    shorter page timeout. Failures never propagate: the article keeps its
    placeholder.
    """

    def __init__(
        self,
        fetcher: RetrievingFetcher,
        document_parser: Optional[DocumentParser] = None,
        settings: Optional[ScrapeSettings] = None,
        page_timeout: Optional[float] = None,
    ):
        self.fetcher = fetcher
        self.documents = document_parser or DomDocumentParser()
        self.settings = settings or ScrapeSettings()
        self.page_timeout = page_timeout or fetcher.settings.page_timeout

    async def scrape_og_image(self, page_url: str) -> Optional[str]:
        """
        Find the Open Graph / Twitter Card image of a page.

        Returns an absolute image URL, or None when the page could not be
        fetched or declares no usable image.
        """
        try:
            result = await self.fetcher.fetch(page_url, timeout=self.page_timeout)
            if not result.ok:
                logger.warning(f"Could not fetch {page_url} for image scraping: {result.error_detail}")
                return None

            document = self.documents.parse_html(result.body)

            image_url = find_meta_image(document)
            if image_url and EMOJI_MARKER in image_url:
                image_url = None
            if image_url:
                resolved = absolutize(image_url, page_url)
                if resolved:
                    return resolved

            return find_youtube_thumbnail(document)

        except Exception as e:
            logger.warning(f"Image scraping failed for {page_url}: {e}")
            return None

    async def scrape_articles(self, articles: list[Article]) -> list[Article]:
        """
        Replace placeholder images with scraped ones, in batches.

        Output order equals input order. Every selected article comes back
        with needs_scraping cleared, whether or not an image was found.
        """
        selected = [i for i, article in enumerate(articles) if needs_scrape(article)]
        if not selected:
            return list(articles)

        updated = list(articles)
        batch_size = self.settings.batch_size
        found = 0

        for start in range(0, len(selected), batch_size):
            batch = selected[start:start + batch_size]
            image_urls = await asyncio.gather(
                *(self.scrape_og_image(articles[i].link) for i in batch)
            )

            for index, image_url in zip(batch, image_urls):
                changes = {"needs_scraping": False}
                if image_url:
                    changes["image_url"] = image_url
                    found += 1
                updated[index] = articles[index].model_copy(update=changes)

            if start + batch_size < len(selected):
                await asyncio.sleep(self.settings.batch_delay_seconds)

        logger.info(f"Scraped images for {found} of {len(selected)} articles")
        return updated
