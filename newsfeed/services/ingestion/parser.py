"""
RSS 2.0 / RSS 1.0 / Atom feed parsing.

The parser is lenient at the item level: entries without a title, a link
or a parseable timestamp are skipped, since real-world feeds routinely carry
a few broken items. Only documents that cannot be a feed at all raise.
"""

import html
import logging
from typing import Optional

from newsfeed.services.ingestion.base import EnclosureHint, FeedDialect, RawItem
from newsfeed.services.ingestion.documents import (
    DocumentParser,
    DomDocumentParser,
    Markup,
    XmlNode,
)
from newsfeed.services.ingestion.errors import ParseError
from newsfeed.services.ingestion.text import parse_timestamp

logger = logging.getLogger(__name__)

FEED_ROOTS = {"rss", "RDF", "channel", "feed"}

ITEM_ELEMENTS = {
    FeedDialect.RSS: "item",
    FeedDialect.ATOM: "entry",
}

TIMESTAMP_ELEMENTS = {
    FeedDialect.RSS: ("pubDate", "updated", "dc:date"),
    FeedDialect.ATOM: ("published", "updated"),
}

ID_ELEMENTS = {
    FeedDialect.RSS: "guid",
    FeedDialect.ATOM: "id",
}


class FeedParser:
    """
    Extracts RawItems from feed XML.

    The document parser is injected so the same extraction rules run on top
    of either the DOM-backed or the regex-scanning realization.
    """

    def __init__(self, document_parser: Optional[DocumentParser] = None):
        self.documents = document_parser or DomDocumentParser()

    def parse(
        self,
        content: Markup,
        dialect_hint: Optional[FeedDialect] = None,
    ) -> list[RawItem]:
        """
        Parse a feed document into raw items, in document order.

        Args:
            content: Raw feed bytes or text
            dialect_hint: Force RSS or Atom handling instead of detecting it

        Returns:
            Valid items only (title, link and timestamp present)

        Raises:
            ParseError: Content is not XML, or its root is not a feed root
        """
        document = self.documents.parse_xml(content)

        if document.root_name not in FEED_ROOTS:
            raise ParseError(f"Document root <{document.root_name}> is not a feed")

        dialect = dialect_hint or (
            FeedDialect.ATOM if document.root_name == "feed" else FeedDialect.RSS
        )

        items = []
        nodes = document.find_all(ITEM_ELEMENTS[dialect])
        for node in nodes:
            item = self._parse_item(node, dialect)
            if item is not None:
                items.append(item)

        if len(items) < len(nodes):
            logger.debug(f"Skipped {len(nodes) - len(items)} of {len(nodes)} {dialect.value} items")

        return items

    def _parse_item(self, node: XmlNode, dialect: FeedDialect) -> Optional[RawItem]:
        """Build a RawItem, or None when a required field is missing."""
        title = html.unescape(node.find_text("title"))
        link = self._extract_link(node, dialect)
        published = self._extract_timestamp(node, dialect)

        if not title or not link or not published:
            return None

        return RawItem(
            title=title,
            link=link,
            published_at_raw=published,
            guid_or_id=node.find_text(ID_ELEMENTS[dialect]) or link,
            description_html=self._first_text(node, "description", "summary"),
            content_html=self._first_text(node, "content:encoded", "content"),
            enclosure=self._extract_enclosure(node),
            thumbnail=self._extract_media_content(node),
            media_thumbnail_url=self._first_attr(node, "url", "media:thumbnail", "thumbnail"),
            inline_image_url=self._first_attr(node, "src", "img"),
        )

    def _extract_link(self, node: XmlNode, dialect: FeedDialect) -> str:
        if dialect == FeedDialect.RSS:
            return node.find_text("link")

        links = node.find_all("link")
        if not links:
            return ""
        chosen = next((link for link in links if link.attr("rel") == "alternate"), links[0])
        return (chosen.attr("href") or chosen.text()).strip()

    def _extract_timestamp(self, node: XmlNode, dialect: FeedDialect) -> str:
        """First timestamp field that parses; the raw string is kept."""
        for name in TIMESTAMP_ELEMENTS[dialect]:
            value = node.find_text(name)
            if value and parse_timestamp(value) is not None:
                return value
        return ""

    def _extract_enclosure(self, node: XmlNode) -> Optional[EnclosureHint]:
        enclosures = [e for e in node.find_all("enclosure") if e.attr("url")]
        if not enclosures:
            return None
        # Podcast-style feeds may list audio before the artwork
        chosen = next(
            (e for e in enclosures if (e.attr("type") or "").lower().startswith("image")),
            enclosures[0],
        )
        return EnclosureHint(url=chosen.attr("url").strip(), mime_type=chosen.attr("type"))

    def _extract_media_content(self, node: XmlNode) -> Optional[str]:
        for media in node.find_all("media:content"):
            url = media.attr("url")
            medium = media.attr("medium")
            mime_type = (media.attr("type") or "").lower()
            if url and (medium == "image" or mime_type.startswith("image/")):
                return url.strip()
        return None

    def _first_text(self, node: XmlNode, *names: str) -> str:
        for name in names:
            child = node.find(name)
            if child is not None:
                value = child.text().strip()
                if value:
                    return value
        return ""

    def _first_attr(self, node: XmlNode, attribute: str, *names: str) -> Optional[str]:
        for name in names:
            for child in node.find_all(name):
                value = child.attr(attribute)
                if value and value.strip():
                    return value.strip()
        return None
