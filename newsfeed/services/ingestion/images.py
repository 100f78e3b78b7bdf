"""
Image resolution for feed items.

Chooses one representative image per item from the hints the parser
collected, makes it absolute, and upgrades it to a larger rendition for
publishers whose CDN URLs encode the size. Items without any usable image
get a deterministic placeholder and, for feeds that never embed images,
are flagged for the Open Graph scraping pass.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterator, Optional
from urllib.parse import quote, urljoin, urlparse

from newsfeed.models.domain import FeedConfig
from newsfeed.services.ingestion.base import RawItem
from newsfeed.services.ingestion.documents import DocumentParser, DomDocumentParser

logger = logging.getLogger(__name__)

PLACEHOLDER_BASE_URL = "https://placehold.co/600x400/374151/d1d5db?text="
PLACEHOLDER_MARKER = "placehold"
PLACEHOLDER_NAME_LENGTH = 30

EMOJI_MARKER = "s.w.org/images/core/emoji"
TRACKER_MARKERS = (
    "cpx.golem.de",
    "feedburner.com",
    "feedsportal.com",
    "gravatar.com",
    "placeholder.svg",
)
YOUTUBE_THUMBNAIL_MARKER = "ytimg.com"

# Lazy-loading themes keep the real source in data attributes
LAZY_SOURCE_ATTRIBUTES = ("data-src", "data-lazy-src", "src")

_LEADING_NUMBER_RE = re.compile(r"\s*(\d+(?:\.\d+)?)")


def placeholder_url(display_name: str) -> str:
    """Placeholder image labelled with the first 30 characters of the feed name."""
    label = quote(display_name[:PLACEHOLDER_NAME_LENGTH], safe="-_.!~*'()")
    return f"{PLACEHOLDER_BASE_URL}{label}"


def is_placeholder(url: Optional[str]) -> bool:
    return bool(url) and PLACEHOLDER_MARKER in url


def is_rejected_source(src: str) -> bool:
    """Inline data URIs, WordPress emoji and known tracker hosts."""
    return (
        src.startswith("data:")
        or EMOJI_MARKER in src
        or any(marker in src for marker in TRACKER_MARKERS)
    )


def is_tracking_pixel(attrs: dict[str, str]) -> bool:
    """True when an explicit width or height is below 2 pixels."""
    for dimension in ("width", "height"):
        value = attrs.get(dimension)
        if value is None:
            continue
        match = _LEADING_NUMBER_RE.match(value)
        if match and float(match.group(1)) < 2:
            return True
    return False


def first_inline_image(fragment: Optional[str], parser: DocumentParser) -> Optional[str]:
    """
    First usable <img> source in an HTML fragment.

    YouTube thumbnails are only used when the fragment has no other image,
    since they are usually an embedded video rather than the article's art.
    """
    if not fragment:
        return None

    youtube_fallback = None
    for attrs in parser.parse_html(fragment).elements("img"):
        src = next((attrs[a].strip() for a in LAZY_SOURCE_ATTRIBUTES if attrs.get(a, "").strip()), "")
        if not src or is_rejected_source(src) or is_tracking_pixel(attrs):
            continue
        if YOUTUBE_THUMBNAIL_MARKER in src:
            youtube_fallback = youtube_fallback or src
            continue
        return src
    return youtube_fallback


def absolutize(candidate: str, base: str) -> Optional[str]:
    """Resolve against the article link; only absolute http(s) URLs are accepted."""
    try:
        resolved = urljoin(base or "", candidate.strip())
        parsed = urlparse(resolved)
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return resolved


# =============================================================================
# Publisher rewrites
# =============================================================================

@dataclass(frozen=True)
class ImageRewrite:
    """One (matcher, rewrite) entry of the publisher table."""
    name: str
    matches: Callable[[str, str], bool]  # (hostname, feed display name)
    rewrite: Callable[[str], str]


def _unchanged(url: str) -> str:
    return url


PUBLISHER_REWRITES: tuple[ImageRewrite, ...] = (
    ImageRewrite(
        name="gamespot",
        matches=lambda host, feed: "gamespot.com" in host,
        rewrite=lambda url: re.sub(r"/uploads/[^/]+/", "/uploads/original/", url, count=1),
    ),
    # Computec hosts contain "cgames.de" but use a different CDN layout
    ImageRewrite(
        name="computec",
        matches=lambda host, feed: host.endswith(("pcgames.de", "pcgameshardware.de")),
        rewrite=_unchanged,
    ),
    ImageRewrite(
        name="webedia",
        matches=lambda host, feed: "cgames.de" in host or "GameStar" in feed or "GamePro" in feed,
        rewrite=lambda url: re.sub(r"/(\d{2,4})/", "/800/", url, count=1),
    ),
    ImageRewrite(
        name="gameswirtschaft",
        matches=lambda host, feed: "GamesWirtschaft" in feed,
        rewrite=lambda url: re.sub(r"-\d+x\d+(?=\.(jpg|jpeg|png|gif|webp)$)", "", url, flags=re.I),
    ),
    ImageRewrite(
        name="nintendolife",
        matches=lambda host, feed: "nintendolife.com" in host,
        rewrite=lambda url: url.replace("small.jpg", "large.jpg", 1),
    ),
)


def apply_publisher_rewrite(url: str, feed_name: str) -> str:
    """Apply the first matching publisher rewrite; unknown publishers pass through."""
    host = (urlparse(url).hostname or "").lower()
    for entry in PUBLISHER_REWRITES:
        if entry.matches(host, feed_name):
            return entry.rewrite(url)
    return url


# =============================================================================
# Resolver
# =============================================================================

@dataclass(frozen=True)
class ImageResolution:
    image_url: str
    needs_scraping: bool = False


class ImageResolver:
    """
    Picks an image for a RawItem, first match wins:

    1. Enclosure with an image MIME type
    2. String thumbnail hint (media:content image)
    3. media:thumbnail / thumbnail URL
    4. First inline <img> of content, then description

    Only the first candidate found is considered. If it cannot be resolved
    to an absolute URL the item falls through to the placeholder.
    """

    def __init__(self, document_parser: Optional[DocumentParser] = None):
        self.documents = document_parser or DomDocumentParser()

    def resolve(self, item: RawItem, feed: FeedConfig) -> ImageResolution:
        candidate = next(self._candidates(item), None)

        if candidate:
            absolute = absolutize(candidate, item.link)
            if absolute:
                return ImageResolution(apply_publisher_rewrite(absolute, feed.display_name))
            logger.debug(f"Unresolvable image URL {candidate!r} for {item.link}")

        return ImageResolution(
            image_url=placeholder_url(feed.display_name),
            needs_scraping=feed.requires_scrape_fallback,
        )

    def _candidates(self, item: RawItem) -> Iterator[str]:
        enclosure = item.enclosure
        if enclosure and (enclosure.mime_type or "").lower().startswith("image"):
            if not is_rejected_source(enclosure.url):
                yield enclosure.url

        for hint in (item.thumbnail, item.media_thumbnail_url, item.inline_image_url):
            if hint and not is_rejected_source(hint):
                yield hint

        inline = (
            first_inline_image(item.content_html, self.documents)
            or first_inline_image(item.description_html, self.documents)
        )
        if inline:
            yield inline
