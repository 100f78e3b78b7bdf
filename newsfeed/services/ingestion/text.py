"""
Text normalization helpers: summaries, timestamps and dedup keys.
"""

import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

from newsfeed.services.ingestion.documents import DocumentParser, RegexDocumentParser

DEFAULT_SUMMARY_LENGTH = 150
DEDUP_KEY_LENGTH = 80

# "[…] Der Beitrag ... erschien zuerst auf ..." and similar feed boilerplate
_BOILERPLATE_RE = re.compile(
    r"\s*\[(?:…|\.\.\.)\]\s*(?:Der Beitrag|Weiterlesen|Read more|Continue reading).*$",
    re.I | re.S,
)
_TRAILING_ELLIPSIS_RE = re.compile(r"\s*(?:\.{3,}|…)\s*$")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")
_COMPACT_OFFSET_RE = re.compile(r"(:\d{2}(?:\.\d+)?)([+-]\d{2})(\d{2})$")
_FRACTION_RE = re.compile(r"\.\d+")

_fallback_parser = RegexDocumentParser()


def strip_html_and_truncate(
    html: Optional[str],
    length: int = DEFAULT_SUMMARY_LENGTH,
    parser: Optional[DocumentParser] = None,
) -> str:
    """
    Strip markup from an HTML fragment and cut it to a plain-text summary.

    Script/style contents are dropped, whitespace is collapsed and trailing
    "read more" boilerplate removed. Text longer than `length` is cut at the
    last word boundary inside the limit and suffixed with "...".

    Args:
        html: HTML fragment (may be None or empty)
        length: Maximum length before the ellipsis
        parser: Document parser used to extract text (regex scanning by default)

    Returns:
        Plain-text summary, at most length + 3 characters
    """
    if not html:
        return ""

    text = (parser or _fallback_parser).parse_html(html).text()
    text = " ".join(text.split())
    text = _BOILERPLATE_RE.sub("", text)
    text = _TRAILING_ELLIPSIS_RE.sub("", text).strip()

    if len(text) > length:
        truncated = text[:length]
        last_space = truncated.rfind(" ")
        if last_space > 0:
            truncated = truncated[:last_space]
        return truncated.rstrip() + "..."
    return text


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an RSS (RFC 822) or Atom (ISO 8601) timestamp.

    Returns a timezone-aware UTC datetime, or None when unparseable.
    Naive values are assumed to be UTC.
    """
    if not value:
        return None
    value = value.strip()

    parsed = None
    try:
        parsed = parsedate_to_datetime(value)
    except (ValueError, TypeError, IndexError):
        pass

    if parsed is None:
        iso = _COMPACT_OFFSET_RE.sub(r"\1\2:\3", value.replace("Z", "+00:00"))
        try:
            parsed = datetime.fromisoformat(iso)
        except ValueError:
            try:
                # Fractions other than 3 or 6 digits
                parsed = datetime.fromisoformat(_FRACTION_RE.sub("", iso))
            except ValueError:
                return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalize_title(title: str) -> str:
    """Lowercase, keep only [a-z0-9], cut to the dedup key length."""
    return _NON_ALNUM_RE.sub("", title.lower())[:DEDUP_KEY_LENGTH]
