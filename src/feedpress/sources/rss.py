"""RSS/Atom feed reader."""

from __future__ import annotations

import logging
import re
from html import unescape

import feedparser

from feedpress.errors import SourceError
from feedpress.models import CandidateItem, Feed, SourceKind
from feedpress.sources.base import SourceBatch, SourceReader

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]+>")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


class RSSSource(SourceReader):
    """Parses an RSS or Atom feed URL into candidate items.

    RSS feeds carry no bookmark; repeated entries are caught by the
    duplicate detector instead.
    """

    @property
    def kind(self) -> SourceKind:
        return SourceKind.RSS

    def read(self, feed: Feed) -> SourceBatch:
        if not feed.url:
            raise SourceError(f"Feed {feed.id} has no RSS URL")

        parsed = feedparser.parse(feed.url)

        if parsed.bozo and not parsed.entries:
            raise SourceError(f"Failed to parse RSS feed {feed.url}: {parsed.bozo_exception}")

        items: list[CandidateItem] = []
        for entry in parsed.entries[: self._max_items]:
            items.append(self._entry_to_item(entry))

        logger.info("Read %d items from RSS feed %s", len(items), feed.url)
        return SourceBatch(items=items)

    def _entry_to_item(self, entry: feedparser.FeedParserDict) -> CandidateItem:
        """Convert a feedparser entry to a CandidateItem."""
        return CandidateItem(
            link=entry.get("link", "") or "",
            title=_strip_html(entry.get("title", "") or ""),
            raw_content=self._extract_body(entry),
            image_url=self._extract_image(entry),
        )

    @staticmethod
    def _extract_body(entry: feedparser.FeedParserDict) -> str:
        """Extract the best available body text from a feed entry."""
        content_list = entry.get("content", [])
        if content_list:
            best = max(content_list, key=lambda c: len(c.get("value", "")))
            return _strip_html(best.get("value", ""))

        for field in ("summary", "description"):
            value = entry.get(field, "")
            if value:
                return _strip_html(value)

        return ""

    @staticmethod
    def _extract_image(entry: feedparser.FeedParserDict) -> str:
        """Pick an image URL from media or enclosure elements."""
        for media in entry.get("media_content", []) or []:
            url = media.get("url", "")
            if url and media.get("medium", "image") == "image":
                return url
        for thumb in entry.get("media_thumbnail", []) or []:
            if thumb.get("url"):
                return thumb["url"]
        for enclosure in entry.get("enclosures", []) or []:
            if enclosure.get("type", "").startswith("image/") and enclosure.get("href"):
                return enclosure["href"]
        return ""


def _strip_html(html: str) -> str:
    """Rough HTML tag stripping for feed content."""
    text = unescape(_TAG_RE.sub("", html))
    text = text.replace("\xa0", " ")
    text = _BLANK_LINES_RE.sub("\n\n", text)
    return text.strip()
