"""Static URL-list reader with an offset bookmark."""

from __future__ import annotations

import logging

from feedpress.models import CandidateItem, Feed, SourceKind
from feedpress.sources.base import SourceBatch, SourceReader

logger = logging.getLogger(__name__)


class URLListSource(SourceReader):
    """Serves a newline-delimited URL list in fixed-size batches.

    Each run takes ``lines[offset:offset + max_items]``. The returned
    ``next_offset`` advances by the number of URLs attempted, so every
    URL is tried at most once across runs regardless of outcome.
    """

    @property
    def kind(self) -> SourceKind:
        return SourceKind.URL_LIST

    def read(self, feed: Feed) -> SourceBatch:
        lines = feed.url_lines()
        offset = max(feed.offset, 0)

        if offset >= len(lines):
            logger.info(
                "URL list for feed %s exhausted (offset %d of %d)", feed.id, offset, len(lines)
            )
            return SourceBatch(items=[], next_offset=offset, exhausted=True)

        batch = lines[offset : offset + self._max_items]
        items = [CandidateItem(link=url, title=url) for url in batch]

        logger.info(
            "Read URLs %d-%d of %d for feed %s",
            offset + 1,
            offset + len(batch),
            len(lines),
            feed.id,
        )
        return SourceBatch(items=items, next_offset=offset + len(batch))
