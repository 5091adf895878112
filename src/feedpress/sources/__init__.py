"""Feed source readers that fan in to the CandidateItem model."""

from __future__ import annotations

from feedpress.models import SourceKind
from feedpress.sources.base import SourceBatch, SourceReader


def create_source(kind: SourceKind | str, *, max_items: int) -> SourceReader:
    """Create a reader for the given source kind.

    Raises:
        ValueError: If the source kind is unknown.
    """
    if isinstance(kind, str):
        kind = SourceKind(kind)

    from feedpress.sources.rss import RSSSource
    from feedpress.sources.url_list import URLListSource

    readers: dict[SourceKind, type[SourceReader]] = {
        SourceKind.RSS: RSSSource,
        SourceKind.URL_LIST: URLListSource,
    }

    if kind in readers:
        return readers[kind](max_items=max_items)

    raise ValueError(f"Unknown source kind: {kind!r}")


__all__ = ["SourceBatch", "SourceReader", "create_source"]
