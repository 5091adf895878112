"""Exception hierarchy and the best-effort side-effect wrapper."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class FeedpressError(Exception):
    """Base error for the feedpress pipeline."""


class StoreError(FeedpressError):
    """Persistent store read or write failed."""


class FeedNotFoundError(FeedpressError):
    """No feed exists with the requested id."""

    def __init__(self, feed_id: str) -> None:
        super().__init__(f"Feed not found: {feed_id}")
        self.feed_id = feed_id


class SourceError(FeedpressError):
    """A feed source could not be read (unparsable RSS, empty list, ...)."""


class ScrapeError(FeedpressError):
    """A page could not be fetched or extracted."""


class ProviderError(FeedpressError):
    """An AI provider call failed."""


class ProviderNotConfiguredError(ProviderError):
    """No usable AI provider configuration was found."""


class ResponseParseError(FeedpressError):
    """AI output could not be parsed into structured content."""


@contextmanager
def best_effort(label: str, **context: object) -> Iterator[None]:
    """Run a side effect whose failure must never abort the caller.

    Any exception raised inside the block is logged with *label* and
    *context* and then discarded::

        with best_effort("record analytics", feed_id=feed.id):
            recorder.record(result)
    """
    try:
        yield
    except Exception:
        logger.warning(
            "Best-effort step failed: %s",
            label,
            exc_info=True,
            extra={"context": dict(context)},
        )
