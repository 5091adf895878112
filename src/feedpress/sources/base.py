"""Base class for feed source readers."""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel, Field

from feedpress.models import CandidateItem, Feed, SourceKind


class SourceBatch(BaseModel):
    """Items read from one feed in one run.

    ``next_offset`` is set only by bookmarked sources and is the value
    the feed's offset should take once the batch has been attempted.
    """

    items: list[CandidateItem] = Field(default_factory=list)
    next_offset: int | None = None
    exhausted: bool = False


class SourceReader(ABC):
    """Base class for source-specific readers.

    Each reader turns a feed's configured source into at most
    ``max_items`` candidate items, in source order.
    """

    def __init__(self, *, max_items: int) -> None:
        self._max_items = max_items

    @property
    @abstractmethod
    def kind(self) -> SourceKind:
        """The source kind this reader handles."""

    @abstractmethod
    def read(self, feed: Feed) -> SourceBatch:
        """Read the next batch of candidate items for *feed*.

        Raises:
            SourceError: When the source cannot be read at all.
        """
