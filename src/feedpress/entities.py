"""Persist accepted generated content as opportunities and posts."""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable
from datetime import UTC, datetime
from html import unescape

from feedpress.errors import best_effort
from feedpress.models import (
    AcceptedContent,
    ContentKind,
    EntityStatus,
    EntityType,
    Opportunity,
    Post,
)
from feedpress.notifications import Notifier
from feedpress.storage.base import PipelineStore

logger = logging.getLogger(__name__)

SLUG_MAX_CHARS = 100
EXCERPT_MAX_CHARS = 160
META_TITLE_MAX_CHARS = 60

_NON_WORD_RE = re.compile(r"[^\w\s-]")
_SPACES_RE = re.compile(r"\s+")
_HYPHENS_RE = re.compile(r"-+")
_TAG_RE = re.compile(r"<[^>]+>")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def slugify(title: str) -> str:
    """Lower-case, drop punctuation, hyphenate and cap at 100 chars."""
    slug = _NON_WORD_RE.sub("", title.lower().strip())
    slug = _SPACES_RE.sub("-", slug)
    slug = _HYPHENS_RE.sub("-", slug)
    return slug[:SLUG_MAX_CHARS]


def strip_html(html: str) -> str:
    return _SPACES_RE.sub(" ", unescape(_TAG_RE.sub(" ", html))).strip()


def make_excerpt(content: str, max_chars: int = EXCERPT_MAX_CHARS) -> str:
    """Plain-text excerpt: the whole text if short, else truncated with ``...``."""
    text = strip_html(content)
    if len(text) <= max_chars:
        return text
    return text[: max_chars - 3].rstrip() + "..."


class EntityCreator:
    """Creates opportunity and post rows with unique slugs.

    Creation failures are logged and reported as ``None``. Notifications
    for published entities are sent best-effort after the row exists.
    """

    def __init__(
        self,
        store: PipelineStore,
        *,
        notifier: Notifier | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._clock = clock

    def generate_slug(self, title: str, entity_type: EntityType) -> str:
        """``<slugified title>-<base36 ms timestamp>``, made unique in its table."""
        base = slugify(title) or entity_type.value
        slug = f"{base}-{to_base36(int(self._clock() * 1000))}"
        candidate = slug
        counter = 2
        while self._store.slug_exists(entity_type, candidate):
            candidate = f"{slug}-{counter}"
            counter += 1
        return candidate

    def create_opportunity(
        self,
        generated: AcceptedContent,
        kind: ContentKind,
        source_url: str,
        feed_id: str | None,
        auto_publish: bool,
        featured_image_url: str = "",
    ) -> str | None:
        if not generated.title or not generated.excerpt or not generated.content:
            logger.warning(
                "Cannot create opportunity without title, excerpt and content: %s", source_url
            )
            return None

        now = datetime.now(tz=UTC)
        try:
            opportunity = Opportunity(
                title=generated.title,
                slug=self.generate_slug(generated.title, EntityType.OPPORTUNITY),
                excerpt=generated.excerpt,
                content=generated.content,
                opportunity_type=kind,
                status=EntityStatus.PUBLISHED if auto_publish else EntityStatus.DRAFT,
                source_url=source_url,
                source_feed_id=feed_id,
                featured_image_url=featured_image_url,
                deadline=generated.deadline,
                prize_value=generated.prize_value,
                requirements=generated.requirements,
                location=generated.location,
                apply_url=generated.apply_url,
                confidence_score=generated.confidence_score,
                processed_at=now,
                published_at=now if auto_publish else None,
            )
            self._store.insert_opportunity(opportunity)
        except Exception:
            logger.error(
                "Error creating opportunity from %s",
                source_url,
                exc_info=True,
                extra={"context": {"source_url": source_url, "feed_id": feed_id}},
            )
            return None

        logger.info(
            "Created %s opportunity %s (%s)",
            opportunity.status,
            opportunity.slug,
            kind,
            extra={"context": {"entity_id": opportunity.id, "feed_id": feed_id}},
        )
        self._after_create(opportunity)
        return opportunity.id

    def create_post(
        self,
        generated: AcceptedContent,
        source_url: str,
        feed_id: str | None,
        auto_publish: bool,
        featured_image_url: str = "",
        category: str = "",
    ) -> str | None:
        if not generated.title or not generated.content:
            logger.warning("Cannot create post without title and content: %s", source_url)
            return None

        try:
            excerpt = generated.excerpt or make_excerpt(generated.content)
            post = Post(
                title=generated.title,
                slug=self.generate_slug(generated.title, EntityType.POST),
                excerpt=excerpt,
                content=generated.content,
                status=EntityStatus.PUBLISHED if auto_publish else EntityStatus.DRAFT,
                category=category,
                meta_title=generated.meta_title or generated.title[:META_TITLE_MAX_CHARS],
                meta_description=generated.meta_description or excerpt,
                source_url=source_url,
                source_feed_id=feed_id,
                featured_image_url=featured_image_url,
                published_at=datetime.now(tz=UTC) if auto_publish else None,
            )
            self._store.insert_post(post)
        except Exception:
            logger.error(
                "Error creating post from %s",
                source_url,
                exc_info=True,
                extra={"context": {"source_url": source_url, "feed_id": feed_id}},
            )
            return None

        logger.info(
            "Created %s post %s",
            post.status,
            post.slug,
            extra={"context": {"entity_id": post.id, "feed_id": feed_id}},
        )
        self._after_create(post)
        return post.id

    def _after_create(self, entity: Opportunity | Post) -> None:
        if entity.status != EntityStatus.PUBLISHED or self._notifier is None:
            return
        with best_effort("publish notification", entity_id=entity.id):
            self._notifier.notify_published(entity)
