"""Duplicate detection by content fingerprints and edit-distance similarity.

Every accepted entity gets one fingerprint row holding sha256 hashes of
its normalized URL, title and body. New content is checked first against
the source URL of existing entities, then against those rows in a fixed
order (URL, body, title), before falling back to a bounded fuzzy
comparison against recent entities.
"""

from __future__ import annotations

import hashlib
import logging
import re
from datetime import UTC, datetime, timedelta
from typing import Any

from feedpress.models import (
    DuplicateCheckResult,
    DuplicateFingerprint,
    DuplicateReason,
    EntityType,
    ScrapedContent,
)
from feedpress.settings import SettingsService
from feedpress.storage.base import PipelineStore

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def normalize(text: str) -> str:
    """Trim, lower-case and collapse runs of whitespace."""
    return _WHITESPACE_RE.sub(" ", text.strip().lower())


def fingerprint_hash(text: str) -> str:
    """sha256 hex digest of the normalized text; empty input hashes to ``""``."""
    if not text or not text.strip():
        return ""
    return hashlib.sha256(normalize(text).encode("utf-8")).hexdigest()


def levenshtein(a: str, b: str) -> int:
    """Edit distance between *a* and *b* (insert, delete, substitute)."""
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Normalized edit-distance similarity in [0, 1].

    ``1 - levenshtein(a, b) / max(len(a), len(b))`` over the normalized
    strings. Empty input scores 0; identical input scores 1.
    """
    if not a or not b:
        return 0.0
    s1, s2 = normalize(a), normalize(b)
    if s1 == s2:
        return 1.0
    longer = max(len(s1), len(s2))
    if longer == 0:
        return 1.0
    return (longer - levenshtein(s1, s2)) / longer


class DuplicateDetector:
    """Decides whether content already exists and records new fingerprints."""

    def __init__(self, store: PipelineStore, settings: SettingsService) -> None:
        self._store = store
        self._settings = settings

    def is_duplicate(
        self,
        content: ScrapedContent,
        feed_id: str | None = None,
        entity_type: EntityType = EntityType.OPPORTUNITY,
    ) -> DuplicateCheckResult:
        """Check *content* against recorded fingerprints.

        Fails open: a store error is logged and reported as unique.
        """
        context: dict[str, Any] = {"url": content.url, "feed_id": feed_id}
        try:
            result = self._check(content, entity_type)
        except Exception:
            logger.error(
                "Duplicate check failed for %s, treating as unique",
                content.url,
                exc_info=True,
                extra={"context": context},
            )
            return DuplicateCheckResult()

        if result.is_duplicate:
            context.update(reason=str(result.reason), entity_id=result.matched_entity_id)
            logger.info(
                "Duplicate detected (%s) for %s", result.reason, content.url, extra={"context": context}
            )
        else:
            logger.info("Content is unique: %s", content.url, extra={"context": context})
        return result

    def _check(self, content: ScrapedContent, entity_type: EntityType) -> DuplicateCheckResult:
        existing_id = self._store.find_entity_by_source_url(entity_type, content.url)
        if existing_id is not None:
            return DuplicateCheckResult(
                is_duplicate=True,
                reason=DuplicateReason.EXACT_URL,
                similarity=1.0,
                matched_entity_id=existing_id,
            )

        exact_checks = (
            ("url_hash", fingerprint_hash(content.url), DuplicateReason.EXACT_URL),
            ("content_hash", fingerprint_hash(content.content), DuplicateReason.EXACT_CONTENT),
            ("title_hash", fingerprint_hash(content.title), DuplicateReason.EXACT_TITLE),
        )
        for field, value, reason in exact_checks:
            if not value:
                continue
            match = self._store.find_fingerprint(field, value)
            if match is not None:
                return DuplicateCheckResult(
                    is_duplicate=True,
                    reason=reason,
                    similarity=1.0,
                    matched_entity_id=match.entity_id,
                )

        return self._check_similarity(content.content, entity_type)

    def _check_similarity(self, text: str, entity_type: EntityType) -> DuplicateCheckResult:
        if not text.strip():
            return DuplicateCheckResult()

        threshold = self._settings.get_float("duplicates.similarity_threshold")
        lookback_days = self._settings.get_int("duplicates.lookback_days")
        limit = self._settings.get_int("duplicates.lookback_limit")
        max_chars = self._settings.get_int("duplicates.max_compare_chars")

        since = datetime.now(tz=UTC) - timedelta(days=lookback_days)
        candidate = normalize(text)[:max_chars]

        for fp in self._store.recent_fingerprints(since, limit=limit, entity_type=entity_type):
            existing = self._store.get_entity_content(fp.entity_type, fp.entity_id)
            if not existing:
                continue
            other = normalize(existing)[:max_chars]
            shorter, longer = sorted((len(candidate), len(other)))
            # Edit distance is at least the length difference.
            if longer and shorter / longer < threshold:
                continue
            score = similarity(candidate, other)
            if score >= threshold:
                return DuplicateCheckResult(
                    is_duplicate=True,
                    reason=DuplicateReason.SIMILAR_CONTENT,
                    similarity=round(score, 4),
                    matched_entity_id=fp.entity_id,
                )

        return DuplicateCheckResult()

    def record_content(
        self,
        content: ScrapedContent,
        entity_id: str,
        feed_id: str | None = None,
        entity_type: EntityType = EntityType.OPPORTUNITY,
    ) -> bool:
        """Store the fingerprint of a newly created entity.

        Returns False (after logging) if the write fails.
        """
        fingerprint = DuplicateFingerprint(
            entity_id=entity_id,
            entity_type=entity_type,
            feed_id=feed_id,
            content_hash=fingerprint_hash(content.content),
            title_hash=fingerprint_hash(content.title),
            url_hash=fingerprint_hash(content.url),
        )
        try:
            self._store.insert_fingerprint(fingerprint)
        except Exception:
            logger.error(
                "Failed to record fingerprint for %s",
                entity_id,
                exc_info=True,
                extra={"context": {"entity_id": entity_id, "feed_id": feed_id}},
            )
            return False
        return True

    def cleanup_old_records(self, days_to_keep: int = 90) -> int:
        """Expire fingerprints older than *days_to_keep* days."""
        cutoff = datetime.now(tz=UTC) - timedelta(days=days_to_keep)
        removed = self._store.delete_fingerprints_before(cutoff)
        logger.info("Removed %d fingerprints older than %d days", removed, days_to_keep)
        return removed

    def clear_feed(self, feed_id: str) -> int:
        """Forget a feed's fingerprints so its items can be processed again."""
        removed = self._store.delete_fingerprints_for_feed(feed_id)
        logger.info("Cleared %d fingerprints for feed %s", removed, feed_id)
        return removed

    def stats(self) -> dict[str, float]:
        """Fingerprint totals and the last day's detection rate."""
        since = datetime.now(tz=UTC) - timedelta(hours=24)
        logs = self._store.list_logs(since=since)
        detected = sum(1 for e in logs if e.message.startswith("Duplicate detected"))
        unique = sum(1 for e in logs if e.message.startswith("Content is unique"))
        checked = detected + unique
        return {
            "total_tracked": len(self._store.list_fingerprints()),
            "duplicates_detected_24h": detected,
            "unique_content_24h": unique,
            "detection_rate": (detected / checked) * 100 if checked else 0.0,
        }
