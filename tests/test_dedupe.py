"""Tests for duplicate detection."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from feedpress.dedupe import (
    DuplicateDetector,
    fingerprint_hash,
    levenshtein,
    normalize,
    similarity,
)
from feedpress.models import (
    ContentKind,
    DuplicateFingerprint,
    DuplicateReason,
    EntityType,
    Opportunity,
    ProcessingLogEntry,
    ScrapedContent,
)

BODY = (
    "Enter our summer photography contest for a chance to win a new camera. "
    "Submissions close on August 31 and winners are announced in September."
)


def _make_content(**overrides) -> ScrapedContent:
    defaults = {"title": "Summer Photo Contest", "url": "https://example.com/contest", "content": BODY}
    defaults.update(overrides)
    return ScrapedContent(**defaults)


def _insert_opportunity(store, content: str = BODY) -> Opportunity:
    opp = Opportunity(
        title="Existing",
        slug=f"existing-{len(store.list_opportunities())}",
        excerpt="x",
        content=content,
        opportunity_type=ContentKind.CONTEST,
    )
    store.insert_opportunity(opp)
    return opp


@pytest.fixture
def detector(store, settings) -> DuplicateDetector:
    return DuplicateDetector(store, settings)


class TestHashing:
    def test_normalize(self):
        assert normalize("  Hello\n\tWORLD  ") == "hello world"

    def test_hash_is_deterministic_under_normalization(self):
        assert fingerprint_hash("Hello  World") == fingerprint_hash(" hello world ")
        assert len(fingerprint_hash("x")) == 64

    def test_empty_hashes_to_empty(self):
        assert fingerprint_hash("") == ""
        assert fingerprint_hash("   ") == ""


class TestSimilarity:
    def test_levenshtein(self):
        assert levenshtein("kitten", "sitting") == 3
        assert levenshtein("", "abc") == 3
        assert levenshtein("same", "same") == 0

    def test_similarity_bounds(self):
        assert similarity("abc", "abc") == 1.0
        assert similarity("", "abc") == 0.0
        assert similarity("abcd", "abce") == pytest.approx(0.75)

    def test_similarity_normalizes(self):
        assert similarity("Hello World", "hello   world") == 1.0


class TestIsDuplicate:
    def test_unique_when_empty(self, detector):
        result = detector.is_duplicate(_make_content())
        assert result.is_duplicate is False
        assert result.reason is None

    def test_exact_url(self, detector, store):
        opp = _insert_opportunity(store, content="something else entirely")
        detector.record_content(_make_content(title="Other", content="different"), opp.id, "f1")

        result = detector.is_duplicate(_make_content())
        assert result.is_duplicate is True
        assert result.reason == DuplicateReason.EXACT_URL
        assert result.similarity == 1.0
        assert result.matched_entity_id == opp.id

    def test_exact_content_normalized(self, detector, store):
        opp = _insert_opportunity(store)
        detector.record_content(_make_content(url="https://other.example.com/a", title="Other"), opp.id)

        result = detector.is_duplicate(_make_content(content="  " + BODY.upper() + "  "))
        assert result.reason == DuplicateReason.EXACT_CONTENT

    def test_exact_title(self, detector, store):
        opp = _insert_opportunity(store, content="unrelated body text")
        detector.record_content(
            _make_content(url="https://other.example.com/a", content="unrelated body text"), opp.id
        )
        result = detector.is_duplicate(_make_content(content="A brand new body about something else."))
        assert result.reason == DuplicateReason.EXACT_TITLE

    def test_exact_url_beats_similar_content(self, detector, store):
        opp = _insert_opportunity(store)
        detector.record_content(_make_content(title="Other title", content=BODY + " extra"), opp.id)

        result = detector.is_duplicate(_make_content(title="New title", content=BODY + " more"))
        assert result.reason == DuplicateReason.EXACT_URL

    def test_similar_content(self, detector, store):
        opp = _insert_opportunity(store)
        detector.record_content(
            _make_content(url="https://other.example.com/a", title="Another"), opp.id
        )
        near_copy = BODY.replace("August 31", "August 30")
        result = detector.is_duplicate(
            _make_content(url="https://third.example.com/b", title="Third", content=near_copy)
        )
        assert result.is_duplicate is True
        assert result.reason == DuplicateReason.SIMILAR_CONTENT
        assert result.similarity >= 0.85

    def test_dissimilar_content_is_unique(self, detector, store):
        opp = _insert_opportunity(store)
        detector.record_content(_make_content(url="https://other.example.com/a", title="Another"), opp.id)
        result = detector.is_duplicate(
            _make_content(
                url="https://third.example.com/b",
                title="Third",
                content="A volunteer program at the local library needs weekend helpers.",
            )
        )
        assert result.is_duplicate is False

    def test_similarity_respects_threshold_setting(self, detector, store, settings):
        settings.set("duplicates.similarity_threshold", 0.999)
        opp = _insert_opportunity(store)
        detector.record_content(_make_content(url="https://other.example.com/a", title="Another"), opp.id)
        near_copy = BODY.replace("August 31", "August 30")
        result = detector.is_duplicate(
            _make_content(url="https://third.example.com/b", title="Third", content=near_copy)
        )
        assert result.is_duplicate is False

    def test_fuzzy_ignores_old_fingerprints(self, detector, store):
        opp = _insert_opportunity(store)
        store.insert_fingerprint(
            DuplicateFingerprint(
                entity_id=opp.id,
                entity_type=EntityType.OPPORTUNITY,
                created_at=datetime.now(tz=UTC) - timedelta(days=31),
            )
        )
        result = detector.is_duplicate(_make_content(url="https://third.example.com/b", title="Third"))
        assert result.is_duplicate is False

    def test_fuzzy_filtered_by_entity_type(self, detector, store):
        opp = _insert_opportunity(store)
        detector.record_content(
            _make_content(url="https://other.example.com/a", title="Another"), opp.id
        )
        near_copy = BODY.replace("August 31", "August 30")
        result = detector.is_duplicate(
            _make_content(url="https://third.example.com/b", title="Third", content=near_copy),
            entity_type=EntityType.POST,
        )
        assert result.is_duplicate is False

    def test_existing_entity_source_url(self, detector, store):
        opp = Opportunity(
            title="Existing",
            slug="existing-source",
            excerpt="x",
            content="Body scraped from the resolved page.",
            opportunity_type=ContentKind.CONTEST,
            source_url="https://example.com/contest",
        )
        store.insert_opportunity(opp)

        result = detector.is_duplicate(_make_content(title="Fresh", content="Fresh feed summary."))
        assert result.is_duplicate is True
        assert result.reason == DuplicateReason.EXACT_URL
        assert result.matched_entity_id == opp.id
        assert detector.is_duplicate(_make_content(), entity_type=EntityType.POST).is_duplicate is False

    @pytest.mark.parametrize(("limit", "expected"), [(1, False), (2, True)])
    def test_fuzzy_compares_only_most_recent(self, detector, store, settings, limit, expected):
        settings.set("duplicates.lookback_limit", limit)
        now = datetime.now(tz=UTC)
        older = _insert_opportunity(store)
        newer = _insert_opportunity(
            store, content="A volunteer program at the local library needs weekend helpers."
        )
        for opp, age in ((older, 2), (newer, 1)):
            store.insert_fingerprint(
                DuplicateFingerprint(
                    entity_id=opp.id,
                    entity_type=EntityType.OPPORTUNITY,
                    created_at=now - timedelta(days=age),
                )
            )

        near_copy = BODY.replace("August 31", "August 30")
        result = detector.is_duplicate(
            _make_content(url="https://third.example.com/b", title="Third", content=near_copy)
        )
        assert result.is_duplicate is expected

    def test_store_error_fails_open(self, settings):
        store = MagicMock()
        store.find_entity_by_source_url.return_value = None
        store.find_fingerprint.side_effect = RuntimeError("db down")
        result = DuplicateDetector(store, settings).is_duplicate(_make_content())
        assert result.is_duplicate is False


class TestRecordContent:
    def test_records_hashes(self, detector, store):
        assert detector.record_content(_make_content(), "e1", "f1", EntityType.POST) is True
        fp = store.list_fingerprints()[0]
        assert fp.entity_id == "e1"
        assert fp.entity_type == EntityType.POST
        assert fp.url_hash == fingerprint_hash("https://example.com/contest")
        assert fp.title_hash == fingerprint_hash("Summer Photo Contest")

    def test_write_failure_returns_false(self, settings):
        store = MagicMock()
        store.insert_fingerprint.side_effect = RuntimeError("db down")
        assert DuplicateDetector(store, settings).record_content(_make_content(), "e1") is False


class TestMaintenance:
    def test_cleanup_old_records(self, detector, store):
        now = datetime.now(tz=UTC)
        store.insert_fingerprint(
            DuplicateFingerprint(entity_id="old", entity_type=EntityType.POST, created_at=now - timedelta(days=120))
        )
        store.insert_fingerprint(DuplicateFingerprint(entity_id="new", entity_type=EntityType.POST))
        assert detector.cleanup_old_records(90) == 1
        assert [fp.entity_id for fp in store.list_fingerprints()] == ["new"]

    def test_clear_feed(self, detector, store):
        detector.record_content(_make_content(), "e1", "feed-a")
        detector.record_content(_make_content(), "e2", "feed-b")
        assert detector.clear_feed("feed-a") == 1

    def test_stats(self, detector, store):
        store.insert_log(ProcessingLogEntry(level="INFO", message="Duplicate detected (exact_url) for x"))
        store.insert_log(ProcessingLogEntry(level="INFO", message="Content is unique: y"))
        store.insert_log(ProcessingLogEntry(level="INFO", message="Content is unique: z"))
        detector.record_content(_make_content(), "e1")

        stats = detector.stats()
        assert stats["total_tracked"] == 1
        assert stats["duplicates_detected_24h"] == 1
        assert stats["unique_content_24h"] == 2
        assert stats["detection_rate"] == pytest.approx(100 / 3)
