"""Tests for the feed processor (store, dedupe and entities real; network mocked)."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest

from feedpress.dedupe import DuplicateDetector, fingerprint_hash
from feedpress.entities import EntityCreator
from feedpress.errors import SourceError, StoreError
from feedpress.models import (
    AcceptedContent,
    CandidateItem,
    ContentKind,
    CronInterval,
    EntityStatus,
    Feed,
    FeedStatus,
    RejectedContent,
    ScrapedContent,
    SourceKind,
)
from feedpress.processor import FeedProcessor, is_due
from feedpress.prompts import PromptSelector
from feedpress.scraper import ContentScraper
from feedpress.sources import SourceBatch, create_source

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=UTC)

STORIES = [
    "Gardeners across the valley report a record tomato harvest this summer.",
    "The city council approved a new cycling lane along the river promenade.",
    "A local bakery won the regional award for its sourdough rye loaf.",
]

ARTICLE_PAGE = (
    "<html><head><title>Win a Trip to Lisbon</title></head><body><article><p>"
    + "Enter the travel contest for a week in Lisbon with flights and hotel included. " * 3
    + "</p></article></body></html>"
)


def _make_item(index: int = 0, **overrides) -> CandidateItem:
    defaults = {
        "link": f"https://news.example.com/story-{index}",
        "title": f"Story {index}",
        "raw_content": STORIES[index % len(STORIES)],
    }
    defaults.update(overrides)
    return CandidateItem(**defaults)


def _make_feed(store, **overrides) -> Feed:
    defaults = {"name": "News", "url": "https://news.example.com/rss", "content_kind": ContentKind.BLOG_POST}
    defaults.update(overrides)
    feed = Feed(**defaults)
    store.save_feed(feed)
    return feed


def _echo_generation(confidence: float = 0.9):
    def generate(scraped, kind, prompt, override=None):
        return AcceptedContent(
            title=f"Rewritten: {scraped.title}",
            excerpt="Short summary.",
            content=f"<p>{scraped.content or scraped.url}</p>",
            confidence_score=confidence,
        )

    return generate


class _StaticSource:
    def __init__(self, items=None, error=None):
        self.items = items or []
        self.error = error
        self.max_items: int | None = None

    def __call__(self, kind, *, max_items):
        self.max_items = max_items
        reader = MagicMock()
        if self.error is not None:
            reader.read.side_effect = self.error
        else:
            reader.read.return_value = SourceBatch(items=self.items[:max_items])
        return reader


@pytest.fixture
def scraper():
    scraper = MagicMock()
    scraper.scrape_url.return_value = None
    return scraper


@pytest.fixture
def orchestrator():
    orchestrator = MagicMock()
    orchestrator.generate.side_effect = _echo_generation()
    return orchestrator


@pytest.fixture
def make_processor(store, settings, scraper, orchestrator):
    def factory(source_factory=None, **overrides):
        kwargs = {
            "detector": DuplicateDetector(store, settings),
            "scraper": scraper,
            "prompts": PromptSelector(store),
            "orchestrator": orchestrator,
            "entities": EntityCreator(store),
            "source_factory": source_factory or create_source,
            "inter_feed_delay": 0,
            "sleep": MagicMock(),
            "clock": lambda: NOW,
        }
        kwargs.update(overrides)
        return FeedProcessor(store, settings, **kwargs)

    return factory


class TestIsDue:
    def test_never_fetched(self):
        assert is_due(Feed(name="x"), NOW) is True

    def test_within_tolerance(self):
        feed = Feed(name="x", cron_interval=CronInterval.HOURLY, last_fetched=NOW - timedelta(minutes=59, seconds=30))
        assert is_due(feed, NOW) is True

    def test_not_yet_due(self):
        feed = Feed(name="x", cron_interval=CronInterval.HOURLY, last_fetched=NOW - timedelta(minutes=30))
        assert is_due(feed, NOW) is False

    def test_naive_timestamp_treated_as_utc(self):
        feed = Feed(name="x", cron_interval=CronInterval.DAILY, last_fetched=datetime(2026, 4, 30, 12, 0))
        assert is_due(feed, NOW) is True


class TestProcessFeed:
    def test_creates_post_for_unique_item(self, store, make_processor, orchestrator):
        feed = _make_feed(store, auto_publish=True, blog_category="local")
        source = _StaticSource([_make_item(0, image_url="https://img.example.com/a.jpg")])

        result = make_processor(source).process_feed(feed.id)

        assert result.success is True
        assert result.items_processed == 1
        assert result.posts_created == 1
        post = store.list_posts()[0]
        assert post.title == "Rewritten: Story 0"
        assert post.status == EntityStatus.PUBLISHED
        assert post.category == "local"
        assert post.featured_image_url == "https://img.example.com/a.jpg"
        assert len(store.list_fingerprints()) == 1
        assert orchestrator.generate.call_args.args[1] == ContentKind.BLOG_POST

        updated = store.get_feed(feed.id)
        assert updated.last_fetched == NOW
        assert updated.total_processed == 1
        assert updated.total_published == 1

    def test_duplicate_skipped_on_second_run(self, store, make_processor, orchestrator):
        feed = _make_feed(store)
        source = _StaticSource([_make_item(0), _make_item(1)])
        processor = make_processor(source)

        first = processor.process_feed(feed.id)
        second = processor.process_feed(feed.id)

        assert first.posts_created == 2
        assert second.items_processed == 2
        assert second.duplicates_skipped == 2
        assert second.posts_created == 0
        assert orchestrator.generate.call_count == 2

    def test_wrapped_link_duplicate_skipped_with_real_scraper(
        self, store, settings, make_processor, orchestrator
    ):
        wrapped = "https://www.google.com/url?rct=j&sa=t&url=https://contests.example.com/win-a-trip"
        feed = _make_feed(store, content_kind=ContentKind.CONTEST, enable_scraping=True)
        processor = make_processor(
            _StaticSource([_make_item(0, link=wrapped, title="Win a trip")]),
            scraper=ContentScraper(settings),
        )

        with patch("feedpress.scraper._fetch_html", return_value=(ARTICLE_PAGE, "utf-8")) as fetch:
            first = processor.process_feed(feed.id)
            second = processor.process_feed(feed.id)

        assert fetch.call_args.args[0] == "https://contests.example.com/win-a-trip"
        assert first.opportunities_created == 1
        assert second.duplicates_skipped == 1
        assert second.opportunities_created == 0
        assert len(store.list_opportunities()) == 1
        assert store.list_opportunities()[0].source_url == wrapped
        assert store.list_fingerprints()[0].url_hash == fingerprint_hash(wrapped)
        assert orchestrator.generate.call_count == 1

    def test_fingerprint_store_failure_still_counts_entity(self, store, make_processor, monkeypatch):
        feed = _make_feed(store)
        monkeypatch.setattr(store, "insert_fingerprint", MagicMock(side_effect=StoreError("disk full")))

        result = make_processor(_StaticSource([_make_item(0), _make_item(1)])).process_feed(feed.id)

        assert result.success is True
        assert result.posts_created == 2
        assert result.errors == 0
        assert len(store.list_posts()) == 2
        assert store.list_fingerprints() == []

    def test_fingerprint_recording_exception_does_not_stop_feed(self, store, settings, make_processor):
        feed = _make_feed(store)
        detector = DuplicateDetector(store, settings)
        detector.record_content = MagicMock(side_effect=RuntimeError("boom"))

        result = make_processor(_StaticSource([_make_item(0), _make_item(1)]), detector=detector).process_feed(
            feed.id
        )

        assert result.success is True
        assert result.posts_created == 2
        assert result.errors == 0
        assert detector.record_content.call_count == 2


    def test_allow_republishing_skips_dedupe(self, store, make_processor):
        feed = _make_feed(store, allow_republishing=True)
        processor = make_processor(_StaticSource([_make_item(0)]))
        processor.process_feed(feed.id)
        result = processor.process_feed(feed.id)
        assert result.duplicates_skipped == 0
        assert result.posts_created == 1

    def test_ai_rejection(self, store, make_processor, orchestrator):
        feed = _make_feed(store, content_kind=ContentKind.CONTEST)
        orchestrator.generate.side_effect = None
        orchestrator.generate.return_value = RejectedContent(reason="INVALID CONTENT: expired")

        result = make_processor(_StaticSource([_make_item(0)])).process_feed(feed.id)

        assert result.ai_rejections == 1
        assert result.opportunities_created == 0
        assert store.list_opportunities() == []
        assert store.list_fingerprints() == []

    @pytest.mark.parametrize(("confidence", "created"), [(0.70, 1), (0.69, 0)])
    def test_quality_gate(self, store, make_processor, orchestrator, confidence, created):
        feed = _make_feed(store, content_kind=ContentKind.GIVEAWAY)
        orchestrator.generate.side_effect = _echo_generation(confidence)

        result = make_processor(_StaticSource([_make_item(0)])).process_feed(feed.id)

        assert result.opportunities_created == created
        assert result.ai_rejections == 1 - created

    def test_feed_threshold_zero_accepts_everything(self, store, make_processor, orchestrator):
        feed = _make_feed(store, quality_threshold=0.0)
        orchestrator.generate.side_effect = _echo_generation(0.0)
        result = make_processor(_StaticSource([_make_item(0)])).process_feed(feed.id)
        assert result.posts_created == 1

    def test_global_threshold_setting(self, store, settings, make_processor, orchestrator):
        settings.set("general.quality_threshold", 0.95)
        feed = _make_feed(store)
        result = make_processor(_StaticSource([_make_item(0)])).process_feed(feed.id)
        assert result.ai_rejections == 1

    def test_ai_failure_counts_error(self, store, make_processor, orchestrator):
        feed = _make_feed(store)
        orchestrator.generate.side_effect = None
        orchestrator.generate.return_value = None
        result = make_processor(_StaticSource([_make_item(0)])).process_feed(feed.id)
        assert result.success is True
        assert result.errors == 1

    def test_item_exception_does_not_stop_feed(self, store, make_processor, orchestrator):
        feed = _make_feed(store)
        echo = _echo_generation()

        def generate(scraped, kind, prompt, override=None):
            if scraped.title == "Story 0":
                raise RuntimeError("boom")
            return echo(scraped, kind, prompt, override)

        orchestrator.generate.side_effect = generate

        result = make_processor(_StaticSource([_make_item(0), _make_item(1)])).process_feed(feed.id)

        assert result.errors == 1
        assert result.posts_created == 1

    def test_invalid_item_skipped(self, store, make_processor, orchestrator):
        feed = _make_feed(store)
        result = make_processor(_StaticSource([_make_item(0, title="")])).process_feed(feed.id)
        assert result.items_processed == 1
        assert result.posts_created == 0
        orchestrator.generate.assert_not_called()

    def test_scraped_content_used(self, store, make_processor, scraper, orchestrator):
        feed = _make_feed(store)
        scraper.scrape_url.return_value = ScrapedContent(
            title="Full Title",
            url="https://news.example.com/story-0",
            content="Full article body from the page.",
            image="https://img.example.com/og.jpg",
        )
        make_processor(_StaticSource([_make_item(0)])).process_feed(feed.id)

        scraped = orchestrator.generate.call_args.args[0]
        assert scraped.content == "Full article body from the page."
        assert store.list_posts()[0].featured_image_url == "https://img.example.com/og.jpg"

    def test_scraping_disabled(self, store, make_processor, scraper):
        feed = _make_feed(store, enable_scraping=False)
        make_processor(_StaticSource([_make_item(0)])).process_feed(feed.id)
        scraper.scrape_url.assert_not_called()

    def test_pass_through_without_ai(self, store, make_processor, orchestrator):
        feed = _make_feed(store, enable_ai_processing=False)
        result = make_processor(_StaticSource([_make_item(0)])).process_feed(feed.id)

        assert result.posts_created == 1
        orchestrator.generate.assert_not_called()
        post = store.list_posts()[0]
        assert post.title == "Story 0"
        assert post.content == STORIES[0]

    def test_opportunity_without_ai_skipped(self, store, make_processor, orchestrator):
        feed = _make_feed(store, content_kind=ContentKind.SCHOLARSHIP, enable_ai_processing=False)
        result = make_processor(_StaticSource([_make_item(0)])).process_feed(feed.id)

        assert result.opportunities_created == 0
        assert result.errors == 0
        orchestrator.generate.assert_not_called()

    def test_opportunity_uses_fallback_image(self, store, make_processor):
        feed = _make_feed(
            store,
            content_kind=ContentKind.CONTEST,
            fallback_featured_image_url="https://img.example.com/default.png",
        )
        make_processor(_StaticSource([_make_item(0, image_url="https://img.example.com/a.jpg")])).process_feed(
            feed.id
        )
        assert store.list_opportunities()[0].featured_image_url == "https://img.example.com/default.png"

    def test_max_items(self, store, settings, make_processor):
        settings.set("general.max_posts_per_run", 2)
        source = _StaticSource([_make_item(i) for i in range(3)])
        feed = _make_feed(store)
        assert make_processor(source).process_feed(feed.id).items_processed == 2

        other = _make_feed(store, name="Other", max_items_per_run=1)
        make_processor(source).process_feed(other.id)
        assert source.max_items == 1

    def test_unknown_feed(self, make_processor):
        result = make_processor(_StaticSource()).process_feed("missing")
        assert result.success is False
        assert "Feed not found" in result.error

    def test_source_error_recorded(self, store, make_processor):
        feed = _make_feed(store)
        result = make_processor(_StaticSource(error=SourceError("bad XML"))).process_feed(feed.id)

        assert result.success is False
        assert result.error == "bad XML"
        updated = store.get_feed(feed.id)
        assert updated.last_error == "bad XML"
        assert updated.last_fetched is None

    def test_success_clears_last_error(self, store, make_processor):
        feed = _make_feed(store, last_error="old failure")
        make_processor(_StaticSource()).process_feed(feed.id)
        assert store.get_feed(feed.id).last_error == ""

    def test_analytics_recorded(self, store, make_processor):
        analytics = MagicMock()
        feed = _make_feed(store)
        result = make_processor(_StaticSource([_make_item(0)]), analytics=analytics).process_feed(feed.id)
        analytics.record.assert_called_once_with(result)


class TestURLListFeeds:
    def _url_feed(self, store, count: int, **overrides) -> Feed:
        urls = "\n".join(f"https://site.example.com/page-{i}" for i in range(count))
        return _make_feed(
            store,
            source_kind=SourceKind.URL_LIST,
            url="",
            url_list=urls,
            max_items_per_run=2,
            **overrides,
        )

    def test_offset_advances_until_exhausted(self, store, make_processor):
        feed = self._url_feed(store, 5)
        processor = make_processor()

        offsets = []
        for _ in range(3):
            result = processor.process_feed(feed.id)
            assert result.success is True
            offsets.append(store.get_feed(feed.id).offset)

        assert offsets == [2, 4, 5]
        assert len(store.list_posts()) == 5

        exhausted = processor.process_feed(feed.id)
        assert exhausted.success is True
        assert exhausted.items_processed == 0
        updated = store.get_feed(feed.id)
        assert updated.offset == 5
        assert updated.last_fetched == NOW

    def test_offset_advances_past_failures(self, store, make_processor, orchestrator):
        feed = self._url_feed(store, 3)
        orchestrator.generate.side_effect = None
        orchestrator.generate.return_value = None

        make_processor().process_feed(feed.id)

        assert store.get_feed(feed.id).offset == 2


class TestProcessAllFeeds:
    def test_no_active_feeds(self, store, make_processor):
        _make_feed(store, status=FeedStatus.INACTIVE)
        assert make_processor(_StaticSource()).process_all_feeds() == []

    def test_due_feeds_in_priority_order(self, store, make_processor):
        low = _make_feed(store, name="Low", priority=1)
        high = _make_feed(store, name="High", priority=5)
        _make_feed(store, name="Fresh", priority=9, last_fetched=NOW - timedelta(minutes=5))
        sleep = MagicMock()

        results = make_processor(_StaticSource(), inter_feed_delay=2.0, sleep=sleep).process_all_feeds()

        assert [r.feed_id for r in results] == [high.id, low.id]
        sleep.assert_called_once_with(2.0)

    def test_failing_feed_does_not_stop_run(self, store, make_processor):
        _make_feed(store, name="A", priority=2)
        _make_feed(store, name="B", priority=1)
        source = MagicMock()
        source.return_value.read.side_effect = [SourceError("down"), SourceBatch()]

        results = make_processor(source).process_all_feeds()

        assert [r.success for r in results] == [False, True]

    def test_failed_feed_stays_active_and_runs_again(self, store, make_processor):
        feed = _make_feed(store)
        source = MagicMock()
        source.return_value.read.side_effect = [SourceError("down"), SourceBatch(items=[_make_item(0)])]
        processor = make_processor(source)

        failed = processor.process_feed(feed.id)
        assert failed.success is False
        stored = store.get_feed(feed.id)
        assert stored.status == FeedStatus.ACTIVE
        assert stored.last_error == "down"

        results = processor.process_all_feeds()
        assert [r.success for r in results] == [True]
        assert store.get_feed(feed.id).last_error == ""


class TestStats:
    def test_stats(self, store, make_processor):
        _make_feed(store, total_processed=4, total_published=2)
        _make_feed(store, status=FeedStatus.INACTIVE, total_processed=1, last_error="timeout")

        stats = make_processor(_StaticSource()).stats()

        assert stats["total_feeds"] == 2
        assert stats["active_feeds"] == 1
        assert stats["failing_feeds"] == 1
        assert stats["total_items_processed"] == 5
        assert stats["total_entities_published"] == 2
        assert stats["errors_last_24h"] == 0
