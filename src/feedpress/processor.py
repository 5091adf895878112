"""Feed processing: due-feed scheduling and the per-item generation loop.

A run walks the active feeds in priority order, skipping those whose
interval has not yet elapsed. Each feed is read through its source
reader; every candidate item is checked for duplicates, scraped, sent
through the AI orchestrator, gated on confidence and stored as an
opportunity or post.

Item failures are counted and never stop the feed. Feed failures are
recorded on the feed and in the result and never stop the run.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from feedpress.ai.service import AIOrchestrator, ProviderOverride
from feedpress.analytics import AnalyticsRecorder
from feedpress.dedupe import DuplicateDetector
from feedpress.entities import EntityCreator, make_excerpt
from feedpress.errors import FeedNotFoundError, best_effort
from feedpress.images import ImageStore, PassthroughImageStore, resolve_featured_image
from feedpress.models import (
    AcceptedContent,
    CandidateItem,
    Feed,
    GeneratedContent,
    ProcessingResult,
    RejectedContent,
    ScrapedContent,
    SourceKind,
)
from feedpress.prompts.selector import PromptSelector
from feedpress.scraper import ContentScraper
from feedpress.settings import SettingsService
from feedpress.sources import SourceReader, create_source
from feedpress.storage.base import PipelineStore

logger = logging.getLogger(__name__)

DUE_TOLERANCE = timedelta(seconds=60)
DEFAULT_INTER_FEED_DELAY = 2.0
DEFAULT_QUALITY_THRESHOLD = 0.7

SourceFactory = Callable[..., SourceReader]


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def is_due(feed: Feed, now: datetime) -> bool:
    """True when *feed* has never run or its interval (less a minute) has passed."""
    if feed.last_fetched is None:
        return True
    last = feed.last_fetched
    if last.tzinfo is None:
        last = last.replace(tzinfo=UTC)
    return now - last >= feed.cron_interval.period - DUE_TOLERANCE


class FeedProcessor:
    """Runs feeds through the ingestion and generation pipeline.

    Every collaborator is injected; :func:`feedpress.pipeline.build_pipeline`
    wires the production set from a config.
    """

    def __init__(
        self,
        store: PipelineStore,
        settings: SettingsService,
        *,
        detector: DuplicateDetector,
        scraper: ContentScraper,
        prompts: PromptSelector,
        orchestrator: AIOrchestrator,
        entities: EntityCreator,
        image_store: ImageStore | None = None,
        analytics: AnalyticsRecorder | None = None,
        source_factory: SourceFactory = create_source,
        inter_feed_delay: float = DEFAULT_INTER_FEED_DELAY,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._settings = settings
        self._detector = detector
        self._scraper = scraper
        self._prompts = prompts
        self._orchestrator = orchestrator
        self._entities = entities
        self._image_store = image_store or PassthroughImageStore()
        self._analytics = analytics
        self._source_factory = source_factory
        self._inter_feed_delay = inter_feed_delay
        self._sleep = sleep
        self._clock = clock

    # ── Runs ─────────────────────────────────────────────────────

    def due_feeds(self) -> list[Feed]:
        """Active feeds whose interval has elapsed, highest priority first."""
        now = self._clock()
        return [f for f in self._store.list_feeds(active_only=True) if is_due(f, now)]

    def process_all_feeds(self) -> list[ProcessingResult]:
        """Process every due feed sequentially."""
        start = time.monotonic()
        active = self._store.list_feeds(active_only=True)
        if not active:
            logger.info("No active feeds to process")
            return []

        now = self._clock()
        due = [f for f in active if is_due(f, now)]
        logger.info("Found %d active feeds, %d due for processing", len(active), len(due))

        results: list[ProcessingResult] = []
        for index, feed in enumerate(due):
            logger.info(
                "Processing feed: %s (interval: %s, last: %s)",
                feed.name,
                feed.cron_interval,
                feed.last_fetched.isoformat() if feed.last_fetched else "never",
            )
            results.append(self.process_feed(feed.id))
            if index < len(due) - 1 and self._inter_feed_delay > 0:
                self._sleep(self._inter_feed_delay)

        if due:
            logger.info(
                "Processing run completed: %d/%d feeds succeeded",
                sum(1 for r in results if r.success),
                len(results),
                extra={
                    "context": {
                        "active_feeds": len(active),
                        "feeds_processed": len(due),
                        "opportunities_created": sum(r.opportunities_created for r in results),
                        "posts_created": sum(r.posts_created for r in results),
                        "total_time_ms": int((time.monotonic() - start) * 1000),
                    }
                },
            )
        return results

    def process_feed(self, feed_id: str) -> ProcessingResult:
        """Process one feed regardless of its schedule."""
        start = time.monotonic()
        result = ProcessingResult(feed_id=feed_id)
        feed: Feed | None = None

        try:
            feed = self._store.get_feed(feed_id)
            if feed is None:
                raise FeedNotFoundError(feed_id)
            result.feed_name = feed.name
            result.content_kind = feed.content_kind
            self._run_feed(feed, result)
        except Exception as exc:
            result.success = False
            result.error = str(exc)
            logger.error(
                "Feed processing failed for %s: %s",
                feed_id,
                exc,
                exc_info=not isinstance(exc, FeedNotFoundError),
                extra={"context": {"feed_id": feed_id}},
            )
            if feed is not None:
                with best_effort("record feed error", feed_id=feed_id):
                    self._mark_failed(feed_id, str(exc))

        result.execution_time_ms = int((time.monotonic() - start) * 1000)
        if self._analytics is not None:
            with best_effort("record analytics", feed_id=feed_id):
                self._analytics.record(result)

        if result.success:
            logger.info(
                "Feed %s processed: %d items, %d created, %d duplicates, %d rejected, %d errors",
                result.feed_name,
                result.items_processed,
                result.entities_created,
                result.duplicates_skipped,
                result.ai_rejections,
                result.errors,
                extra={"context": result.model_dump(mode="json")},
            )
        return result

    # ── Per-feed work ────────────────────────────────────────────

    def _run_feed(self, feed: Feed, result: ProcessingResult) -> None:
        max_items = feed.max_items_per_run or self._settings.get_int("general.max_posts_per_run")
        reader = self._source_factory(feed.source_kind, max_items=max_items)
        batch = reader.read(feed)

        if batch.exhausted:
            logger.info("Feed %s has no remaining URLs", feed.name)
        elif not batch.items:
            logger.warning("No items found in feed %s", feed.name)

        threshold = self._quality_threshold(feed)
        auto_publish = self._auto_publish(feed)
        override = ProviderOverride.from_feed(feed)

        for item in batch.items:
            result.items_processed += 1
            try:
                self._process_item(feed, item, result, threshold, auto_publish, override)
            except Exception:
                result.errors += 1
                logger.error(
                    "Error processing item %s",
                    item.link,
                    exc_info=True,
                    extra={"context": {"feed_id": feed.id, "item_url": item.link}},
                )

        self._update_feed(feed.id, result, batch.next_offset)

    def _process_item(
        self,
        feed: Feed,
        item: CandidateItem,
        result: ProcessingResult,
        threshold: float,
        auto_publish: bool,
        override: ProviderOverride | None,
    ) -> None:
        context: dict[str, Any] = {"feed_id": feed.id, "item_url": item.link}
        if not item.title or not item.link:
            logger.warning("Skipping invalid feed item", extra={"context": context})
            return

        preliminary = ScrapedContent(title=item.title, url=item.link, content=item.raw_content)

        if not feed.allow_republishing:
            check = self._detector.is_duplicate(preliminary, feed.id, feed.entity_type)
            if check.is_duplicate:
                result.duplicates_skipped += 1
                logger.debug(
                    "Skipping duplicate item %s (%s)", item.link, check.reason, extra={"context": context}
                )
                return

        scraped = preliminary
        if feed.enable_scraping:
            fetched = self._scraper.scrape_url(item.link, feed.id)
            if fetched is not None:
                scraped = fetched
            else:
                logger.warning(
                    "Failed to scrape content, using feed content for %s",
                    item.link,
                    extra={"context": context},
                )

        generated = self._generate(feed, scraped, override)
        if generated is None:
            if feed.enable_ai_processing:
                result.errors += 1
                logger.error("AI generation failed for %s", item.link, extra={"context": context})
            return

        if isinstance(generated, RejectedContent):
            result.ai_rejections += 1
            logger.info(
                "Content rejected by AI: %s",
                generated.reason,
                extra={"context": {**context, "title": scraped.title, "reason": generated.reason}},
            )
            return

        if generated.confidence_score < threshold:
            result.ai_rejections += 1
            logger.info(
                "Content rejected - quality score %.0f%% below threshold %.0f%%",
                generated.confidence_score * 100,
                threshold * 100,
                extra={
                    "context": {
                        **context,
                        "title": generated.title,
                        "confidence_score": generated.confidence_score,
                        "threshold": threshold,
                    }
                },
            )
            return

        entity_id = self._create_entity(feed, item, scraped, generated, auto_publish)
        if entity_id is None:
            result.errors += 1
            return

        if feed.content_kind.is_opportunity:
            result.opportunities_created += 1
        else:
            result.posts_created += 1

        # The pre-scrape check sees the feed link, not the resolved one.
        recorded = scraped.model_copy(update={"url": item.link})
        with best_effort("record fingerprint", feed_id=feed.id, entity_id=entity_id):
            self._detector.record_content(recorded, entity_id, feed.id, feed.entity_type)

    def _generate(
        self,
        feed: Feed,
        scraped: ScrapedContent,
        override: ProviderOverride | None,
    ) -> GeneratedContent | None:
        """Run the AI step, or build pass-through content when AI is off.

        Returns None for an AI failure, and also for an opportunity feed
        with AI disabled (opportunities cannot be created without it).
        """
        if not feed.enable_ai_processing:
            if feed.content_kind.is_opportunity:
                logger.debug("AI processing disabled for opportunity feed %s, skipping", feed.id)
                return None
            return AcceptedContent(
                title=scraped.title,
                excerpt=make_excerpt(scraped.content),
                content=scraped.content,
                confidence_score=1.0,
            )

        prompt = self._prompts.get_prompt(feed.content_kind, scraped)
        return self._orchestrator.generate(scraped, feed.content_kind, prompt, override)

    def _create_entity(
        self,
        feed: Feed,
        item: CandidateItem,
        scraped: ScrapedContent,
        generated: AcceptedContent,
        auto_publish: bool,
    ) -> str | None:
        if feed.content_kind.is_opportunity:
            return self._entities.create_opportunity(
                generated,
                feed.content_kind,
                item.link,
                feed.id,
                auto_publish,
                featured_image_url=feed.fallback_featured_image_url,
            )

        featured = resolve_featured_image(
            self._image_store,
            [scraped.image, item.image_url],
            feed.fallback_featured_image_url,
        )
        return self._entities.create_post(
            generated,
            item.link,
            feed.id,
            auto_publish,
            featured_image_url=featured,
            category=feed.blog_category,
        )

    def _quality_threshold(self, feed: Feed) -> float:
        if feed.quality_threshold is not None:
            return feed.quality_threshold
        value = self._settings.get("general.quality_threshold")
        return float(value) if value is not None else DEFAULT_QUALITY_THRESHOLD

    def _auto_publish(self, feed: Feed) -> bool:
        if feed.auto_publish is not None:
            return feed.auto_publish
        return self._settings.get_bool("general.auto_publish")

    # ── Feed bookkeeping ─────────────────────────────────────────

    def _update_feed(self, feed_id: str, result: ProcessingResult, next_offset: int | None) -> None:
        feed = self._store.get_feed(feed_id)
        if feed is None:
            raise FeedNotFoundError(feed_id)
        feed.total_processed += result.items_processed
        feed.total_published += result.entities_created
        feed.last_fetched = self._clock()
        feed.last_error = ""
        if feed.source_kind == SourceKind.URL_LIST and next_offset is not None:
            feed.offset = max(feed.offset, next_offset)
        self._store.save_feed(feed)

    def _mark_failed(self, feed_id: str, error: str) -> None:
        feed = self._store.get_feed(feed_id)
        if feed is None:
            return
        feed.last_error = error
        self._store.save_feed(feed)

    # ── Reporting ────────────────────────────────────────────────

    def stats(self) -> dict[str, int]:
        """Feed totals plus errors logged in the last 24 hours."""
        feeds = self._store.list_feeds()
        since = self._clock() - timedelta(hours=24)
        errors = self._store.list_logs(since=since, level="ERROR")
        return {
            "total_feeds": len(feeds),
            "active_feeds": sum(1 for f in feeds if f.is_active),
            "failing_feeds": sum(1 for f in feeds if f.last_error),
            "total_items_processed": sum(f.total_processed for f in feeds),
            "total_entities_published": sum(f.total_published for f in feeds),
            "errors_last_24h": len(errors),
        }
