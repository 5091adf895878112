"""Wire the pipeline components from a loaded config."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from feedpress.ai.service import AIOrchestrator
from feedpress.analytics import AnalyticsRecorder
from feedpress.config import FeedpressConfig
from feedpress.dedupe import DuplicateDetector
from feedpress.entities import EntityCreator
from feedpress.images import create_image_store
from feedpress.notifications import Notifier
from feedpress.processor import FeedProcessor
from feedpress.prompts.selector import PromptSelector
from feedpress.scraper import ContentScraper
from feedpress.settings import SettingsService
from feedpress.storage import JsonPipelineStore, PipelineStore

logger = logging.getLogger(__name__)


@dataclass
class Pipeline:
    """The assembled components sharing one store."""

    store: PipelineStore
    settings: SettingsService
    detector: DuplicateDetector
    scraper: ContentScraper
    prompts: PromptSelector
    orchestrator: AIOrchestrator
    entities: EntityCreator
    analytics: AnalyticsRecorder
    processor: FeedProcessor


def build_pipeline(config: FeedpressConfig, store: PipelineStore | None = None) -> Pipeline:
    if store is None:
        store = JsonPipelineStore(config.store_path)
    settings = SettingsService(store)
    detector = DuplicateDetector(store, settings)
    scraper = ContentScraper(settings)
    prompts = PromptSelector(store)
    orchestrator = AIOrchestrator(store)
    notifier = Notifier(config.notifications)
    entities = EntityCreator(store, notifier=notifier if notifier.is_configured else None)
    analytics = AnalyticsRecorder(store)

    processor = FeedProcessor(
        store,
        settings,
        detector=detector,
        scraper=scraper,
        prompts=prompts,
        orchestrator=orchestrator,
        entities=entities,
        image_store=create_image_store(config.images),
        analytics=analytics,
        inter_feed_delay=config.scheduler.inter_feed_delay,
    )
    logger.debug("Pipeline assembled with store at %s", config.store_path)
    return Pipeline(
        store=store,
        settings=settings,
        detector=detector,
        scraper=scraper,
        prompts=prompts,
        orchestrator=orchestrator,
        entities=entities,
        analytics=analytics,
        processor=processor,
    )
