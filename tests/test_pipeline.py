"""Tests for pipeline assembly."""

from __future__ import annotations

from pathlib import Path

from feedpress.config import FeedpressConfig, ImagesSectionConfig, NotificationConfig, StoreSectionConfig
from feedpress.images import LocalImageStore, PassthroughImageStore
from feedpress.pipeline import build_pipeline
from feedpress.storage import JsonPipelineStore


def _make_config(tmp_path: Path, **overrides) -> FeedpressConfig:
    defaults = {"store": StoreSectionConfig(directory=str(tmp_path / "store"))}
    defaults.update(overrides)
    return FeedpressConfig(**defaults)


class TestBuildPipeline:
    def test_components_share_store(self, tmp_path: Path):
        pipeline = build_pipeline(_make_config(tmp_path))
        assert isinstance(pipeline.store, JsonPipelineStore)
        assert pipeline.settings.get("general.max_posts_per_run") == 10
        assert pipeline.processor.stats()["total_feeds"] == 0

    def test_uses_given_store(self, tmp_path: Path, store):
        pipeline = build_pipeline(_make_config(tmp_path), store=store)
        assert pipeline.store is store

    def test_image_store_from_config(self, tmp_path: Path):
        plain = build_pipeline(_make_config(tmp_path))
        assert isinstance(plain.processor._image_store, PassthroughImageStore)

        local = build_pipeline(
            _make_config(tmp_path, images=ImagesSectionConfig(directory=str(tmp_path / "img")))
        )
        assert isinstance(local.processor._image_store, LocalImageStore)

    def test_notifier_only_when_configured(self, tmp_path: Path):
        assert build_pipeline(_make_config(tmp_path)).entities._notifier is None
        configured = build_pipeline(
            _make_config(tmp_path, notifications=NotificationConfig(ntfy_url="https://ntfy.sh"))
        )
        assert configured.entities._notifier is not None
