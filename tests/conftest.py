"""Shared fixtures for feedpress tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from feedpress.settings import SettingsService
from feedpress.storage import JsonPipelineStore


@pytest.fixture
def store(tmp_path: Path) -> JsonPipelineStore:
    return JsonPipelineStore(tmp_path / "store")


@pytest.fixture
def settings(store: JsonPipelineStore) -> SettingsService:
    return SettingsService(store)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep real credentials and overrides out of every test."""
    for key in (
        "OPENAI_API_KEY",
        "ANTHROPIC_API_KEY",
        "DEEPSEEK_API_KEY",
        "GEMINI_API_KEY",
        "FEEDPRESS_STORE_DIR",
        "FEEDPRESS_LOG_LEVEL",
        "FEEDPRESS_INTER_FEED_DELAY",
        "FEEDPRESS_IMAGE_DIR",
        "FEEDPRESS_IMAGE_BASE_URL",
        "FEEDPRESS_SLACK_WEBHOOK",
        "FEEDPRESS_NTFY_URL",
        "FEEDPRESS_NTFY_TOPIC",
    ):
        monkeypatch.delenv(key, raising=False)
