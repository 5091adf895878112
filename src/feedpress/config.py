"""Unified configuration loaded from .feedpress.toml, env vars, and CLI flags.

Loading order: defaults → TOML file → env vars → CLI flags.

Runtime tunables the operator changes while the pipeline is live
(thresholds, timeouts, content bounds) are not configured here; they
live in the settings store (see ``feedpress.settings``).
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".feedpress.toml"
CONFIG_SEARCH_PATHS = [
    Path("."),
]
GLOBAL_CONFIG_PATH = Path.home() / ".config" / "feedpress" / "config.toml"


class StoreSectionConfig(BaseModel):
    """[store] section."""

    directory: str = "./.feedpress"


class SchedulerSectionConfig(BaseModel):
    """[scheduler] section."""

    inter_feed_delay: float = 2.0


class LoggingSectionConfig(BaseModel):
    """[logging] section."""

    level: str = "INFO"
    persist: bool = True


class ImagesSectionConfig(BaseModel):
    """[images] section."""

    directory: str = ""
    base_url: str = ""
    timeout: int = 15

    @property
    def is_configured(self) -> bool:
        return bool(self.directory)


class NotificationConfig(BaseModel):
    """[notifications] section."""

    slack_webhook: str = ""
    ntfy_url: str = ""
    ntfy_topic: str = "feedpress"
    enabled: bool = True

    @property
    def is_configured(self) -> bool:
        return self.enabled and bool(self.slack_webhook or self.ntfy_url)


class FeedpressConfig(BaseModel):
    """Top-level configuration model for the feedpress pipeline."""

    store: StoreSectionConfig = Field(default_factory=StoreSectionConfig)
    scheduler: SchedulerSectionConfig = Field(default_factory=SchedulerSectionConfig)
    logging: LoggingSectionConfig = Field(default_factory=LoggingSectionConfig)
    images: ImagesSectionConfig = Field(default_factory=ImagesSectionConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)

    @property
    def store_path(self) -> Path:
        return Path(self.store.directory).expanduser()


def load_config(path: str | Path | None = None) -> FeedpressConfig:
    """Load configuration from a TOML file.

    Search order:
    1. Explicit path (if provided)
    2. .feedpress.toml in CWD
    3. ~/.config/feedpress/config.toml

    Then overlay environment variables.

    Args:
        path: Explicit path to a TOML file.

    Returns:
        Merged FeedpressConfig.
    """
    data: dict[str, object] = {}

    if path is not None:
        toml_path = Path(path)
        if toml_path.exists():
            data = _load_toml(toml_path)
        else:
            logger.warning("Config file not found: %s", toml_path)
    else:
        for search_dir in CONFIG_SEARCH_PATHS:
            candidate = search_dir / CONFIG_FILENAME
            if candidate.exists():
                data = _load_toml(candidate)
                logger.info("Loaded config from %s", candidate)
                break
        if not data and GLOBAL_CONFIG_PATH.exists():
            data = _load_toml(GLOBAL_CONFIG_PATH)
            logger.info("Loaded config from %s", GLOBAL_CONFIG_PATH)

    config = FeedpressConfig.model_validate(data) if data else FeedpressConfig()

    return _apply_env_vars(config)


def merge_cli_overrides(config: FeedpressConfig, **cli_kwargs: object) -> FeedpressConfig:
    """Overlay explicitly-set CLI flags onto the config.

    Only overrides values where the CLI flag was explicitly provided
    (i.e., not None).
    """
    data = config.model_dump()

    mapping: dict[str, tuple[str, str]] = {
        "store_dir": ("store", "directory"),
        "log_level": ("logging", "level"),
        "inter_feed_delay": ("scheduler", "inter_feed_delay"),
        "image_dir": ("images", "directory"),
    }

    for key, value in cli_kwargs.items():
        if value is None:
            continue
        if key in mapping:
            section, field = mapping[key]
            data[section][field] = value

    return FeedpressConfig.model_validate(data)


def _load_toml(path: Path) -> dict[str, object]:
    """Load a TOML file and return the data dict."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        logger.warning("Failed to parse %s: %s", path, exc)
        return {}


def _apply_env_vars(config: FeedpressConfig) -> FeedpressConfig:
    """Apply environment variable overrides to config."""
    data = config.model_dump()

    env_mapping: dict[str, tuple[str, str]] = {
        "FEEDPRESS_STORE_DIR": ("store", "directory"),
        "FEEDPRESS_LOG_LEVEL": ("logging", "level"),
        "FEEDPRESS_INTER_FEED_DELAY": ("scheduler", "inter_feed_delay"),
        "FEEDPRESS_IMAGE_DIR": ("images", "directory"),
        "FEEDPRESS_IMAGE_BASE_URL": ("images", "base_url"),
        "FEEDPRESS_SLACK_WEBHOOK": ("notifications", "slack_webhook"),
        "FEEDPRESS_NTFY_URL": ("notifications", "ntfy_url"),
        "FEEDPRESS_NTFY_TOPIC": ("notifications", "ntfy_topic"),
    }

    for env_var, (section, field) in env_mapping.items():
        value = os.environ.get(env_var)
        if value is not None:
            data[section][field] = value

    return FeedpressConfig.model_validate(data)
