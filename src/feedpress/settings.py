"""Cached key/value runtime settings.

Keys are dotted ``category.name`` strings. Values stored in the
pipeline store override :data:`DEFAULT_SETTINGS`; reads go through a
short-lived TTL cache that is invalidated on every write.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from typing import Any, Generic, TypeVar

from feedpress.storage.base import PipelineStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TTL_SECONDS = 60.0

DEFAULT_SETTINGS: dict[str, Any] = {
    # General
    "general.automatic_processing": True,
    "general.auto_publish": False,
    "general.quality_threshold": 0.7,
    "general.max_posts_per_run": 10,
    # Scraping
    "scraping.request_timeout": 10000,
    "scraping.min_content_length": 100,
    "scraping.max_content_length": 50000,
    "scraping.user_agent": "Feedpress RSS Bot/1.0",
    "scraping.follow_redirect_wrappers": True,
    # Duplicate detection
    "duplicates.similarity_threshold": 0.85,
    "duplicates.lookback_days": 30,
    "duplicates.lookback_limit": 100,
    "duplicates.retention_days": 90,
    # Fuzzy comparison reads at most this many normalized characters per body.
    "duplicates.max_compare_chars": 5000,
    # Advanced
    "advanced.log_retention_days": 30,
    "advanced.debug_mode": False,
}

_TRUE_STRINGS = frozenset({"1", "true", "yes", "on"})


class TTLCache(Generic[T]):
    """A small map whose entries expire *ttl* seconds after being set."""

    def __init__(self, ttl: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[T, float]] = {}

    def get(self, key: str) -> T | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: T) -> None:
        self._entries[key] = (value, self._clock() + self._ttl)

    def invalidate(self, key: str | None = None) -> None:
        """Drop one key, or every key when *key* is None."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)


class SettingsService:
    """Read and write runtime settings through a TTL cache."""

    def __init__(
        self,
        store: PipelineStore,
        *,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._cache: TTLCache[Any] = TTLCache(ttl, clock)

    def get(self, key: str, default: Any = None) -> Any:
        """Return a setting: stored value, else the built-in default, else *default*."""
        value = self._cache.get(key)
        if value is None:
            value = self._store.get_setting(key)
            if value is None:
                value = DEFAULT_SETTINGS.get(key)
            if value is not None:
                self._cache.set(key, value)
        return value if value is not None else default

    def get_many(self, keys: Iterable[str]) -> dict[str, Any]:
        return {key: self.get(key) for key in keys}

    def get_category(self, category: str) -> dict[str, Any]:
        """Return every known setting in *category*, stored values winning."""
        prefix = f"{category}."
        merged = {k: v for k, v in DEFAULT_SETTINGS.items() if k.startswith(prefix)}
        merged.update(self._store.get_settings(prefix))
        return merged

    def set(self, key: str, value: Any) -> None:
        self._store.set_setting(key, value)
        self._cache.invalidate(key)
        logger.debug("Setting %s updated", key)

    def set_many(self, values: dict[str, Any]) -> None:
        for key, value in values.items():
            self.set(key, value)

    def clear_cache(self) -> None:
        self._cache.invalidate()

    # ── Typed accessors ──────────────────────────────────────────

    def get_float(self, key: str, default: float | None = None) -> float:
        return float(self.get(key, default))

    def get_int(self, key: str, default: int | None = None) -> int:
        return int(self.get(key, default))

    def get_bool(self, key: str, default: bool | None = None) -> bool:
        value = self.get(key, default)
        if isinstance(value, str):
            return value.strip().lower() in _TRUE_STRINGS
        return bool(value)

    def get_str(self, key: str, default: str | None = None) -> str:
        value = self.get(key, default)
        return "" if value is None else str(value)
