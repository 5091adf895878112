"""JSON-backed pipeline store.

Persists feeds, entities, fingerprints, analytics, settings, prompt
templates and provider settings in a single JSON file, loaded on init
and saved after every write operation. A write whose save fails leaves
the in-memory state as it was. The processing log lives beside it in an
append-only JSON Lines file so log records never rewrite the store.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from feedpress.errors import StoreError
from feedpress.models import (
    AnalyticsRecord,
    DuplicateFingerprint,
    EntityType,
    Feed,
    Opportunity,
    Post,
    ProcessingLogEntry,
    PromptTemplate,
    ProviderName,
    ProviderSettings,
)
from feedpress.storage.base import PipelineStore

logger = logging.getLogger(__name__)

STORE_FILENAME = ".feedpress-store.json"
LOG_FILENAME = ".feedpress-log.jsonl"

_FINGERPRINT_FIELDS = frozenset({"url_hash", "content_hash", "title_hash"})


class _StoreData(BaseModel):
    """Internal wrapper for JSON serialization."""

    feeds: list[Feed] = Field(default_factory=list)
    opportunities: list[Opportunity] = Field(default_factory=list)
    posts: list[Post] = Field(default_factory=list)
    fingerprints: list[DuplicateFingerprint] = Field(default_factory=list)
    analytics: list[AnalyticsRecord] = Field(default_factory=list)
    settings: dict[str, Any] = Field(default_factory=dict)
    prompts: list[PromptTemplate] = Field(default_factory=list)
    providers: list[ProviderSettings] = Field(default_factory=list)


class JsonPipelineStore(PipelineStore):
    """Single-file JSON implementation of :class:`PipelineStore`.

    Suitable for a single pipeline instance; writes are serialized with
    an in-process lock.
    """

    def __init__(self, directory: Path) -> None:
        self._path = Path(directory) / STORE_FILENAME
        self._log_path = Path(directory) / LOG_FILENAME
        self._lock = threading.RLock()
        self._data = self._load()

    @property
    def path(self) -> Path:
        return self._path

    # ── Private helpers ──────────────────────────────────────────

    def _load(self) -> _StoreData:
        if not self._path.exists():
            return _StoreData()
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            return _StoreData.model_validate(raw)
        except (json.JSONDecodeError, ValueError, KeyError):
            logger.warning("Corrupt pipeline store at %s, starting fresh", self._path)
            return _StoreData()

    def _save(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(
                self._data.model_dump_json(indent=2),
                encoding="utf-8",
            )
        except OSError as exc:
            raise StoreError(f"Failed to write {self._path}: {exc}") from exc

    @contextmanager
    def _write(self) -> Iterator[None]:
        """Apply the mutations in the block and save, or restore on failure."""
        with self._lock:
            snapshot = self._data.model_copy(deep=True)
            try:
                yield
                self._save()
            except StoreError:
                self._data = snapshot
                raise

    def _read_log(self) -> list[ProcessingLogEntry]:
        if not self._log_path.exists():
            return []
        entries: list[ProcessingLogEntry] = []
        with self._log_path.open(encoding="utf-8") as fh:
            for lineno, line in enumerate(fh, start=1):
                if not line.strip():
                    continue
                try:
                    entries.append(ProcessingLogEntry.model_validate_json(line))
                except ValueError:
                    logger.warning("Skipping corrupt log line %d in %s", lineno, self._log_path)
        return entries

    # ── Feeds ────────────────────────────────────────────────────

    def list_feeds(self, *, active_only: bool = False) -> list[Feed]:
        feeds = [f for f in self._data.feeds if f.is_active or not active_only]
        return sorted(feeds, key=lambda f: f.priority, reverse=True)

    def get_feed(self, feed_id: str) -> Feed | None:
        for feed in self._data.feeds:
            if feed.id == feed_id:
                return feed.model_copy(deep=True)
        return None

    def save_feed(self, feed: Feed) -> None:
        with self._write():
            self._data.feeds = [f for f in self._data.feeds if f.id != feed.id]
            self._data.feeds.append(feed.model_copy(deep=True))

    # ── Entities ─────────────────────────────────────────────────

    def insert_opportunity(self, opportunity: Opportunity) -> None:
        with self._write():
            if self.slug_exists(EntityType.OPPORTUNITY, opportunity.slug):
                raise StoreError(f"Duplicate opportunity slug: {opportunity.slug}")
            self._data.opportunities.append(opportunity)

    def insert_post(self, post: Post) -> None:
        with self._write():
            if self.slug_exists(EntityType.POST, post.slug):
                raise StoreError(f"Duplicate post slug: {post.slug}")
            self._data.posts.append(post)

    def get_opportunity(self, entity_id: str) -> Opportunity | None:
        return next((o for o in self._data.opportunities if o.id == entity_id), None)

    def get_post(self, entity_id: str) -> Post | None:
        return next((p for p in self._data.posts if p.id == entity_id), None)

    def list_opportunities(self) -> list[Opportunity]:
        return list(self._data.opportunities)

    def list_posts(self) -> list[Post]:
        return list(self._data.posts)

    def slug_exists(self, entity_type: EntityType, slug: str) -> bool:
        rows: list[Opportunity] | list[Post]
        if entity_type == EntityType.OPPORTUNITY:
            rows = self._data.opportunities
        else:
            rows = self._data.posts
        return any(r.slug == slug for r in rows)

    def find_entity_by_source_url(self, entity_type: EntityType, url: str) -> str | None:
        if not url:
            return None
        rows: list[Opportunity] | list[Post]
        if entity_type == EntityType.OPPORTUNITY:
            rows = self._data.opportunities
        else:
            rows = self._data.posts
        return next((r.id for r in rows if r.source_url == url), None)

    # ── Fingerprints ─────────────────────────────────────────────

    def insert_fingerprint(self, fingerprint: DuplicateFingerprint) -> None:
        with self._write():
            self._data.fingerprints.append(fingerprint)

    def find_fingerprint(
        self,
        field: str,
        value: str,
        *,
        entity_type: EntityType | None = None,
    ) -> DuplicateFingerprint | None:
        if field not in _FINGERPRINT_FIELDS:
            raise ValueError(f"Unknown fingerprint field: {field!r}")
        if not value:
            return None
        for fp in self._data.fingerprints:
            if entity_type is not None and fp.entity_type != entity_type:
                continue
            if getattr(fp, field) == value:
                return fp
        return None

    def recent_fingerprints(
        self,
        since: datetime,
        *,
        limit: int,
        entity_type: EntityType | None = None,
    ) -> list[DuplicateFingerprint]:
        rows = [
            fp
            for fp in self._data.fingerprints
            if fp.created_at >= since and (entity_type is None or fp.entity_type == entity_type)
        ]
        rows.sort(key=lambda fp: fp.created_at, reverse=True)
        return rows[:limit]

    def list_fingerprints(self) -> list[DuplicateFingerprint]:
        return list(self._data.fingerprints)

    def delete_fingerprints_before(self, cutoff: datetime) -> int:
        with self._lock:
            kept = [fp for fp in self._data.fingerprints if fp.created_at >= cutoff]
            removed = len(self._data.fingerprints) - len(kept)
            if removed:
                with self._write():
                    self._data.fingerprints = kept
            return removed

    def delete_fingerprints_for_feed(self, feed_id: str) -> int:
        with self._lock:
            kept = [fp for fp in self._data.fingerprints if fp.feed_id != feed_id]
            removed = len(self._data.fingerprints) - len(kept)
            if removed:
                with self._write():
                    self._data.fingerprints = kept
            return removed

    # ── Logs and analytics ───────────────────────────────────────

    def insert_log(self, entry: ProcessingLogEntry) -> None:
        with self._lock:
            try:
                self._log_path.parent.mkdir(parents=True, exist_ok=True)
                with self._log_path.open("a", encoding="utf-8") as fh:
                    fh.write(entry.model_dump_json() + "\n")
            except OSError as exc:
                raise StoreError(f"Failed to append to {self._log_path}: {exc}") from exc

    def list_logs(
        self,
        *,
        since: datetime | None = None,
        level: str | None = None,
    ) -> list[ProcessingLogEntry]:
        with self._lock:
            rows = self._read_log()
        if since is not None:
            rows = [e for e in rows if e.created_at >= since]
        if level is not None:
            rows = [e for e in rows if e.level == level.upper()]
        return rows

    def delete_logs_before(self, cutoff: datetime) -> int:
        with self._lock:
            entries = self._read_log()
            kept = [e for e in entries if e.created_at >= cutoff]
            removed = len(entries) - len(kept)
            if removed:
                try:
                    self._log_path.write_text(
                        "".join(e.model_dump_json() + "\n" for e in kept),
                        encoding="utf-8",
                    )
                except OSError as exc:
                    raise StoreError(f"Failed to write {self._log_path}: {exc}") from exc
            return removed

    def insert_analytics(self, record: AnalyticsRecord) -> None:
        with self._write():
            self._data.analytics.append(record)

    def list_analytics(self, *, feed_id: str | None = None) -> list[AnalyticsRecord]:
        if feed_id is None:
            return list(self._data.analytics)
        return [a for a in self._data.analytics if a.result.feed_id == feed_id]

    # ── Settings, prompts, providers ─────────────────────────────

    def get_setting(self, key: str) -> Any | None:
        return self._data.settings.get(key)

    def get_settings(self, prefix: str = "") -> dict[str, Any]:
        return {k: v for k, v in self._data.settings.items() if k.startswith(prefix)}

    def set_setting(self, key: str, value: Any) -> None:
        with self._write():
            self._data.settings[key] = value

    def get_prompt_template(self, content_kind: str) -> PromptTemplate | None:
        return next((p for p in self._data.prompts if p.content_kind == content_kind), None)

    def save_prompt_template(self, template: PromptTemplate) -> None:
        with self._write():
            self._data.prompts = [
                p for p in self._data.prompts if p.content_kind != template.content_kind
            ]
            self._data.prompts.append(template)

    def delete_prompt_template(self, content_kind: str) -> bool:
        with self._lock:
            kept = [p for p in self._data.prompts if p.content_kind != content_kind]
            if len(kept) == len(self._data.prompts):
                return False
            with self._write():
                self._data.prompts = kept
            return True

    def get_provider_settings(self, provider: ProviderName) -> ProviderSettings | None:
        return next((p for p in self._data.providers if p.provider == provider), None)

    def get_active_provider(self) -> ProviderSettings | None:
        return next((p for p in self._data.providers if p.is_active), None)

    def list_provider_settings(self) -> list[ProviderSettings]:
        return list(self._data.providers)

    def save_provider_settings(self, settings: ProviderSettings) -> None:
        with self._write():
            rows = [p for p in self._data.providers if p.provider != settings.provider]
            if settings.is_active:
                for row in rows:
                    row.is_active = False
            rows.append(settings)
            self._data.providers = rows
