"""Abstract persistence interface consumed by the pipeline."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

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


class PipelineStore(ABC):
    """Read/write/query operations the pipeline needs from storage.

    Implementations raise :class:`feedpress.errors.StoreError` on
    persistence failures. Lookups for missing records return ``None``.
    """

    # ── Feeds ────────────────────────────────────────────────────

    @abstractmethod
    def list_feeds(self, *, active_only: bool = False) -> list[Feed]:
        """Return feeds ordered by descending priority."""

    @abstractmethod
    def get_feed(self, feed_id: str) -> Feed | None: ...

    @abstractmethod
    def save_feed(self, feed: Feed) -> None:
        """Insert or replace a feed by id."""

    # ── Entities ─────────────────────────────────────────────────

    @abstractmethod
    def insert_opportunity(self, opportunity: Opportunity) -> None: ...

    @abstractmethod
    def insert_post(self, post: Post) -> None: ...

    @abstractmethod
    def get_opportunity(self, entity_id: str) -> Opportunity | None: ...

    @abstractmethod
    def get_post(self, entity_id: str) -> Post | None: ...

    @abstractmethod
    def list_opportunities(self) -> list[Opportunity]: ...

    @abstractmethod
    def list_posts(self) -> list[Post]: ...

    @abstractmethod
    def slug_exists(self, entity_type: EntityType, slug: str) -> bool: ...

    @abstractmethod
    def find_entity_by_source_url(self, entity_type: EntityType, url: str) -> str | None:
        """Return the id of the entity created from *url*, if any."""

    def get_entity_content(self, entity_type: EntityType, entity_id: str) -> str | None:
        """Return the body text of an opportunity or post, if it exists."""
        if entity_type == EntityType.OPPORTUNITY:
            entity: Opportunity | Post | None = self.get_opportunity(entity_id)
        else:
            entity = self.get_post(entity_id)
        return entity.content if entity is not None else None

    # ── Fingerprints ─────────────────────────────────────────────

    @abstractmethod
    def insert_fingerprint(self, fingerprint: DuplicateFingerprint) -> None: ...

    @abstractmethod
    def find_fingerprint(
        self,
        field: str,
        value: str,
        *,
        entity_type: EntityType | None = None,
    ) -> DuplicateFingerprint | None:
        """Return the first fingerprint whose hash *field* equals *value*.

        *field* is one of ``url_hash``, ``content_hash``, ``title_hash``.
        """

    @abstractmethod
    def recent_fingerprints(
        self,
        since: datetime,
        *,
        limit: int,
        entity_type: EntityType | None = None,
    ) -> list[DuplicateFingerprint]:
        """Return fingerprints created at or after *since*, newest first."""

    @abstractmethod
    def list_fingerprints(self) -> list[DuplicateFingerprint]: ...

    @abstractmethod
    def delete_fingerprints_before(self, cutoff: datetime) -> int: ...

    @abstractmethod
    def delete_fingerprints_for_feed(self, feed_id: str) -> int: ...

    # ── Logs and analytics ───────────────────────────────────────

    @abstractmethod
    def insert_log(self, entry: ProcessingLogEntry) -> None: ...

    @abstractmethod
    def list_logs(
        self,
        *,
        since: datetime | None = None,
        level: str | None = None,
    ) -> list[ProcessingLogEntry]: ...

    @abstractmethod
    def delete_logs_before(self, cutoff: datetime) -> int: ...

    @abstractmethod
    def insert_analytics(self, record: AnalyticsRecord) -> None: ...

    @abstractmethod
    def list_analytics(self, *, feed_id: str | None = None) -> list[AnalyticsRecord]: ...

    # ── Settings, prompts, providers ─────────────────────────────

    @abstractmethod
    def get_setting(self, key: str) -> Any | None: ...

    @abstractmethod
    def get_settings(self, prefix: str = "") -> dict[str, Any]:
        """Return stored settings whose key starts with *prefix*."""

    @abstractmethod
    def set_setting(self, key: str, value: Any) -> None: ...

    @abstractmethod
    def get_prompt_template(self, content_kind: str) -> PromptTemplate | None: ...

    @abstractmethod
    def save_prompt_template(self, template: PromptTemplate) -> None: ...

    @abstractmethod
    def delete_prompt_template(self, content_kind: str) -> bool: ...

    @abstractmethod
    def get_provider_settings(self, provider: ProviderName) -> ProviderSettings | None: ...

    @abstractmethod
    def get_active_provider(self) -> ProviderSettings | None: ...

    @abstractmethod
    def list_provider_settings(self) -> list[ProviderSettings]: ...

    @abstractmethod
    def save_provider_settings(self, settings: ProviderSettings) -> None:
        """Insert or replace by provider; activating one deactivates the rest."""
