"""Pipeline domain models as Pydantic v2 data types.

Feeds are the configured sources; candidate items and scraped content
are transient values passed between pipeline stages; fingerprints,
opportunities and posts are what a run persists.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


def _new_id() -> str:
    return uuid.uuid4().hex


def _now() -> datetime:
    return datetime.now(tz=UTC)


class SourceKind(StrEnum):
    """Where a feed's candidate items come from."""

    RSS = "rss"
    URL_LIST = "url_list"


class ContentKind(StrEnum):
    """Target shape of generated output."""

    CONTEST = "contest"
    GIVEAWAY = "giveaway"
    SWEEPSTAKES = "sweepstakes"
    DREAM_JOB = "dream_job"
    GET_PAID_TO = "get_paid_to"
    INSTANT_WIN = "instant_win"
    JOB_FAIR = "job_fair"
    SCHOLARSHIP = "scholarship"
    VOLUNTEER = "volunteer"
    FREE_TRAINING = "free_training"
    PROMO = "promo"
    BLOG_POST = "blog_post"

    @property
    def is_opportunity(self) -> bool:
        return self is not ContentKind.BLOG_POST


OPPORTUNITY_KINDS: tuple[ContentKind, ...] = tuple(k for k in ContentKind if k.is_opportunity)


class CronInterval(StrEnum):
    """How often a feed should be processed."""

    EVERY_5_MINUTES = "every_5_minutes"
    EVERY_15_MINUTES = "every_15_minutes"
    EVERY_30_MINUTES = "every_30_minutes"
    HOURLY = "hourly"
    EVERY_2_HOURS = "every_2_hours"
    EVERY_6_HOURS = "every_6_hours"
    EVERY_12_HOURS = "every_12_hours"
    DAILY = "daily"

    @property
    def period(self) -> timedelta:
        return _INTERVAL_PERIODS[self]


_INTERVAL_PERIODS: dict[CronInterval, timedelta] = {
    CronInterval.EVERY_5_MINUTES: timedelta(minutes=5),
    CronInterval.EVERY_15_MINUTES: timedelta(minutes=15),
    CronInterval.EVERY_30_MINUTES: timedelta(minutes=30),
    CronInterval.HOURLY: timedelta(hours=1),
    CronInterval.EVERY_2_HOURS: timedelta(hours=2),
    CronInterval.EVERY_6_HOURS: timedelta(hours=6),
    CronInterval.EVERY_12_HOURS: timedelta(hours=12),
    CronInterval.DAILY: timedelta(days=1),
}


class FeedStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class EntityStatus(StrEnum):
    """Lifecycle status of a generated entity."""

    DRAFT = "draft"
    PUBLISHED = "published"
    REJECTED = "rejected"


class EntityType(StrEnum):
    OPPORTUNITY = "opportunity"
    POST = "post"


class ProviderName(StrEnum):
    """Supported AI generation backends."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    DEEPSEEK = "deepseek"
    GEMINI = "gemini"


class DuplicateReason(StrEnum):
    EXACT_URL = "exact_url"
    EXACT_CONTENT = "exact_content"
    EXACT_TITLE = "exact_title"
    SIMILAR_CONTENT = "similar_content"


# ── Feeds ────────────────────────────────────────────────────────


class Feed(BaseModel):
    """A configured content source with scheduling and generation settings.

    Per-feed overrides left as ``None`` defer to the global settings.
    """

    id: str = Field(default_factory=_new_id)
    name: str
    source_kind: SourceKind = SourceKind.RSS
    url: str = ""
    url_list: str = ""
    offset: int = 0
    content_kind: ContentKind = ContentKind.BLOG_POST
    cron_interval: CronInterval = CronInterval.HOURLY
    status: FeedStatus = FeedStatus.ACTIVE
    priority: int = 0
    last_fetched: datetime | None = None
    last_error: str = ""

    quality_threshold: float | None = None
    auto_publish: bool | None = None
    max_items_per_run: int | None = None
    ai_provider: ProviderName | None = None
    ai_model: str | None = None
    ai_api_key: str | None = None
    enable_scraping: bool = True
    enable_ai_processing: bool = True
    allow_republishing: bool = False
    fallback_featured_image_url: str = ""
    blog_category: str = ""

    total_processed: int = 0
    total_published: int = 0
    created_at: datetime = Field(default_factory=_now)

    @field_validator("cron_interval", mode="before")
    @classmethod
    def _default_unknown_interval(cls, value: Any) -> Any:
        if value is None or (
            isinstance(value, str) and value not in {i.value for i in CronInterval}
        ):
            return CronInterval.HOURLY
        return value

    @property
    def is_active(self) -> bool:
        return self.status == FeedStatus.ACTIVE

    @property
    def entity_type(self) -> EntityType:
        if self.content_kind.is_opportunity:
            return EntityType.OPPORTUNITY
        return EntityType.POST

    def url_lines(self) -> list[str]:
        """Non-blank, non-comment lines of the URL list, in order."""
        return [
            line.strip()
            for line in self.url_list.splitlines()
            if line.strip() and not line.strip().startswith("#")
        ]


class CandidateItem(BaseModel):
    """One entry read from a feed source."""

    link: str
    title: str = ""
    raw_content: str = ""
    image_url: str = ""


class ScrapedContent(BaseModel):
    """Normalized, length-bounded page content ready for prompting."""

    title: str
    url: str
    content: str = ""
    html_content: str = ""
    description: str = ""
    author: str = ""
    published_date: str = ""
    image: str = ""


# ── Duplicate detection ─────────────────────────────────────────


class DuplicateFingerprint(BaseModel):
    """URL/title/body hashes of one accepted entity. Never mutated."""

    id: str = Field(default_factory=_new_id)
    entity_id: str
    entity_type: EntityType
    feed_id: str | None = None
    content_hash: str = ""
    title_hash: str = ""
    url_hash: str = ""
    created_at: datetime = Field(default_factory=_now)


class DuplicateCheckResult(BaseModel):
    is_duplicate: bool = False
    reason: DuplicateReason | None = None
    similarity: float | None = None
    matched_entity_id: str | None = None


# ── Generated content ───────────────────────────────────────────


class RejectedContent(BaseModel):
    """The model judged the source unusable."""

    valid: Literal[False] = False
    reason: str = "Content rejected by AI"


class AcceptedContent(BaseModel):
    """Structured content extracted from a source."""

    valid: Literal[True] = True
    title: str
    excerpt: str = ""
    content: str
    deadline: str | None = None
    prize_value: str | None = None
    requirements: str | None = None
    location: str | None = None
    apply_url: str | None = None
    meta_title: str | None = None
    meta_description: str | None = None
    confidence_score: float = 1.0


GeneratedContent = AcceptedContent | RejectedContent


# ── Entities ────────────────────────────────────────────────────


class Opportunity(BaseModel):
    """A structured opportunity record (contest, scholarship, job, ...)."""

    id: str = Field(default_factory=_new_id)
    title: str
    slug: str
    excerpt: str
    content: str
    opportunity_type: ContentKind
    status: EntityStatus = EntityStatus.DRAFT
    source_url: str = ""
    source_feed_id: str | None = None
    featured_image_url: str = ""
    deadline: str | None = None
    prize_value: str | None = None
    requirements: str | None = None
    location: str | None = None
    apply_url: str | None = None
    confidence_score: float | None = None
    created_at: datetime = Field(default_factory=_now)
    processed_at: datetime | None = None
    published_at: datetime | None = None


class Post(BaseModel):
    """A blog post record."""

    id: str = Field(default_factory=_new_id)
    title: str
    slug: str
    excerpt: str
    content: str
    status: EntityStatus = EntityStatus.DRAFT
    category: str = ""
    meta_title: str | None = None
    meta_description: str | None = None
    source_url: str = ""
    source_feed_id: str | None = None
    featured_image_url: str = ""
    created_at: datetime = Field(default_factory=_now)
    published_at: datetime | None = None


# ── Run results and operator records ────────────────────────────


class ProcessingResult(BaseModel):
    """Per-feed run summary."""

    feed_id: str
    feed_name: str = ""
    content_kind: ContentKind | None = None
    items_processed: int = 0
    opportunities_created: int = 0
    posts_created: int = 0
    duplicates_skipped: int = 0
    ai_rejections: int = 0
    errors: int = 0
    execution_time_ms: int = 0
    success: bool = True
    error: str | None = None

    @property
    def entities_created(self) -> int:
        return self.opportunities_created + self.posts_created


class ProviderSettings(BaseModel):
    """Stored configuration for one AI backend."""

    provider: ProviderName
    model: str
    api_key: str = ""
    max_tokens: int = 1500
    temperature: float = 0.1
    is_active: bool = False
    updated_at: datetime = Field(default_factory=_now)


class PromptTemplate(BaseModel):
    """An operator-customized prompt for one content kind."""

    content_kind: str
    template: str
    is_customized: bool = True
    updated_at: datetime = Field(default_factory=_now)


class ProcessingLogEntry(BaseModel):
    id: str = Field(default_factory=_new_id)
    level: str
    message: str
    logger: str = ""
    context: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_now)


class AnalyticsRecord(BaseModel):
    """A persisted copy of one feed run's result."""

    id: str = Field(default_factory=_new_id)
    result: ProcessingResult
    created_at: datetime = Field(default_factory=_now)
