"""Run analytics and the persisted processing log."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from feedpress.models import AnalyticsRecord, ProcessingLogEntry, ProcessingResult
from feedpress.storage.base import PipelineStore

logger = logging.getLogger(__name__)

PERSISTED_LOGGER = "feedpress"
_SKIPPED_LOGGERS = ("feedpress.storage",)


class AnalyticsRecorder:
    """Stores per-feed run results for later reporting."""

    def __init__(self, store: PipelineStore) -> None:
        self._store = store

    def record(self, result: ProcessingResult) -> None:
        self._store.insert_analytics(AnalyticsRecord(result=result))

    def summary(self, *, feed_id: str | None = None) -> dict[str, Any]:
        """Totals across every recorded run (optionally for one feed)."""
        records = self._store.list_analytics(feed_id=feed_id)
        results = [r.result for r in records]
        runs = len(results)
        return {
            "runs": runs,
            "failed_runs": sum(1 for r in results if not r.success),
            "items_processed": sum(r.items_processed for r in results),
            "opportunities_created": sum(r.opportunities_created for r in results),
            "posts_created": sum(r.posts_created for r in results),
            "duplicates_skipped": sum(r.duplicates_skipped for r in results),
            "ai_rejections": sum(r.ai_rejections for r in results),
            "errors": sum(r.errors for r in results),
            "avg_execution_time_ms": (
                sum(r.execution_time_ms for r in results) // runs if runs else 0
            ),
        }


def purge_old_logs(store: PipelineStore, retention_days: int) -> int:
    """Delete processing-log entries older than *retention_days*."""
    cutoff = datetime.now(tz=UTC) - timedelta(days=retention_days)
    removed = store.delete_logs_before(cutoff)
    if removed:
        logger.info("Purged %d processing log entries older than %d days", removed, retention_days)
    return removed


class StoreLogHandler(logging.Handler):
    """Mirror pipeline log records into the store's processing log.

    Records carrying ``extra={"context": {...}}`` keep that dict as the
    entry's structured context. Write failures go through
    :meth:`logging.Handler.handleError` and never reach the caller.
    """

    def __init__(self, store: PipelineStore, level: int = logging.INFO) -> None:
        super().__init__(level)
        self._store = store

    def emit(self, record: logging.LogRecord) -> None:
        if record.name.startswith(_SKIPPED_LOGGERS):
            return
        try:
            context = getattr(record, "context", None)
            entry = ProcessingLogEntry(
                level=record.levelname,
                message=record.getMessage(),
                logger=record.name,
                context=dict(context) if isinstance(context, dict) else {},
                created_at=datetime.fromtimestamp(record.created, tz=UTC),
            )
            self._store.insert_log(entry)
        except Exception:
            self.handleError(record)


def install_store_log_handler(store: PipelineStore, level: int = logging.INFO) -> StoreLogHandler:
    """Attach a :class:`StoreLogHandler` to the ``feedpress`` logger tree.

    Any handler installed by an earlier call is replaced.
    """
    root = logging.getLogger(PERSISTED_LOGGER)
    for existing in [h for h in root.handlers if isinstance(h, StoreLogHandler)]:
        root.removeHandler(existing)
    handler = StoreLogHandler(store, level)
    root.addHandler(handler)
    return handler
