"""Persistence for feeds, entities, fingerprints, logs and settings."""

from feedpress.storage.base import PipelineStore
from feedpress.storage.json_store import STORE_FILENAME, JsonPipelineStore

__all__ = ["STORE_FILENAME", "JsonPipelineStore", "PipelineStore"]
