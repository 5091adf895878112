"""feedpress: feed ingestion and AI content-generation pipeline."""

__version__ = "0.1.0"
