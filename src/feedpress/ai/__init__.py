"""AI content generation."""

from feedpress.ai.parsing import parse_generated_content, strip_json_fences
from feedpress.ai.service import AIOrchestrator, ProviderOverride, ProviderTestResult

__all__ = [
    "AIOrchestrator",
    "ProviderOverride",
    "ProviderTestResult",
    "parse_generated_content",
    "strip_json_fences",
]
