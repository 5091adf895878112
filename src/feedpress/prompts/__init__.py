"""Prompt templates and selection."""

from feedpress.prompts.selector import PromptSelector, PromptTestResult, render_matched_content
from feedpress.prompts.templates import DEFAULT_PROMPTS, GENERIC_PROMPT, SYSTEM_MESSAGE, default_prompt

__all__ = [
    "DEFAULT_PROMPTS",
    "GENERIC_PROMPT",
    "SYSTEM_MESSAGE",
    "PromptSelector",
    "PromptTestResult",
    "default_prompt",
    "render_matched_content",
]
