"""Choose and fill the generation prompt for a content kind."""

from __future__ import annotations

import logging

from pydantic import BaseModel

from feedpress.models import PromptTemplate, ScrapedContent
from feedpress.prompts.templates import MATCHED_CONTENT, ORIGINAL_TITLE, default_prompt
from feedpress.storage.base import PipelineStore

logger = logging.getLogger(__name__)

_PREVIEW_CHARS = 500

_SAMPLE_CONTENT = ScrapedContent(
    title="Sample Title",
    url="https://example.com/test",
    content="Sample content for checking a prompt template.",
)


class PromptTestResult(BaseModel):
    valid: bool
    error: str | None = None
    preview: str | None = None


def render_matched_content(scraped: ScrapedContent) -> str:
    """The title/URL/body block substituted for ``[matched_content]``."""
    return f"Title: {scraped.title}\nURL: {scraped.url}\n\nContent:\n{scraped.content}"


def fill_template(template: str, scraped: ScrapedContent) -> str:
    return template.replace(MATCHED_CONTENT, render_matched_content(scraped)).replace(
        ORIGINAL_TITLE, scraped.title
    )


class PromptSelector:
    """Prefers an operator-customized template over the built-in default."""

    def __init__(self, store: PipelineStore) -> None:
        self._store = store

    def get_prompt(self, content_kind: str, scraped: ScrapedContent) -> str:
        """Return the filled prompt for *content_kind*.

        A stored template is used only when it is marked customized and
        non-empty; otherwise the compiled-in template for the kind (or
        the generic one for unknown kinds) applies.
        """
        return fill_template(self.template_for(content_kind), scraped)

    def template_for(self, content_kind: str) -> str:
        custom = self._store.get_prompt_template(str(content_kind))
        if custom is not None and custom.is_customized and custom.template.strip():
            logger.debug("Using custom prompt for %s", content_kind)
            return custom.template
        return default_prompt(content_kind)

    def save_custom_prompt(self, content_kind: str, template: str) -> None:
        self._store.save_prompt_template(
            PromptTemplate(content_kind=str(content_kind), template=template, is_customized=True)
        )
        logger.info("Custom prompt saved for %s", content_kind)

    def reset_custom_prompt(self, content_kind: str) -> bool:
        """Drop the custom template so the default applies again."""
        removed = self._store.delete_prompt_template(str(content_kind))
        if removed:
            logger.info("Custom prompt reset to default for %s", content_kind)
        return removed

    def test_prompt(self, content_kind: str, template: str) -> PromptTestResult:
        """Fill *template* with sample content and check it is usable."""
        built = fill_template(template, _SAMPLE_CONTENT)

        if not built.strip():
            return PromptTestResult(valid=False, error="Prompt is empty after processing")
        if MATCHED_CONTENT in built or ORIGINAL_TITLE in built:
            return PromptTestResult(valid=False, error="Prompt contains unsubstituted variables")
        if MATCHED_CONTENT not in template:
            return PromptTestResult(
                valid=False, error=f"Prompt never includes the source via {MATCHED_CONTENT}"
            )
        if "json" not in template.lower():
            return PromptTestResult(valid=False, error="Prompt does not ask for a JSON object")

        preview = built[:_PREVIEW_CHARS] + ("..." if len(built) > _PREVIEW_CHARS else "")
        logger.debug("Prompt for %s passed checks", content_kind)
        return PromptTestResult(valid=True, preview=preview)
