"""Tests for prompt templates and the prompt selector."""

from __future__ import annotations

import pytest

from feedpress.models import OPPORTUNITY_KINDS, ContentKind, PromptTemplate, ScrapedContent
from feedpress.prompts import (
    DEFAULT_PROMPTS,
    GENERIC_PROMPT,
    PromptSelector,
    default_prompt,
    render_matched_content,
)
from feedpress.prompts.templates import BLOG_POST_PROMPT, JSON_INSTRUCTION, MATCHED_CONTENT


def _make_scraped(**overrides) -> ScrapedContent:
    defaults = {
        "title": "Win a Trip",
        "url": "https://example.com/trip",
        "content": "Enter by March 1 to win a trip for two.",
    }
    defaults.update(overrides)
    return ScrapedContent(**defaults)


@pytest.fixture
def selector(store) -> PromptSelector:
    return PromptSelector(store)


class TestDefaultTemplates:
    def test_every_kind_has_template(self):
        for kind in OPPORTUNITY_KINDS:
            assert kind.value in DEFAULT_PROMPTS
        assert DEFAULT_PROMPTS[ContentKind.BLOG_POST.value] == BLOG_POST_PROMPT

    @pytest.mark.parametrize("kind", list(ContentKind))
    def test_templates_demand_json(self, kind):
        template = default_prompt(kind)
        assert MATCHED_CONTENT in template
        assert template.rstrip().endswith(JSON_INSTRUCTION)
        assert '"valid"' in template

    def test_unknown_kind_uses_generic(self):
        assert default_prompt("treasure_hunt") == GENERIC_PROMPT

    def test_kind_specific_wording(self):
        assert "scholarship" in default_prompt(ContentKind.SCHOLARSHIP).lower()


class TestRenderMatchedContent:
    def test_block_layout(self):
        block = render_matched_content(_make_scraped())
        assert block == (
            "Title: Win a Trip\nURL: https://example.com/trip\n\n"
            "Content:\nEnter by March 1 to win a trip for two."
        )


class TestGetPrompt:
    def test_fills_default(self, selector):
        prompt = selector.get_prompt(ContentKind.SWEEPSTAKES, _make_scraped())
        assert "[matched_content]" not in prompt
        assert "[original_title]" not in prompt
        assert "URL: https://example.com/trip" in prompt
        assert "Original title: Win a Trip" in prompt

    def test_custom_template_wins(self, selector):
        selector.save_custom_prompt("contest", "Custom for [original_title]: [matched_content] json")
        prompt = selector.get_prompt(ContentKind.CONTEST, _make_scraped())
        assert prompt.startswith("Custom for Win a Trip:")

    def test_blank_custom_template_ignored(self, store, selector):
        store.save_prompt_template(PromptTemplate(content_kind="contest", template="   "))
        prompt = selector.get_prompt(ContentKind.CONTEST, _make_scraped())
        assert prompt != "   "
        assert "Win a Trip" in prompt

    def test_uncustomized_template_ignored(self, store, selector):
        store.save_prompt_template(
            PromptTemplate(content_kind="contest", template="stale [matched_content]", is_customized=False)
        )
        assert selector.template_for("contest") == default_prompt("contest")

    def test_reset(self, selector):
        selector.save_custom_prompt("promo", "x [matched_content] json")
        assert selector.reset_custom_prompt("promo") is True
        assert selector.template_for("promo") == default_prompt("promo")
        assert selector.reset_custom_prompt("promo") is False


class TestTestPrompt:
    def test_valid_template(self, selector):
        result = selector.test_prompt("contest", "Review [matched_content] and reply with JSON.")
        assert result.valid is True
        assert "Sample Title" in result.preview
        assert result.error is None

    def test_empty_template(self, selector):
        result = selector.test_prompt("contest", "   ")
        assert result.valid is False
        assert "empty" in result.error

    def test_missing_source_placeholder(self, selector):
        result = selector.test_prompt("contest", "Return JSON about [original_title].")
        assert result.valid is False
        assert "[matched_content]" in result.error

    def test_missing_json_instruction(self, selector):
        result = selector.test_prompt("contest", "Summarize [matched_content].")
        assert result.valid is False
        assert "JSON" in result.error

    def test_long_preview_truncated(self, selector):
        template = "json " + "x" * 1000 + " [matched_content]"
        result = selector.test_prompt("contest", template)
        assert len(result.preview) == 503
        assert result.preview.endswith("...")

    def test_builtin_templates_pass(self, selector):
        for kind in ContentKind:
            assert selector.test_prompt(kind, default_prompt(kind)).valid is True
