"""Claude via the Anthropic API."""

from __future__ import annotations

import logging

import anthropic

from feedpress.ai.providers.base import AIProvider, GenerationOptions, GenerationResponse
from feedpress.errors import ProviderError
from feedpress.models import ProviderName

logger = logging.getLogger(__name__)

_MODEL_MAP: dict[str, str] = {
    "sonnet": "claude-sonnet-4-6",
    "haiku": "claude-haiku-4-5-20251001",
    "opus": "claude-opus-4-6",
}


def _resolve_model(model: str) -> str:
    """Resolve a short model name to an API model ID."""
    return _MODEL_MAP.get(model, model)


class AnthropicProvider(AIProvider):
    @property
    def name(self) -> ProviderName:
        return ProviderName.ANTHROPIC

    def generate_content(
        self,
        prompt: str,
        system_message: str,
        options: GenerationOptions | None = None,
    ) -> GenerationResponse:
        options = options or GenerationOptions()
        client = anthropic.Anthropic(api_key=self._api_key, timeout=self._timeout)
        resolved_model = _resolve_model(self._model)

        logger.debug("Calling Anthropic API model=%s", resolved_model)

        kwargs: dict[str, object] = {
            "model": resolved_model,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_message.strip():
            kwargs["system"] = system_message

        try:
            response = client.messages.create(**kwargs)  # type: ignore[arg-type]
        except anthropic.APIError as exc:
            raise ProviderError(f"Anthropic API error: {exc}") from exc

        text_parts: list[str] = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)

        text = "".join(text_parts).strip()
        if not text:
            raise ProviderError("Anthropic API returned empty response")

        usage = getattr(response, "usage", None)
        return GenerationResponse(
            text=text,
            prompt_tokens=getattr(usage, "input_tokens", None),
            completion_tokens=getattr(usage, "output_tokens", None),
        )
