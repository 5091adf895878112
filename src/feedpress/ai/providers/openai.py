"""OpenAI chat completions, and OpenAI-compatible endpoints such as DeepSeek."""

from __future__ import annotations

import logging

from openai import OpenAI, OpenAIError

from feedpress.ai.providers.base import AIProvider, GenerationOptions, GenerationResponse
from feedpress.errors import ProviderError
from feedpress.models import ProviderName

logger = logging.getLogger(__name__)

DEEPSEEK_BASE_URL = "https://api.deepseek.com"


class OpenAIProvider(AIProvider):
    base_url: str | None = None

    @property
    def name(self) -> ProviderName:
        return ProviderName.OPENAI

    def _client(self) -> OpenAI:
        return OpenAI(api_key=self._api_key, base_url=self.base_url, timeout=self._timeout)

    def generate_content(
        self,
        prompt: str,
        system_message: str,
        options: GenerationOptions | None = None,
    ) -> GenerationResponse:
        options = options or GenerationOptions()
        messages = []
        if system_message.strip():
            messages.append({"role": "system", "content": system_message})
        messages.append({"role": "user", "content": prompt})

        kwargs: dict[str, object] = {
            "model": self._model,
            "messages": messages,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
        }
        if options.json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        logger.debug("Calling %s chat completions model=%s", self.name, self._model)

        try:
            response = self._client().chat.completions.create(**kwargs)  # type: ignore[call-overload]
        except OpenAIError as exc:
            raise ProviderError(f"{self.name} API error: {exc}") from exc

        text = ""
        if response.choices:
            text = (response.choices[0].message.content or "").strip()
        if not text:
            raise ProviderError(f"{self.name} API returned empty response")

        usage = response.usage
        return GenerationResponse(
            text=text,
            prompt_tokens=usage.prompt_tokens if usage else None,
            completion_tokens=usage.completion_tokens if usage else None,
        )


class DeepSeekProvider(OpenAIProvider):
    """DeepSeek exposes an OpenAI-compatible chat completions API."""

    base_url = DEEPSEEK_BASE_URL

    @property
    def name(self) -> ProviderName:
        return ProviderName.DEEPSEEK
