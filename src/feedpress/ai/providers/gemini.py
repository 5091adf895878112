"""Google Gemini via the google-genai SDK."""

from __future__ import annotations

import logging

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from feedpress.ai.providers.base import AIProvider, GenerationOptions, GenerationResponse
from feedpress.errors import ProviderError
from feedpress.models import ProviderName

logger = logging.getLogger(__name__)


class GeminiProvider(AIProvider):
    @property
    def name(self) -> ProviderName:
        return ProviderName.GEMINI

    def generate_content(
        self,
        prompt: str,
        system_message: str,
        options: GenerationOptions | None = None,
    ) -> GenerationResponse:
        options = options or GenerationOptions()
        client = genai.Client(api_key=self._api_key)

        config = types.GenerateContentConfig(
            system_instruction=system_message or None,
            max_output_tokens=options.max_tokens,
            temperature=options.temperature,
            response_mime_type="application/json" if options.json_mode else None,
        )

        logger.debug("Calling Gemini model=%s", self._model)

        try:
            response = client.models.generate_content(
                model=self._model,
                contents=prompt,
                config=config,
            )
        except genai_errors.APIError as exc:
            raise ProviderError(f"Gemini API error: {exc}") from exc

        text = (response.text or "").strip()
        if not text:
            raise ProviderError("Gemini API returned empty response")

        usage = response.usage_metadata
        return GenerationResponse(
            text=text,
            prompt_tokens=getattr(usage, "prompt_token_count", None),
            completion_tokens=getattr(usage, "candidates_token_count", None),
        )
