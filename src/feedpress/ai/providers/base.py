"""Base class for AI generation backends."""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel

from feedpress.models import ProviderName

DEFAULT_TIMEOUT = 120


class GenerationOptions(BaseModel):
    max_tokens: int = 1500
    temperature: float = 0.1
    json_mode: bool = True


class GenerationResponse(BaseModel):
    """Backend-neutral result of one generation call."""

    text: str
    prompt_tokens: int | None = None
    completion_tokens: int | None = None


class AIProvider(ABC):
    """One generation backend bound to a model and an API key.

    Subclasses raise :class:`feedpress.errors.ProviderError` on any
    failure, including an empty completion.
    """

    def __init__(self, *, api_key: str, model: str, timeout: int = DEFAULT_TIMEOUT) -> None:
        self._api_key = api_key
        self._model = model
        self._timeout = timeout

    @property
    @abstractmethod
    def name(self) -> ProviderName:
        """The backend this provider talks to."""

    @property
    def model(self) -> str:
        return self._model

    @abstractmethod
    def generate_content(
        self,
        prompt: str,
        system_message: str,
        options: GenerationOptions | None = None,
    ) -> GenerationResponse:
        """Send one prompt and return the completion text and token usage."""

    def test_connection(self) -> GenerationResponse:
        """Round-trip a tiny prompt to check the key and model work."""
        return self.generate_content(
            'Reply with the JSON object {"ok": true}.',
            "You are a connectivity check. Reply with JSON only.",
            GenerationOptions(max_tokens=20, temperature=0.0),
        )
