"""AI generation orchestration: provider resolution, invocation, parsing.

:meth:`AIOrchestrator.generate` never raises. Provider failures and
unparsable output are logged with timing and returned as ``None``;
the quality gate is the caller's job.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from pydantic import BaseModel

from feedpress.ai.parsing import parse_generated_content
from feedpress.ai.providers import AIProvider, GenerationOptions, create_provider, env_api_key
from feedpress.errors import ProviderNotConfiguredError
from feedpress.models import Feed, GeneratedContent, ProviderName, ProviderSettings, ScrapedContent
from feedpress.prompts.templates import SYSTEM_MESSAGE
from feedpress.storage.base import PipelineStore

logger = logging.getLogger(__name__)

ProviderFactory = Callable[..., AIProvider]


class ProviderOverride(BaseModel):
    """Per-feed choice of backend and model."""

    provider: ProviderName
    model: str
    api_key: str | None = None

    @classmethod
    def from_feed(cls, feed: Feed) -> ProviderOverride | None:
        if feed.ai_provider is None or not feed.ai_model:
            return None
        return cls(provider=feed.ai_provider, model=feed.ai_model, api_key=feed.ai_api_key)


class ProviderTestResult(BaseModel):
    success: bool
    provider: ProviderName
    model: str
    message: str
    error: str | None = None
    latency_ms: int = 0


class AIOrchestrator:
    """Wraps the configured generation backends behind one call."""

    def __init__(
        self,
        store: PipelineStore,
        *,
        provider_factory: ProviderFactory = create_provider,
        system_message: str = SYSTEM_MESSAGE,
    ) -> None:
        self._store = store
        self._provider_factory = provider_factory
        self._system_message = system_message

    def resolve_settings(self, override: ProviderOverride | None = None) -> ProviderSettings:
        """Pick the provider settings for one call.

        A feed override uses that provider's stored settings with the
        override's model; if the provider was never configured, the
        global active provider is used instead.

        Raises:
            ProviderNotConfiguredError: No usable provider or API key.
        """
        settings: ProviderSettings | None = None
        if override is not None:
            stored = self._store.get_provider_settings(override.provider)
            if stored is None and not override.api_key:
                logger.warning(
                    "Feed AI provider %s not configured, falling back to the active provider",
                    override.provider,
                )
            else:
                settings = ProviderSettings(
                    provider=override.provider,
                    model=override.model,
                    api_key=override.api_key or (stored.api_key if stored else ""),
                    max_tokens=stored.max_tokens if stored else 1500,
                    temperature=stored.temperature if stored else 0.1,
                    is_active=True,
                )
                logger.debug("Using feed-specific AI provider %s/%s", override.provider, override.model)

        if settings is None:
            settings = self._store.get_active_provider()
            if settings is None:
                raise ProviderNotConfiguredError("No active AI provider configured")

        if not settings.api_key:
            api_key = env_api_key(settings.provider)
            if not api_key:
                raise ProviderNotConfiguredError(f"No API key configured for {settings.provider}")
            settings = settings.model_copy(update={"api_key": api_key})
        return settings

    def generate(
        self,
        scraped: ScrapedContent,
        content_kind: str,
        prompt: str,
        override: ProviderOverride | None = None,
    ) -> GeneratedContent | None:
        """Generate structured content for *scraped* using *prompt*.

        Returns:
            AcceptedContent or RejectedContent, or None on any failure.
        """
        start = time.monotonic()
        context: dict[str, object] = {"url": scraped.url, "content_kind": str(content_kind)}
        try:
            settings = self.resolve_settings(override)
            context.update(provider=str(settings.provider), model=settings.model)
            provider = self._provider_factory(
                settings.provider, api_key=settings.api_key, model=settings.model
            )
            response = provider.generate_content(
                prompt,
                self._system_message,
                GenerationOptions(max_tokens=settings.max_tokens, temperature=settings.temperature),
            )
            generated = parse_generated_content(response.text)
        except Exception as exc:
            context["error"] = str(exc)
            context["execution_time_ms"] = int((time.monotonic() - start) * 1000)
            logger.error("AI generation failed: %s", exc, extra={"context": context})
            return None

        context.update(
            valid=generated.valid,
            execution_time_ms=int((time.monotonic() - start) * 1000),
            prompt_tokens=response.prompt_tokens,
            completion_tokens=response.completion_tokens,
        )
        logger.info("AI content generated for %s", scraped.url, extra={"context": context})
        return generated

    def test_provider(self, provider: ProviderName | str, api_key: str, model: str) -> ProviderTestResult:
        """Check that *api_key* and *model* work against *provider*."""
        name = ProviderName(provider)
        start = time.monotonic()
        try:
            backend = self._provider_factory(name, api_key=api_key or env_api_key(name), model=model)
            response = backend.test_connection()
        except Exception as exc:
            logger.warning("Provider test failed for %s/%s: %s", name, model, exc)
            return ProviderTestResult(
                success=False,
                provider=name,
                model=model,
                message="Connection failed",
                error=str(exc),
                latency_ms=int((time.monotonic() - start) * 1000),
            )
        return ProviderTestResult(
            success=True,
            provider=name,
            model=model,
            message=f"Connected ({len(response.text)} chars returned)",
            latency_ms=int((time.monotonic() - start) * 1000),
        )
