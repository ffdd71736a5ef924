from __future__ import annotations

from openai import OpenAI

from labnarrator.ai.analyzers.base import BackendStatus, ChatCompletionBackend
from labnarrator.ai.backends import get_api_key
from labnarrator.ai.prompts import metadata_messages
from labnarrator.base.confidence import mark_uniformly
from labnarrator.base.description import BackendKind, ConfidenceLevel
from labnarrator.base.frames import ExtractedFrame
from labnarrator.base.lab import Lab

__all__ = ["RemoteAnalyzer"]


class RemoteAnalyzer(ChatCompletionBackend):
    """Text-only narration through a hosted chat-completion API.

    Supports two interchangeable providers behind the same request shape:
    - openai: OpenAI's API
    - openrouter: OpenRouter's OpenAI-compatible API

    Like :class:`EmbeddedAnalyzer`, it narrates from lab metadata only and has
    no vision capability. It exists as an availability fallback.
    """

    kind = BackendKind.REMOTE

    def _create_client(self) -> OpenAI:
        api_key = get_api_key(self.config.remote_provider, self.config.remote_api_key)
        return OpenAI(
            api_key=api_key,
            base_url=self.config.remote_base_url,
            timeout=self.config.analysis_timeout,
            max_retries=0,
        )

    def _default_model(self) -> str:
        return self.config.resolved_remote_model

    def probe(self) -> BackendStatus:
        # "Available" means configured; the key is not verified against the provider.
        if not self.config.remote_configured:
            return BackendStatus.unavailable(self.kind, "No remote API key configured")
        return BackendStatus(
            available=True,
            backend=self.kind,
            models=[self.config.resolved_remote_model],
            message=f"{self.config.remote_provider} API configured",
        )

    def analyze(self, frames: list[ExtractedFrame], lab: Lab, model_hint: str | None = None) -> str:
        narration = self._complete(metadata_messages(lab), model=model_hint)
        return mark_uniformly(narration, ConfidenceLevel.HIGH)
