from __future__ import annotations

import logging
from typing import Any

import httpx
import ollama

from labnarrator.ai.analyzers.base import MIN_SUGGESTION_LENGTH, SUGGESTION_MAX_TOKENS, AnalysisBackend, BackendStatus
from labnarrator.ai.config import NarrationConfig
from labnarrator.ai.exceptions import BackendResponseError, BackendTimeoutError
from labnarrator.ai.prompts import metadata_messages, parse_suggestions, suggestion_messages
from labnarrator.base.confidence import mark_uniformly
from labnarrator.base.description import BackendKind, ConfidenceLevel
from labnarrator.base.frames import ExtractedFrame
from labnarrator.base.lab import Lab

__all__ = ["EmbeddedAnalyzer"]

logger = logging.getLogger(__name__)


def _model_name(entry: Any) -> str:
    if isinstance(entry, dict):
        return entry.get("model") or entry.get("name") or ""
    return getattr(entry, "model", None) or getattr(entry, "name", None) or ""


class EmbeddedAnalyzer(AnalysisBackend):
    """Text-only narration from an embedded local language model.

    The embedded model has no vision capability, so frames are ignored and the
    narration is synthesized from the lab metadata alone. With no visual
    grounding to second-guess, every line is tagged HIGH.

    A model the runtime has not pulled yet is reported as available "after
    download" and is pulled before its first use.
    """

    kind = BackendKind.BROWSER_EMBEDDED

    def __init__(self, config: NarrationConfig | None = None):
        super().__init__(config)
        self._ready_models: set[str] = set()

    def _client(self, timeout: float) -> ollama.Client:
        return ollama.Client(host=self.config.embedded_host, timeout=timeout)

    @staticmethod
    def _has_model(response: Any, wanted: str) -> bool:
        names = [name for name in (_model_name(entry) for entry in response["models"]) if name]
        return any(name == wanted or name.split(":", 1)[0] == wanted for name in names)

    def _call(self, timeout: float, method: str, **kwargs: Any) -> Any:
        try:
            return getattr(self._client(timeout), method)(**kwargs)
        except httpx.TimeoutException as e:
            raise BackendTimeoutError(self.kind.value, timeout) from e
        except ollama.ResponseError as e:
            raise BackendResponseError(self.kind.value, e.error, status_code=e.status_code) from e
        except (httpx.HTTPError, OSError) as e:
            raise BackendResponseError(self.kind.value, f"connection failed: {e}") from e

    def probe(self) -> BackendStatus:
        try:
            response = self._client(self.config.embedded_probe_timeout).list()
        except (ollama.ResponseError, httpx.HTTPError, OSError) as e:
            logger.debug("Embedded model runtime not reachable at %s: %s", self.config.embedded_host, e)
            return BackendStatus.unavailable(self.kind, "Embedded model runtime not reachable")

        model = self.config.embedded_model
        if self._has_model(response, model):
            self._ready_models.add(model)
            message = f"{model} ready"
        else:
            message = f"{model} (after download)"
        return BackendStatus(available=True, backend=self.kind, models=[model], message=message)

    def ensure_model(self, model: str | None = None) -> None:
        """Pull ``model`` into the runtime unless it is already there.

        Raises:
            BackendError: If the runtime cannot be reached or the pull fails
        """
        model = model or self.config.embedded_model
        if model in self._ready_models:
            return
        response = self._call(self.config.probe_timeout, "list")
        if not self._has_model(response, model):
            logger.info("Pulling embedded model %s", model)
            self._call(self.config.embedded_pull_timeout, "pull", model=model)
        self._ready_models.add(model)

    def _chat(self, messages: list[dict[str, str]], model: str | None, max_tokens: int) -> str:
        model = model or self.config.embedded_model
        self.ensure_model(model)
        response = self._call(
            self.config.analysis_timeout,
            "chat",
            model=model,
            messages=messages,
            options={"temperature": self.config.temperature, "num_predict": max_tokens},
        )
        content = response["message"]["content"] or ""
        if not content.strip():
            raise BackendResponseError(self.kind.value, "empty completion")
        return content

    def analyze(self, frames: list[ExtractedFrame], lab: Lab, model_hint: str | None = None) -> str:
        narration = self._chat(metadata_messages(lab), model_hint, self.config.max_tokens)
        return mark_uniformly(narration, ConfidenceLevel.HIGH)

    def suggest(self, field_name: str, partial_value: str, context: str = "") -> list[str]:
        if len(partial_value.strip()) < MIN_SUGGESTION_LENGTH:
            return []
        raw = self._chat(suggestion_messages(field_name, partial_value, context), None, SUGGESTION_MAX_TOKENS)
        return parse_suggestions(raw)
