from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar

import openai
from openai import OpenAI

from labnarrator.ai.config import NarrationConfig
from labnarrator.ai.exceptions import BackendResponseError, BackendTimeoutError
from labnarrator.ai.prompts import parse_suggestions, suggestion_messages
from labnarrator.base.description import BackendKind
from labnarrator.base.frames import ExtractedFrame
from labnarrator.base.lab import Lab

__all__ = ["BackendStatus", "AnalysisBackend", "ChatCompletionBackend", "MIN_SUGGESTION_LENGTH"]

logger = logging.getLogger(__name__)

MIN_SUGGESTION_LENGTH = 3
SUGGESTION_MAX_TOKENS = 100


@dataclass
class BackendStatus:
    """Availability report of an analysis backend.

    Attributes:
        available: Whether the backend can be used right now
        backend: Which backend the report is about (None when nothing is available)
        models: Model identifiers the backend reported
        message: Optional human-readable status
    """

    available: bool
    backend: BackendKind | None = None
    models: list[str] = field(default_factory=list)
    message: str | None = None

    @classmethod
    def unavailable(cls, backend: BackendKind | None = None, message: str | None = None) -> BackendStatus:
        return cls(available=False, backend=backend, message=message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "available": self.available,
            "backend": self.backend.value if self.backend else "none",
            "models": list(self.models),
            "message": self.message,
        }


class AnalysisBackend(ABC):
    """A narration backend: turns extracted frames and lab context into raw narration text.

    The raw text carries inline confidence markers and is parsed by
    :func:`labnarrator.base.confidence.parse_segments`, whichever backend produced it.
    """

    kind: ClassVar[BackendKind]

    def __init__(self, config: NarrationConfig | None = None):
        self.config = config if config is not None else NarrationConfig.from_config()

    @abstractmethod
    def probe(self) -> BackendStatus:
        """Report whether this backend is usable, without raising."""

    @abstractmethod
    def analyze(self, frames: list[ExtractedFrame], lab: Lab, model_hint: str | None = None) -> str:
        """Produce raw narration text for the given frames.

        Raises:
            BackendError: On timeouts, error responses or empty completions
        """

    def suggest(self, field_name: str, partial_value: str, context: str = "") -> list[str]:
        """Suggest completions for an editor field. Backends without text generation return nothing."""
        return []

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value})"


class ChatCompletionBackend(AnalysisBackend):
    """Shared plumbing for backends speaking the OpenAI chat-completion protocol."""

    def __init__(self, config: NarrationConfig | None = None):
        super().__init__(config)
        self._client: OpenAI | None = None

    @abstractmethod
    def _create_client(self) -> OpenAI:
        """Create the OpenAI-compatible client for this backend."""

    @abstractmethod
    def _default_model(self) -> str:
        """Model used when the caller gives no hint."""

    def _get_client(self) -> OpenAI:
        if self._client is None:
            self._client = self._create_client()
        return self._client

    def _complete(self, messages: list[dict[str, Any]], model: str | None = None, max_tokens: int | None = None) -> str:
        """Run one chat completion and return its text."""
        model = model or self._default_model()
        try:
            response = self._get_client().chat.completions.create(
                model=model,
                messages=messages,  # type: ignore[arg-type]
                max_tokens=max_tokens or self.config.max_tokens,
                temperature=self.config.temperature,
            )
        except openai.APITimeoutError as e:
            raise BackendTimeoutError(self.kind.value, self.config.analysis_timeout) from e
        except openai.APIStatusError as e:
            raise BackendResponseError(self.kind.value, e.message, status_code=e.status_code) from e
        except openai.APIConnectionError as e:
            raise BackendResponseError(self.kind.value, f"connection failed: {e}") from e
        except openai.APIError as e:
            raise BackendResponseError(self.kind.value, str(e)) from e

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise BackendResponseError(self.kind.value, "empty completion")
        return content

    def suggest(self, field_name: str, partial_value: str, context: str = "") -> list[str]:
        if len(partial_value.strip()) < MIN_SUGGESTION_LENGTH:
            return []
        raw = self._complete(
            suggestion_messages(field_name, partial_value, context), max_tokens=SUGGESTION_MAX_TOKENS
        )
        return parse_suggestions(raw)
