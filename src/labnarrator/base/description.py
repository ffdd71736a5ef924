from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any

__all__ = [
    "BackendKind",
    "ConfidenceLevel",
    "NarrationSegment",
    "NarrationResult",
    "MediaNarrationResult",
    "LabNarration",
]


class BackendKind(str, Enum):
    """Provenance of a narration: which analysis path produced it."""

    ON_DEVICE = "on_device"
    BROWSER_EMBEDDED = "embedded"
    REMOTE = "remote"
    CLOUD_PROXY = "cloud"
    TEXT_ONLY = "text"

    @property
    def label(self) -> str:
        return _BACKEND_LABELS[self]


_BACKEND_LABELS: dict[BackendKind, str] = {
    BackendKind.ON_DEVICE: "on-device AI",
    BackendKind.BROWSER_EMBEDDED: "embedded AI",
    BackendKind.REMOTE: "remote API",
    BackendKind.CLOUD_PROXY: "cloud AI",
    BackendKind.TEXT_ONLY: "text-only narration",
}


class ConfidenceLevel(IntEnum):
    """Confidence of a narration claim.

    Integer values double as scoring weights, so levels compare naturally
    (``HIGH > MEDIUM > LOW``).
    """

    LOW = 1
    MEDIUM = 2
    HIGH = 3

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def from_label(cls, label: str) -> ConfidenceLevel:
        try:
            return cls[label.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown confidence level: {label!r}") from None


@dataclass(frozen=True)
class NarrationSegment:
    """A single narration line with its confidence.

    Attributes:
        text: Narration text with the confidence marker removed
        confidence: Confidence parsed from the marker (MEDIUM when absent)
    """

    text: str
    confidence: ConfidenceLevel

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "confidence": self.confidence.label}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NarrationSegment:
        return cls(text=data["text"], confidence=ConfidenceLevel.from_label(data["confidence"]))


@dataclass
class NarrationResult:
    """Narration produced for one media asset, or for a whole lab.

    Attributes:
        narration_text: Raw narration text as produced by the backend
        segments: Parsed narration segments in original order
        overall_confidence: Aggregate confidence of the narration
        source: Backend that produced the narration
    """

    narration_text: str
    segments: list[NarrationSegment]
    overall_confidence: ConfidenceLevel
    source: BackendKind

    def to_dict(self) -> dict[str, Any]:
        return {
            "narration": self.narration_text,
            "segments": [segment.to_dict() for segment in self.segments],
            "overallConfidence": self.overall_confidence.label,
            "source": self.source.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NarrationResult:
        return cls(
            narration_text=data["narration"],
            segments=[NarrationSegment.from_dict(segment) for segment in data.get("segments", [])],
            overall_confidence=ConfidenceLevel.from_label(data["overallConfidence"]),
            source=BackendKind(data["source"]),
        )


@dataclass
class MediaNarrationResult:
    """Narration result bound to the index of the media asset it describes."""

    media_index: int
    result: NarrationResult

    def to_dict(self) -> dict[str, Any]:
        return {"mediaIndex": self.media_index, "result": self.result.to_dict()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MediaNarrationResult:
        return cls(media_index=int(data["mediaIndex"]), result=NarrationResult.from_dict(data["result"]))


@dataclass
class LabNarration:
    """Output of a whole-lab narration run.

    Attributes:
        media_results: Per-asset results, in the order the assets were narrated
        summary: Lab-level result aggregated from ``media_results``
    """

    summary: NarrationResult
    media_results: list[MediaNarrationResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mediaResults": [media_result.to_dict() for media_result in self.media_results],
            "summary": self.summary.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LabNarration:
        return cls(
            summary=NarrationResult.from_dict(data["summary"]),
            media_results=[MediaNarrationResult.from_dict(item) for item in data.get("mediaResults", [])],
        )
