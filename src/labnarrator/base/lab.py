from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from labnarrator.base.description import BackendKind, ConfidenceLevel, LabNarration

__all__ = ["MediaKind", "LabStatus", "MediaAsset", "Lab"]


class MediaKind(str, Enum):
    """Kind of recorded media attached to a lab."""

    VIDEO = "video"
    GIF = "gif"
    IMAGE = "image"


class LabStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"


@dataclass
class MediaAsset:
    """A recorded media asset attached to a lab.

    Attributes:
        url: Location of the media (http(s) URL or local path)
        kind: Media kind, decides how frames are extracted
        caption: Optional human-written caption
        narration: Narration text written back by the narration pipeline
        narration_confidence: Overall confidence of ``narration``
        narration_source: Backend that produced ``narration``
    """

    url: str
    kind: MediaKind
    caption: str | None = None
    narration: str | None = None
    narration_confidence: ConfidenceLevel | None = None
    narration_source: BackendKind | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"url": self.url, "type": self.kind.value}
        if self.caption is not None:
            data["caption"] = self.caption
        if self.narration is not None:
            data["narration"] = self.narration
        if self.narration_confidence is not None:
            data["narrationConfidence"] = self.narration_confidence.label
        if self.narration_source is not None:
            data["narrationSource"] = self.narration_source.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MediaAsset:
        confidence = data.get("narrationConfidence")
        source = data.get("narrationSource")
        return cls(
            url=data["url"],
            kind=MediaKind(data.get("type", MediaKind.IMAGE.value)),
            caption=data.get("caption"),
            narration=data.get("narration"),
            narration_confidence=ConfidenceLevel.from_label(confidence) if confidence else None,
            narration_source=BackendKind(source) if source else None,
        )


@dataclass
class Lab:
    """A lab write-up as stored by the content store.

    The narration pipeline only reads ``title``, ``description``, ``objective``,
    ``environment``, ``tags``, ``steps`` and ``outcome``, and only writes the
    narration fields (see :meth:`apply_narration`).
    """

    title: str
    objective: str = ""
    environment: str = ""
    outcome: str = ""
    description: str = ""
    tags: list[str] = field(default_factory=list)
    steps: list[str] = field(default_factory=list)
    media: list[MediaAsset] = field(default_factory=list)
    ai_narration: str | None = None
    narration_source: BackendKind | None = None
    status: LabStatus = LabStatus.DRAFT
    id: str | None = None

    @property
    def filled_steps(self) -> list[str]:
        """Steps with blank entries removed."""
        return [step.strip() for step in self.steps if step.strip()]

    def apply_narration(self, narration: LabNarration) -> Lab:
        """Return a copy of this lab with narration results written back.

        Applying the same narration twice yields the same lab.
        """
        media = [replace(asset) for asset in self.media]
        for media_result in narration.media_results:
            if not 0 <= media_result.media_index < len(media):
                continue
            result = media_result.result
            media[media_result.media_index] = replace(
                media[media_result.media_index],
                narration=result.narration_text,
                narration_confidence=result.overall_confidence,
                narration_source=result.source,
            )

        return replace(
            self,
            media=media,
            ai_narration=narration.summary.narration_text,
            narration_source=narration.summary.source,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "title": self.title,
            "description": self.description,
            "tags": list(self.tags),
            "objective": self.objective,
            "environment": self.environment,
            "steps": list(self.steps),
            "outcome": self.outcome,
            "media": [asset.to_dict() for asset in self.media],
            "status": self.status.value,
        }
        if self.id is not None:
            data["id"] = self.id
        if self.ai_narration is not None:
            data["aiNarration"] = self.ai_narration
        if self.narration_source is not None:
            data["narrationSource"] = self.narration_source.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Lab:
        source = data.get("narrationSource")
        return cls(
            id=data.get("id") or data.get("_id"),
            title=data["title"],
            description=data.get("description", ""),
            tags=list(data.get("tags", [])),
            objective=data.get("objective", ""),
            environment=data.get("environment", ""),
            steps=list(data.get("steps", [])),
            outcome=data.get("outcome", ""),
            media=[MediaAsset.from_dict(asset) for asset in data.get("media") or []],
            ai_narration=data.get("aiNarration"),
            narration_source=BackendKind(source) if source else None,
            status=LabStatus(data.get("status") or LabStatus.DRAFT.value),
        )
