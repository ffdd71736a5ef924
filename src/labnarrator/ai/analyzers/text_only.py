from __future__ import annotations

from labnarrator.base.description import BackendKind, ConfidenceLevel, NarrationResult, NarrationSegment
from labnarrator.base.lab import Lab

__all__ = ["TextOnlyNarrator", "UNVERIFIED_NOTICE"]

UNVERIFIED_NOTICE = (
    "Note: This narration was generated from written step descriptions only, not from visual analysis "
    "of the media. It has not been visually verified."
)


def _lower_first(text: str) -> str:
    return text[:1].lower() + text[1:]


class TextOnlyNarrator:
    """Offline narration templated from lab metadata.

    This is the terminal fallback of the narration cascade and cannot fail.
    Lines are tagged MEDIUM but the overall confidence is always LOW: the
    narration was never checked against the recording.
    """

    kind = BackendKind.TEXT_ONLY

    def lines(self, lab: Lab) -> list[str]:
        lines: list[str] = []
        objective = lab.objective.strip().rstrip(".")
        if objective:
            lines.append(f'In this lab exercise, "{lab.title}", the objective was to {_lower_first(objective)}.')
        else:
            lines.append(f'This narration covers the lab exercise "{lab.title}".')

        if lab.environment.strip():
            lines.append(f"The lab environment consisted of {lab.environment.strip()}.")

        steps = lab.filled_steps
        if steps:
            lines.append("The following steps were performed:")
            lines.extend(f"{i}. {step}" for i, step in enumerate(steps, start=1))

        if lab.outcome.strip():
            lines.append(f"The outcome: {lab.outcome.strip()}")

        lines.append(UNVERIFIED_NOTICE)
        return lines

    def narrate(self, lab: Lab) -> NarrationResult:
        lines = self.lines(lab)
        return NarrationResult(
            narration_text="\n".join(lines),
            segments=[NarrationSegment(text=line, confidence=ConfidenceLevel.MEDIUM) for line in lines],
            overall_confidence=ConfidenceLevel.LOW,
            source=self.kind,
        )
