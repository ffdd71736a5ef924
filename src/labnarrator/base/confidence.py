"""Confidence markers in narration text.

Backends prefix every narration claim with one of three literal markers:
``[HIGH]`` (visually confirmed), ``[MEDIUM]`` (likely from context) or ``[LOW]``
(inferred). Markers are matched case-sensitively; any other bracketed token is
left in the text untouched.
"""

from __future__ import annotations

import re
from typing import Iterable

from labnarrator.base.description import ConfidenceLevel, NarrationSegment

__all__ = [
    "CONFIDENCE_MARKERS",
    "parse_segments",
    "score_overall",
    "min_confidence",
    "mark_uniformly",
]

CONFIDENCE_MARKERS: dict[ConfidenceLevel, str] = {
    ConfidenceLevel.HIGH: "[HIGH]",
    ConfidenceLevel.MEDIUM: "[MEDIUM]",
    ConfidenceLevel.LOW: "[LOW]",
}

# HIGH wins over LOW, LOW over MEDIUM when a line carries several markers.
_MARKER_PRECEDENCE: tuple[ConfidenceLevel, ...] = (
    ConfidenceLevel.HIGH,
    ConfidenceLevel.LOW,
    ConfidenceLevel.MEDIUM,
)

_MARKER_PATTERN = re.compile(r"\s*\[(?:HIGH|MEDIUM|LOW)\]\s*")

HIGH_BAND = 2.5
MEDIUM_BAND = 1.5


def _line_confidence(line: str) -> ConfidenceLevel:
    for level in _MARKER_PRECEDENCE:
        if CONFIDENCE_MARKERS[level] in line:
            return level
    return ConfidenceLevel.MEDIUM


def _strip_markers(line: str) -> str:
    return _MARKER_PATTERN.sub(" ", line).strip()


def parse_segments(raw_text: str) -> list[NarrationSegment]:
    """Split raw narration text into confidence-tagged segments.

    Args:
        raw_text: Narration text as returned by an analysis backend

    Returns:
        One segment per non-empty line, in original order. Lines without a
        marker default to MEDIUM confidence.
    """
    segments = []
    for line in raw_text.splitlines():
        if not line.strip():
            continue
        segments.append(NarrationSegment(text=_strip_markers(line), confidence=_line_confidence(line)))
    return segments


def score_overall(segments: Iterable[NarrationSegment]) -> ConfidenceLevel:
    """Score a list of segments.

    Weights are HIGH=3, MEDIUM=2, LOW=1. An average of at least 2.5 scores HIGH,
    at least 1.5 scores MEDIUM, anything else LOW. No segments scores LOW.
    """
    weights = [int(segment.confidence) for segment in segments]
    if not weights:
        return ConfidenceLevel.LOW

    average = sum(weights) / len(weights)
    if average >= HIGH_BAND:
        return ConfidenceLevel.HIGH
    if average >= MEDIUM_BAND:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


def min_confidence(levels: Iterable[ConfidenceLevel]) -> ConfidenceLevel:
    """Return the least confident level, or LOW if there are none."""
    return min(levels, default=ConfidenceLevel.LOW)


def mark_uniformly(raw_text: str, level: ConfidenceLevel) -> str:
    """Tag every non-empty line with the marker for ``level``, replacing any markers it already has."""
    marker = CONFIDENCE_MARKERS[level]
    lines = []
    for line in raw_text.splitlines():
        if line.strip():
            line = f"{marker} {_strip_markers(line)}"
        lines.append(line)
    return "\n".join(lines)
