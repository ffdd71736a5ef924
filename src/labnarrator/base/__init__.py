from .confidence import CONFIDENCE_MARKERS, mark_uniformly, min_confidence, parse_segments, score_overall
from .description import (
    BackendKind,
    ConfidenceLevel,
    LabNarration,
    MediaNarrationResult,
    NarrationResult,
    NarrationSegment,
)
from .exceptions import InvalidInputError, LabNarratorError, MediaError, MediaLoadError
from .frames import ExtractedFrame, FrameExtractor, extract_frames, mean_absolute_difference, split_quadrants
from .lab import Lab, LabStatus, MediaAsset, MediaKind
from .progress import configure

__all__ = [
    # Lab
    "Lab",
    "LabStatus",
    "MediaAsset",
    "MediaKind",
    # Narration data
    "BackendKind",
    "ConfidenceLevel",
    "NarrationSegment",
    "NarrationResult",
    "MediaNarrationResult",
    "LabNarration",
    # Confidence
    "CONFIDENCE_MARKERS",
    "parse_segments",
    "score_overall",
    "min_confidence",
    "mark_uniformly",
    # Frames
    "ExtractedFrame",
    "FrameExtractor",
    "extract_frames",
    "mean_absolute_difference",
    "split_quadrants",
    # Exceptions
    "LabNarratorError",
    "MediaError",
    "MediaLoadError",
    "InvalidInputError",
    # Progress
    "configure",
]
