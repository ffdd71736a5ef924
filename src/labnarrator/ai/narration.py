"""Narration orchestration: frame extraction, backend selection and fallback."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum

from labnarrator.ai.analyzers.base import AnalysisBackend, BackendStatus
from labnarrator.ai.analyzers.cloud import CloudProxyAnalyzer
from labnarrator.ai.analyzers.embedded import EmbeddedAnalyzer
from labnarrator.ai.analyzers.on_device import OnDeviceAnalyzer
from labnarrator.ai.analyzers.remote import RemoteAnalyzer
from labnarrator.ai.analyzers.text_only import TextOnlyNarrator
from labnarrator.ai.backends import NARRATION_MODES, NarrationMode
from labnarrator.ai.config import NarrationConfig
from labnarrator.ai.exceptions import BackendUnavailableError, UnsupportedBackendError
from labnarrator.ai.probe import BackendProbe
from labnarrator.base.confidence import min_confidence, parse_segments, score_overall
from labnarrator.base.description import (
    BackendKind,
    ConfidenceLevel,
    LabNarration,
    MediaNarrationResult,
    NarrationResult,
)
from labnarrator.base.exceptions import InvalidInputError, LabNarratorError, MediaLoadError
from labnarrator.base.frames import ExtractedFrame, FrameExtractor
from labnarrator.base.lab import Lab
from labnarrator.base.progress import progress_iter

__all__ = [
    "ProgressStage",
    "NarrationProgress",
    "ProgressCallback",
    "NarrationOrchestrator",
    "SUMMARY_SEPARATOR",
    "resolve_primary",
    "summarize",
]

logger = logging.getLogger(__name__)

SUMMARY_SEPARATOR = "\n\n---\n\n"

_LOCAL_KINDS = (BackendKind.ON_DEVICE, BackendKind.BROWSER_EMBEDDED)


class ProgressStage(str, Enum):
    EXTRACTING = "extracting"
    ANALYZING_PRIMARY = "analyzing-primary"
    ANALYZING_SECONDARY = "analyzing-secondary"
    GENERATING_TEXT = "generating-text"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class NarrationProgress:
    """A stage transition reported to the progress callback.

    Attributes:
        stage: Stage being entered
        message: Human-readable description, including why a fallback was taken
        current: 1-based position of the asset being narrated
        total: Number of assets in this run
    """

    stage: ProgressStage
    message: str
    current: int
    total: int


ProgressCallback = Callable[[NarrationProgress], None]


def resolve_primary(status: BackendStatus | None, config: NarrationConfig, mode: NarrationMode) -> BackendKind | None:
    """Pick the first backend to try for a requested mode.

    Args:
        status: Probe result; only consulted in ``auto`` and ``on_device`` modes
        config: Narration settings
        mode: Requested narration mode

    Returns:
        The backend to try first, or None when ``auto`` found nothing usable.

    Raises:
        BackendUnavailableError: ``on_device`` requested but no local backend is available
        InvalidInputError: ``remote`` or ``cloud`` requested but not configured
        UnsupportedBackendError: Unknown mode
    """
    if mode == "auto":
        return status.backend if status is not None and status.available else None
    if mode == "on_device":
        if status is not None and status.available and status.backend in _LOCAL_KINDS:
            return status.backend
        message = status.message if status is not None and status.message else "no local backend found"
        raise BackendUnavailableError(f"On-device narration unavailable: {message}")
    if mode == "remote":
        if not config.remote_configured:
            raise InvalidInputError("Remote narration requires an API key for the configured provider")
        return BackendKind.REMOTE
    if mode == "cloud":
        if not config.cloud_configured:
            raise InvalidInputError("Cloud narration requires a configured proxy_url")
        return BackendKind.CLOUD_PROXY
    if mode == "text":
        return BackendKind.TEXT_ONLY
    raise UnsupportedBackendError(str(mode), list(NARRATION_MODES))


def summarize(results: list[MediaNarrationResult], fallback: NarrationResult | None = None) -> NarrationResult:
    """Aggregate per-asset results into one lab-level result.

    Confidence is the minimum across assets and the source is the first
    asset's backend. ``fallback`` is returned when nothing was narrated.
    """
    if not results:
        if fallback is None:
            raise ValueError("Nothing to summarize")
        return fallback
    return NarrationResult(
        narration_text=SUMMARY_SEPARATOR.join(r.result.narration_text for r in results),
        segments=[segment for r in results for segment in r.result.segments],
        overall_confidence=min_confidence(r.result.overall_confidence for r in results),
        source=results[0].result.source,
    )


class NarrationOrchestrator:
    """Narrates lab recordings, choosing and falling back between backends.

    In ``auto`` mode each asset goes through a sequential cascade: the backend
    reported by the probe, then the cloud relay (when configured) if the first
    one failed or came back with low confidence, then the text-only template,
    which cannot fail. Any other mode pins a single backend and lets its errors
    propagate. Media that cannot be loaded always gets the text-only narration.

    Example:
        >>> orchestrator = NarrationOrchestrator(NarrationConfig.from_config())
        >>> narration = orchestrator.narrate_lab(lab, on_progress=print)
        >>> lab = lab.apply_narration(narration)
    """

    def __init__(
        self,
        config: NarrationConfig | None = None,
        *,
        extractor: FrameExtractor | None = None,
        probe: BackendProbe | None = None,
        backends: Mapping[BackendKind, AnalysisBackend] | None = None,
        text_narrator: TextOnlyNarrator | None = None,
    ):
        self.config = config if config is not None else NarrationConfig.from_config()
        self.extractor = extractor or FrameExtractor()
        if backends is None:
            backends = {
                BackendKind.BROWSER_EMBEDDED: EmbeddedAnalyzer(self.config),
                BackendKind.ON_DEVICE: OnDeviceAnalyzer(self.config),
                BackendKind.REMOTE: RemoteAnalyzer(self.config),
                BackendKind.CLOUD_PROXY: CloudProxyAnalyzer(self.config),
            }
        self.backends = dict(backends)
        self.probe = probe or BackendProbe(
            self.config, {kind: b for kind, b in self.backends.items() if kind != BackendKind.CLOUD_PROXY}
        )
        self.text_narrator = text_narrator or TextOnlyNarrator()

    def _backend(self, kind: BackendKind) -> AnalysisBackend:
        try:
            return self.backends[kind]
        except KeyError:
            raise BackendUnavailableError(f"No {kind.label} backend registered") from None

    def analyze_with(
        self, kind: BackendKind, frames: list[ExtractedFrame], lab: Lab, model: str | None
    ) -> NarrationResult:
        raw = self._backend(kind).analyze(frames, lab, model)
        segments = parse_segments(raw)
        return NarrationResult(
            narration_text=raw,
            segments=segments,
            overall_confidence=score_overall(segments),
            source=kind,
        )

    def narrate_text_only(self, lab: Lab) -> NarrationResult:
        return self.text_narrator.narrate(lab)

    def narrate_lab(
        self,
        lab: Lab,
        *,
        mode: NarrationMode = "auto",
        media_indices: list[int] | None = None,
        on_progress: ProgressCallback | None = None,
        should_cancel: Callable[[], bool] | None = None,
        model: str | None = None,
    ) -> LabNarration:
        """Narrate the lab's media assets one after another.

        Args:
            lab: Lab whose media should be narrated
            mode: ``auto`` for the fallback cascade, or one of ``on_device``,
                ``remote``, ``cloud``, ``text`` to pin a backend
            media_indices: Subset of assets to narrate; out-of-range indices are skipped
            on_progress: Called synchronously at every stage transition
            should_cancel: Checked before each asset; when it returns True no
                further assets are narrated and no more progress is reported
            model: Model hint passed through to the backends

        Returns:
            Per-asset results and the lab-level summary.

        Raises:
            LabNarratorError: Only in explicit modes, when the pinned backend fails
        """
        if mode not in NARRATION_MODES:
            raise UnsupportedBackendError(str(mode), list(NARRATION_MODES))

        indices = self._select_indices(lab, media_indices)
        run = _Run(self, lab, mode, len(indices), on_progress, model)

        results: list[MediaNarrationResult] = []
        for position, index in enumerate(progress_iter(indices, desc="Narrating media", total=len(indices)), start=1):
            if should_cancel is not None and should_cancel():
                logger.info("Narration cancelled after %d of %d asset(s)", position - 1, len(indices))
                run.cancelled = True
                break
            results.append(MediaNarrationResult(media_index=index, result=run.narrate_asset(index, position)))

        summary = summarize(results) if results else self.narrate_text_only(lab)
        run.emit(ProgressStage.COMPLETE, "Narration complete", len(results))
        return LabNarration(summary=summary, media_results=results)

    def narrate_media(
        self,
        lab: Lab,
        media_index: int,
        *,
        mode: NarrationMode = "auto",
        on_progress: ProgressCallback | None = None,
        model: str | None = None,
    ) -> NarrationResult:
        """Narrate a single media asset of ``lab``."""
        if not 0 <= media_index < len(lab.media):
            raise InvalidInputError(f"Media index {media_index} out of range for {len(lab.media)} asset(s)")
        if mode not in NARRATION_MODES:
            raise UnsupportedBackendError(str(mode), list(NARRATION_MODES))
        run = _Run(self, lab, mode, 1, on_progress, model)
        result = run.narrate_asset(media_index, 1)
        run.emit(ProgressStage.COMPLETE, "Narration complete", 1)
        return result

    def suggest(
        self, field_name: str, partial_value: str, context: str = "", *, mode: NarrationMode = "auto"
    ) -> list[str]:
        """Suggest up to three completions for an editor field.

        Uses the same backend resolution as narration. In ``auto`` mode errors
        are logged and an empty list is returned.
        """
        if len(partial_value.strip()) < 3 or mode == "text":
            return []

        if mode != "auto":
            status = self.probe.check_availability() if mode == "on_device" else None
            kind = resolve_primary(status, self.config, mode)
            return self._backend(kind).suggest(field_name, partial_value, context)[:3]

        kind = resolve_primary(self.probe.check_availability(), self.config, mode)
        if kind is None:
            return []
        try:
            return self._backend(kind).suggest(field_name, partial_value, context)[:3]
        except LabNarratorError as e:
            logger.warning("Suggestions from %s failed: %s", kind.label, e)
            return []

    @staticmethod
    def _select_indices(lab: Lab, media_indices: list[int] | None) -> list[int]:
        if media_indices is None:
            return list(range(len(lab.media)))
        selected = []
        for index in dict.fromkeys(media_indices):
            if 0 <= index < len(lab.media):
                selected.append(index)
            else:
                logger.warning("Skipping media index %d, lab has %d asset(s)", index, len(lab.media))
        return selected


class _Run:
    """State of one orchestrator run: progress reporting and the cached probe result."""

    def __init__(
        self,
        orchestrator: NarrationOrchestrator,
        lab: Lab,
        mode: NarrationMode,
        total: int,
        on_progress: ProgressCallback | None,
        model: str | None,
    ):
        self.orchestrator = orchestrator
        self.config = orchestrator.config
        self.lab = lab
        self.mode = mode
        self.total = total
        self.on_progress = on_progress
        self.model = model
        self.cancelled = False
        self._status: BackendStatus | None = None

    def emit(self, stage: ProgressStage, message: str, current: int) -> None:
        if self.cancelled or self.on_progress is None:
            return
        self.on_progress(NarrationProgress(stage=stage, message=message, current=current, total=self.total))

    def status(self) -> BackendStatus:
        if self._status is None:
            self._status = self.orchestrator.probe.check_availability()
        return self._status

    def primary(self) -> BackendKind | None:
        status = self.status() if self.mode in ("auto", "on_device") else None
        return resolve_primary(status, self.config, self.mode)

    def text_only(self, message: str, current: int) -> NarrationResult:
        self.emit(ProgressStage.GENERATING_TEXT, message, current)
        return self.orchestrator.narrate_text_only(self.lab)

    def narrate_asset(self, index: int, current: int) -> NarrationResult:
        if self.mode == "text":
            return self.text_only("Generating text-only narration", current)

        asset = self.lab.media[index]
        self.emit(ProgressStage.EXTRACTING, f"Extracting frames from {asset.kind.value} {current}/{self.total}", current)
        try:
            frames = self.orchestrator.extractor.extract(asset.url, asset.kind)
        except MediaLoadError as e:
            logger.warning("Could not load media %d (%s): %s", index, asset.url, e)
            return self.text_only("Media could not be loaded, generating text-only narration", current)

        if self.mode == "auto":
            return self._cascade(frames, current)
        return self._explicit(frames, current)

    def _explicit(self, frames: list[ExtractedFrame], current: int) -> NarrationResult:
        try:
            kind = self.primary()
            if kind is None:
                raise BackendUnavailableError(f"No backend resolved for {self.mode} narration")
            self.emit(ProgressStage.ANALYZING_PRIMARY, f"Analyzing with {kind.label}", current)
            return self.orchestrator.analyze_with(kind, frames, self.lab, self.model)
        except LabNarratorError as e:
            self.emit(ProgressStage.ERROR, str(e), current)
            raise

    def _cascade(self, frames: list[ExtractedFrame], current: int) -> NarrationResult:
        kind = self.primary()
        if kind is None:
            reason = "no AI backend available"
        else:
            self.emit(ProgressStage.ANALYZING_PRIMARY, f"Analyzing with {kind.label}", current)
            try:
                result = self.orchestrator.analyze_with(kind, frames, self.lab, self.model)
            except LabNarratorError as e:
                logger.warning("%s failed: %s", kind.label, e)
                reason = f"{kind.label} failed"
            else:
                if result.overall_confidence > ConfidenceLevel.LOW:
                    return result
                logger.info("%s returned low confidence", kind.label)
                reason = f"{kind.label} returned low confidence"

        if self.config.cloud_configured:
            cloud = BackendKind.CLOUD_PROXY
            self.emit(ProgressStage.ANALYZING_SECONDARY, f"{reason}, retrying with {cloud.label}", current)
            try:
                return self.orchestrator.analyze_with(cloud, frames, self.lab, self.model)
            except LabNarratorError as e:
                logger.warning("%s failed: %s", cloud.label, e)
                reason = f"{cloud.label} failed"

        logger.info("%s, falling back to text-only narration", reason)
        return self.text_only(f"{reason}, generating text-only narration", current)
