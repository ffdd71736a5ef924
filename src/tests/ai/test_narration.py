from unittest.mock import MagicMock, patch

import pytest

from labnarrator.ai.analyzers.base import AnalysisBackend, BackendStatus
from labnarrator.ai.analyzers.embedded import EmbeddedAnalyzer
from labnarrator.ai.analyzers.text_only import TextOnlyNarrator
from labnarrator.ai.exceptions import BackendResponseError, BackendTimeoutError, BackendUnavailableError
from labnarrator.ai.narration import (
    SUMMARY_SEPARATOR,
    NarrationOrchestrator,
    ProgressStage,
    resolve_primary,
    summarize,
)
from labnarrator.base.description import (
    BackendKind,
    ConfidenceLevel,
    MediaNarrationResult,
    NarrationResult,
    NarrationSegment,
)
from labnarrator.base.exceptions import InvalidInputError, MediaLoadError
from labnarrator.base.frames import ExtractedFrame
from labnarrator.base.lab import Lab

FRAMES = [ExtractedFrame(full_image="data:image/jpeg;base64,AAAA", quadrant_tiles=["a", "b", "c", "d"])]


def _backend(kind: BackendKind, narration: str = "[HIGH] Did the thing") -> MagicMock:
    backend = MagicMock(spec=AnalysisBackend)
    backend.kind = kind
    backend.analyze.return_value = narration
    backend.suggest.return_value = []
    return backend


def _probe(backend: BackendKind | None) -> MagicMock:
    probe = MagicMock()
    if backend is None:
        probe.check_availability.return_value = BackendStatus.unavailable(None, "No AI backend available")
    else:
        probe.check_availability.return_value = BackendStatus(available=True, backend=backend)
    return probe


def _extractor(side_effect=None) -> MagicMock:
    extractor = MagicMock()
    if side_effect is None:
        extractor.extract.return_value = FRAMES
    else:
        extractor.extract.side_effect = side_effect
    return extractor


def _result(text: str, confidence: ConfidenceLevel, source: BackendKind) -> NarrationResult:
    return NarrationResult(text, [NarrationSegment(text, confidence)], confidence, source)


@pytest.fixture
def backends():
    return {
        BackendKind.ON_DEVICE: _backend(BackendKind.ON_DEVICE),
        BackendKind.BROWSER_EMBEDDED: _backend(BackendKind.BROWSER_EMBEDDED),
        BackendKind.REMOTE: _backend(BackendKind.REMOTE),
        BackendKind.CLOUD_PROXY: _backend(BackendKind.CLOUD_PROXY, "[HIGH] Cloud narration"),
    }


@pytest.fixture
def text_narrator():
    return MagicMock(wraps=TextOnlyNarrator())


class TestResolvePrimary:
    def test_auto_uses_probe_result(self, config):
        assert resolve_primary(BackendStatus(True, BackendKind.REMOTE), config, "auto") == BackendKind.REMOTE
        assert resolve_primary(BackendStatus.unavailable(), config, "auto") is None

    def test_on_device_requires_local_backend(self, config):
        status = BackendStatus(True, BackendKind.BROWSER_EMBEDDED)
        assert resolve_primary(status, config, "on_device") == BackendKind.BROWSER_EMBEDDED
        with pytest.raises(BackendUnavailableError):
            resolve_primary(BackendStatus(True, BackendKind.REMOTE), config, "on_device")
        with pytest.raises(BackendUnavailableError):
            resolve_primary(BackendStatus.unavailable(), config, "on_device")

    def test_explicit_modes_require_configuration(self, config, cloud_config):
        with pytest.raises(InvalidInputError):
            resolve_primary(None, config, "cloud")
        with pytest.raises(InvalidInputError):
            resolve_primary(None, config, "remote")
        assert resolve_primary(None, cloud_config, "cloud") == BackendKind.CLOUD_PROXY
        assert resolve_primary(None, config, "text") == BackendKind.TEXT_ONLY


class TestExplicitMode:
    def test_on_device_unavailable_raises_without_fallback(self, config, sample_lab, backends, text_narrator):
        events = []
        orchestrator = NarrationOrchestrator(
            config, extractor=_extractor(), probe=_probe(None), backends=backends, text_narrator=text_narrator
        )

        with pytest.raises(BackendUnavailableError):
            orchestrator.narrate_lab(sample_lab, mode="on_device", on_progress=events.append)

        backends[BackendKind.CLOUD_PROXY].analyze.assert_not_called()
        text_narrator.narrate.assert_not_called()
        assert events[-1].stage == ProgressStage.ERROR

    def test_backend_error_propagates(self, cloud_config, sample_lab, backends, text_narrator):
        backends[BackendKind.CLOUD_PROXY].analyze.side_effect = BackendTimeoutError("cloud", 60)
        orchestrator = NarrationOrchestrator(
            cloud_config, extractor=_extractor(), probe=_probe(None), backends=backends, text_narrator=text_narrator
        )

        with pytest.raises(BackendTimeoutError):
            orchestrator.narrate_lab(sample_lab, mode="cloud")
        text_narrator.narrate.assert_not_called()

    def test_cloud_not_configured(self, config, sample_lab, backends):
        orchestrator = NarrationOrchestrator(config, extractor=_extractor(), probe=_probe(None), backends=backends)
        with pytest.raises(InvalidInputError):
            orchestrator.narrate_lab(sample_lab, mode="cloud")

    def test_low_confidence_is_accepted(self, config, sample_lab, backends):
        backends[BackendKind.ON_DEVICE].analyze.return_value = "[LOW] Guessed"
        orchestrator = NarrationOrchestrator(
            config, extractor=_extractor(), probe=_probe(BackendKind.ON_DEVICE), backends=backends
        )

        result = orchestrator.narrate_media(sample_lab, 0, mode="on_device")

        assert result.source == BackendKind.ON_DEVICE
        assert result.overall_confidence == ConfidenceLevel.LOW

    def test_unresolved_backend_raises(self, cloud_config, sample_lab, backends):
        events = []
        orchestrator = NarrationOrchestrator(cloud_config, extractor=_extractor(), probe=_probe(None), backends=backends)

        with patch("labnarrator.ai.narration.resolve_primary", return_value=None):
            with pytest.raises(BackendUnavailableError):
                orchestrator.narrate_media(sample_lab, 0, mode="cloud", on_progress=events.append)

        assert events[-1].stage == ProgressStage.ERROR
        backends[BackendKind.CLOUD_PROXY].analyze.assert_not_called()

    def test_text_mode_never_probes(self, config, sample_lab, backends):
        probe = _probe(BackendKind.ON_DEVICE)
        orchestrator = NarrationOrchestrator(config, extractor=_extractor(), probe=probe, backends=backends)

        narration = orchestrator.narrate_lab(sample_lab, mode="text")

        probe.check_availability.assert_not_called()
        assert narration.summary.source == BackendKind.TEXT_ONLY

    def test_unknown_mode(self, config, sample_lab):
        with pytest.raises(ValueError):
            NarrationOrchestrator(config, probe=_probe(None), backends={}).narrate_lab(sample_lab, mode="turbo")


class TestAutoCascade:
    def test_low_confidence_retries_with_cloud_then_text(self, cloud_config, sample_lab, backends, text_narrator):
        backends[BackendKind.ON_DEVICE].analyze.return_value = "[LOW] Maybe clicked something"
        backends[BackendKind.CLOUD_PROXY].analyze.side_effect = BackendResponseError("cloud", "boom", 502)
        events = []
        orchestrator = NarrationOrchestrator(
            cloud_config,
            extractor=_extractor(),
            probe=_probe(BackendKind.ON_DEVICE),
            backends=backends,
            text_narrator=text_narrator,
        )

        result = orchestrator.narrate_media(sample_lab, 0, on_progress=events.append)

        backends[BackendKind.ON_DEVICE].analyze.assert_called_once()
        backends[BackendKind.CLOUD_PROXY].analyze.assert_called_once()
        text_narrator.narrate.assert_called_once_with(sample_lab)
        assert result.source == BackendKind.TEXT_ONLY
        assert [e.stage for e in events] == [
            ProgressStage.EXTRACTING,
            ProgressStage.ANALYZING_PRIMARY,
            ProgressStage.ANALYZING_SECONDARY,
            ProgressStage.GENERATING_TEXT,
            ProgressStage.COMPLETE,
        ]
        assert events[2].message == "on-device AI returned low confidence, retrying with cloud AI"

    def test_primary_failure_falls_back_to_cloud(self, cloud_config, sample_lab, backends):
        backends[BackendKind.BROWSER_EMBEDDED].analyze.side_effect = BackendTimeoutError("embedded", 60)
        orchestrator = NarrationOrchestrator(
            cloud_config, extractor=_extractor(), probe=_probe(BackendKind.BROWSER_EMBEDDED), backends=backends
        )

        result = orchestrator.narrate_media(sample_lab, 0)

        assert result.source == BackendKind.CLOUD_PROXY
        assert result.narration_text == "[HIGH] Cloud narration"

    def test_confident_primary_is_accepted(self, cloud_config, sample_lab, backends):
        backends[BackendKind.ON_DEVICE].analyze.return_value = "[HIGH] Deployed VM\n[MEDIUM] Checked status"
        orchestrator = NarrationOrchestrator(
            cloud_config, extractor=_extractor(), probe=_probe(BackendKind.ON_DEVICE), backends=backends
        )

        result = orchestrator.narrate_media(sample_lab, 0, model="phi-3.5-vision")

        assert result.source == BackendKind.ON_DEVICE
        assert result.overall_confidence == ConfidenceLevel.HIGH
        assert [s.text for s in result.segments] == ["Deployed VM", "Checked status"]
        backends[BackendKind.ON_DEVICE].analyze.assert_called_once_with(FRAMES, sample_lab, "phi-3.5-vision")
        backends[BackendKind.CLOUD_PROXY].analyze.assert_not_called()

    @patch("labnarrator.ai.analyzers.embedded.ollama.Client")
    def test_embedded_narration_is_high_after_pull(self, mock_client, cloud_config, sample_lab, backends):
        client = mock_client.return_value
        client.list.return_value = {"models": [{"model": "mistral:latest"}]}
        client.chat.return_value = {"message": {"content": "[LOW] a\n[MEDIUM] b\n[LOW] c"}}
        backends[BackendKind.BROWSER_EMBEDDED] = EmbeddedAnalyzer(cloud_config)
        orchestrator = NarrationOrchestrator(
            cloud_config, extractor=_extractor(), probe=_probe(BackendKind.BROWSER_EMBEDDED), backends=backends
        )

        result = orchestrator.narrate_media(sample_lab, 0)

        client.pull.assert_called_once_with(model="llama3.2")
        assert result.source == BackendKind.BROWSER_EMBEDDED
        assert result.overall_confidence == ConfidenceLevel.HIGH
        assert [s.text for s in result.segments] == ["a", "b", "c"]
        backends[BackendKind.CLOUD_PROXY].analyze.assert_not_called()

    def test_nothing_available_without_cloud_uses_text(self, config, sample_lab, backends, text_narrator):
        probe = _probe(None)
        orchestrator = NarrationOrchestrator(
            config, extractor=_extractor(), probe=probe, backends=backends, text_narrator=text_narrator
        )

        narration = orchestrator.narrate_lab(sample_lab)

        assert [r.result.source for r in narration.media_results] == [BackendKind.TEXT_ONLY] * 3
        assert text_narrator.narrate.call_count == 3
        probe.check_availability.assert_called_once()
        for backend in backends.values():
            backend.analyze.assert_not_called()

    def test_media_load_error_skips_backends(self, cloud_config, sample_lab, backends):
        extractor = _extractor(side_effect=MediaLoadError("recording-1.webm", "corrupt"))
        probe = _probe(BackendKind.ON_DEVICE)
        events = []
        orchestrator = NarrationOrchestrator(cloud_config, extractor=extractor, probe=probe, backends=backends)

        result = orchestrator.narrate_media(sample_lab, 0, mode="cloud", on_progress=events.append)

        assert result.source == BackendKind.TEXT_ONLY
        assert result.overall_confidence == ConfidenceLevel.LOW
        assert ProgressStage.GENERATING_TEXT in [e.stage for e in events]
        probe.check_availability.assert_not_called()
        for backend in backends.values():
            backend.analyze.assert_not_called()


class TestWholeLab:
    def test_summarize_is_pessimistic(self):
        results = [
            MediaNarrationResult(0, _result("first", ConfidenceLevel.HIGH, BackendKind.ON_DEVICE)),
            MediaNarrationResult(1, _result("second", ConfidenceLevel.MEDIUM, BackendKind.CLOUD_PROXY)),
            MediaNarrationResult(2, _result("third", ConfidenceLevel.LOW, BackendKind.TEXT_ONLY)),
        ]
        fallback = _result("fallback", ConfidenceLevel.LOW, BackendKind.TEXT_ONLY)

        summary = summarize(results, fallback)

        assert summary.overall_confidence == ConfidenceLevel.LOW
        assert summary.narration_text == SUMMARY_SEPARATOR.join(["first", "second", "third"])
        assert summary.source == BackendKind.ON_DEVICE
        assert [s.text for s in summary.segments] == ["first", "second", "third"]

    def test_summarize_empty_uses_fallback(self):
        fallback = _result("fallback", ConfidenceLevel.LOW, BackendKind.TEXT_ONLY)
        assert summarize([], fallback) is fallback

    def test_narrate_lab_aggregates_in_asset_order(self, config, sample_lab, backends):
        backends[BackendKind.ON_DEVICE].analyze.side_effect = ["[HIGH] video", "[MEDIUM] image", "[LOW] gif"]
        orchestrator = NarrationOrchestrator(
            config, extractor=_extractor(), probe=_probe(BackendKind.ON_DEVICE), backends=backends
        )

        narration = orchestrator.narrate_lab(sample_lab, mode="on_device")

        assert [r.media_index for r in narration.media_results] == [0, 1, 2]
        assert narration.summary.overall_confidence == ConfidenceLevel.LOW
        assert narration.summary.narration_text == SUMMARY_SEPARATOR.join(["[HIGH] video", "[MEDIUM] image", "[LOW] gif"])
        assert narration.summary.source == BackendKind.ON_DEVICE

    def test_media_indices_subset(self, config, sample_lab, backends):
        orchestrator = NarrationOrchestrator(
            config, extractor=_extractor(), probe=_probe(BackendKind.ON_DEVICE), backends=backends
        )

        narration = orchestrator.narrate_lab(sample_lab, media_indices=[2, 7, 0])

        assert [r.media_index for r in narration.media_results] == [2, 0]

    def test_lab_without_media(self, config, backends):
        lab = Lab(title="Notes only", objective="Document a setup", steps=["Write notes"])
        events = []
        orchestrator = NarrationOrchestrator(config, probe=_probe(BackendKind.ON_DEVICE), backends=backends)

        narration = orchestrator.narrate_lab(lab, on_progress=events.append)

        assert narration.media_results == []
        assert narration.summary.source == BackendKind.TEXT_ONLY
        assert narration.summary.overall_confidence == ConfidenceLevel.LOW
        assert [e.stage for e in events] == [ProgressStage.COMPLETE]

    def test_progress_reports_position(self, config, sample_lab, backends):
        events = []
        orchestrator = NarrationOrchestrator(
            config, extractor=_extractor(), probe=_probe(BackendKind.ON_DEVICE), backends=backends
        )

        orchestrator.narrate_lab(sample_lab, on_progress=events.append)

        extracting = [e for e in events if e.stage == ProgressStage.EXTRACTING]
        assert [(e.current, e.total) for e in extracting] == [(1, 3), (2, 3), (3, 3)]
        assert [e.stage for e in events].count(ProgressStage.COMPLETE) == 1

    def test_cancellation_stops_further_assets(self, config, sample_lab, backends):
        events = []
        calls = iter([False, True])
        extractor = _extractor()
        orchestrator = NarrationOrchestrator(
            config, extractor=extractor, probe=_probe(BackendKind.ON_DEVICE), backends=backends
        )

        narration = orchestrator.narrate_lab(
            sample_lab, on_progress=events.append, should_cancel=lambda: next(calls)
        )

        assert len(narration.media_results) == 1
        assert extractor.extract.call_count == 1
        assert ProgressStage.COMPLETE not in [e.stage for e in events]

    def test_written_back_to_lab(self, config, sample_lab, backends):
        orchestrator = NarrationOrchestrator(
            config, extractor=_extractor(), probe=_probe(BackendKind.ON_DEVICE), backends=backends
        )

        lab = sample_lab.apply_narration(orchestrator.narrate_lab(sample_lab))

        assert lab.narration_source == BackendKind.ON_DEVICE
        assert all(asset.narration == "[HIGH] Did the thing" for asset in lab.media)


class TestSuggest:
    def test_uses_probed_backend(self, config, backends):
        backends[BackendKind.BROWSER_EMBEDDED].suggest.return_value = ["a", "b", "c", "d"]
        orchestrator = NarrationOrchestrator(config, probe=_probe(BackendKind.BROWSER_EMBEDDED), backends=backends)

        assert orchestrator.suggest("objective", "Configure") == ["a", "b", "c"]
        backends[BackendKind.BROWSER_EMBEDDED].suggest.assert_called_once_with("objective", "Configure", "")

    def test_short_value_and_text_mode(self, config, backends):
        probe = _probe(BackendKind.ON_DEVICE)
        orchestrator = NarrationOrchestrator(config, probe=probe, backends=backends)

        assert orchestrator.suggest("objective", "Co") == []
        assert orchestrator.suggest("objective", "Configure", mode="text") == []
        probe.check_availability.assert_not_called()

    def test_auto_mode_never_raises(self, config, backends):
        backends[BackendKind.ON_DEVICE].suggest.side_effect = BackendTimeoutError("on_device", 60)
        orchestrator = NarrationOrchestrator(config, probe=_probe(BackendKind.ON_DEVICE), backends=backends)

        assert orchestrator.suggest("objective", "Configure") == []

    def test_nothing_available(self, config, backends):
        orchestrator = NarrationOrchestrator(config, probe=_probe(None), backends=backends)
        assert orchestrator.suggest("objective", "Configure") == []
