from __future__ import annotations

import logging

import requests
from openai import OpenAI

from labnarrator.ai.analyzers.base import BackendStatus, ChatCompletionBackend
from labnarrator.ai.prompts import build_metadata_context, inventory_messages, narration_messages
from labnarrator.base.description import BackendKind
from labnarrator.base.frames import ExtractedFrame
from labnarrator.base.lab import Lab

__all__ = ["OnDeviceAnalyzer"]

logger = logging.getLogger(__name__)

LOCAL_API_KEY = "local"
DEFAULT_LOCAL_MODEL = "auto"


class OnDeviceAnalyzer(ChatCompletionBackend):
    """Two-pass vision narration on a local OpenAI-compatible inference server.

    Pass 1 sends every frame with (a bounded number of) its quadrant tiles and
    asks for an exhaustive inventory of visible UI elements. Pass 2 sends the
    full frames only, together with the inventory and the lab metadata, and
    asks for a step-by-step narration where every claim carries a confidence
    marker. Keeping "what is visible" apart from "what it means" stops the
    second pass from inventing visual claims the first pass never saw.

    Example:
        >>> analyzer = OnDeviceAnalyzer()
        >>> if analyzer.probe().available:
        ...     text = analyzer.analyze(frames, lab)
    """

    kind = BackendKind.ON_DEVICE

    @property
    def base_url(self) -> str:
        return self.config.on_device_url.rstrip("/")

    def _create_client(self) -> OpenAI:
        return OpenAI(
            base_url=f"{self.base_url}/v1",
            api_key=LOCAL_API_KEY,
            timeout=self.config.analysis_timeout,
            max_retries=0,
        )

    def _default_model(self) -> str:
        return DEFAULT_LOCAL_MODEL

    def probe(self) -> BackendStatus:
        try:
            response = requests.get(f"{self.base_url}/v1/models", timeout=self.config.probe_timeout)
        except requests.RequestException as e:
            logger.debug("On-device server not reachable at %s: %s", self.base_url, e)
            return BackendStatus.unavailable(self.kind, "On-device server not reachable")

        if not response.ok:
            return BackendStatus.unavailable(self.kind, f"On-device server returned {response.status_code}")

        try:
            models = [str(model["id"]) for model in response.json().get("data") or []]
        except (ValueError, KeyError, TypeError, AttributeError):
            models = []
        return BackendStatus(available=True, backend=self.kind, models=models, message="On-device AI ready")

    def analyze(self, frames: list[ExtractedFrame], lab: Lab, model_hint: str | None = None) -> str:
        inventory = self._complete(
            inventory_messages(frames, lab.title, max_tiles=self.config.max_inventory_tiles), model=model_hint
        )
        logger.debug("On-device inventory pass returned %d characters", len(inventory))

        return self._complete(
            narration_messages(frames, lab.title, lab.objective, build_metadata_context(lab), inventory),
            model=model_hint,
        )
