from __future__ import annotations

import logging
from typing import Any

import requests

from labnarrator.ai.analyzers.base import AnalysisBackend, BackendStatus
from labnarrator.ai.exceptions import BackendResponseError, BackendTimeoutError
from labnarrator.ai.prompts import build_metadata_context
from labnarrator.base.description import BackendKind
from labnarrator.base.exceptions import InvalidInputError
from labnarrator.base.frames import ExtractedFrame
from labnarrator.base.lab import Lab

__all__ = ["CloudProxyAnalyzer", "INVENTORY_PASS", "NARRATION_PASS"]

logger = logging.getLogger(__name__)

INVENTORY_PASS = "inventory"
NARRATION_PASS = "narration"


class CloudProxyAnalyzer(AnalysisBackend):
    """Two-pass vision narration executed through the server-side relay.

    Mirrors :class:`OnDeviceAnalyzer` pass for pass (inventory, then narration),
    but the relay holds the only credential able to reach the vision-capable
    hosted model. The relay also caps how many frames and tiles each pass sends.
    """

    kind = BackendKind.CLOUD_PROXY

    def probe(self) -> BackendStatus:
        if not self.config.cloud_configured:
            return BackendStatus.unavailable(self.kind, "No narration relay configured")
        return BackendStatus(available=True, backend=self.kind, message="Cloud relay configured")

    def _invoke(self, body: dict[str, Any]) -> dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if self.config.proxy_key:
            headers["Authorization"] = f"Bearer {self.config.proxy_key}"

        try:
            response = requests.post(
                str(self.config.proxy_url), json=body, headers=headers, timeout=self.config.analysis_timeout
            )
        except requests.Timeout as e:
            raise BackendTimeoutError(self.kind.value, self.config.analysis_timeout) from e
        except requests.RequestException as e:
            raise BackendResponseError(self.kind.value, f"connection failed: {e}") from e

        if not response.ok:
            raise BackendResponseError(
                self.kind.value, f"{body['pass']} pass failed: {_error_detail(response)}", status_code=response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise BackendResponseError(self.kind.value, f"{body['pass']} pass returned invalid JSON") from e
        if not isinstance(data, dict):
            raise BackendResponseError(self.kind.value, f"{body['pass']} pass returned unexpected payload")
        return data

    def analyze(self, frames: list[ExtractedFrame], lab: Lab, model_hint: str | None = None) -> str:
        if not self.config.cloud_configured:
            raise InvalidInputError("Cloud narration requires a configured proxy_url")

        body: dict[str, Any] = {
            "frames": [frame.to_dict() for frame in frames],
            "metadata": build_metadata_context(lab),
            "labTitle": lab.title,
            "labObjective": lab.objective,
        }
        if model_hint:
            body["model"] = model_hint

        inventory = self._invoke({**body, "pass": INVENTORY_PASS}).get("inventory") or ""
        logger.debug("Cloud inventory pass returned %d characters", len(inventory))

        narration = self._invoke({**body, "pass": NARRATION_PASS, "inventory": inventory}).get("narration") or ""
        if not narration.strip():
            raise BackendResponseError(self.kind.value, "empty narration")
        return narration


def _error_detail(response: requests.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or response.reason
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    if isinstance(data, dict) and data.get("detail"):
        return str(data["detail"])
    return response.text[:200]
