"""Backend availability detection."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from labnarrator.ai.analyzers.base import AnalysisBackend, BackendStatus
from labnarrator.ai.analyzers.embedded import EmbeddedAnalyzer
from labnarrator.ai.analyzers.on_device import OnDeviceAnalyzer
from labnarrator.ai.analyzers.remote import RemoteAnalyzer
from labnarrator.ai.backends import PROBE_PRIORITY
from labnarrator.ai.config import NarrationConfig
from labnarrator.ai.exceptions import BackendError
from labnarrator.base.description import BackendKind

__all__ = ["BackendProbe", "BackendStatus", "check_availability", "NO_BACKEND_MESSAGE"]

logger = logging.getLogger(__name__)

NO_BACKEND_MESSAGE = "No AI backend available"


class BackendProbe:
    """Finds the most preferred analysis backend that is usable right now.

    Backends are checked in ``PROBE_PRIORITY`` order and the first available
    one wins. Probing never raises: a failing check just means that backend
    is unavailable.
    """

    def __init__(
        self,
        config: NarrationConfig | None = None,
        backends: Mapping[BackendKind, AnalysisBackend] | None = None,
    ):
        self.config = config if config is not None else NarrationConfig.from_config()
        if backends is None:
            backends = {
                BackendKind.BROWSER_EMBEDDED: EmbeddedAnalyzer(self.config),
                BackendKind.ON_DEVICE: OnDeviceAnalyzer(self.config),
                BackendKind.REMOTE: RemoteAnalyzer(self.config),
            }
        self.backends = dict(backends)

    def _probe_one(self, backend: AnalysisBackend) -> BackendStatus:
        try:
            return backend.probe()
        except (BackendError, OSError, ValueError) as e:
            logger.debug("Probe of %s failed: %s", backend.kind.value, e)
            return BackendStatus.unavailable(backend.kind, str(e))

    def check_availability(self) -> BackendStatus:
        for kind in PROBE_PRIORITY:
            backend = self.backends.get(kind)
            if backend is None:
                continue
            status = self._probe_one(backend)
            if status.available:
                logger.info("Using %s (%s)", kind.label, status.message or "available")
                return status
            logger.debug("%s unavailable: %s", kind.label, status.message)
        return BackendStatus.unavailable(None, NO_BACKEND_MESSAGE)


def check_availability(config: NarrationConfig | None = None) -> BackendStatus:
    """Probe all backends with default settings and return the winning status."""
    return BackendProbe(config).check_availability()
