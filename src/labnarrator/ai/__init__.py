from .analyzers import (
    AnalysisBackend,
    BackendStatus,
    CloudProxyAnalyzer,
    EmbeddedAnalyzer,
    OnDeviceAnalyzer,
    RemoteAnalyzer,
    TextOnlyNarrator,
)
from .config import NarrationConfig, clear_config_cache, get_config
from .exceptions import (
    BackendError,
    BackendResponseError,
    BackendTimeoutError,
    BackendUnavailableError,
    ConfigError,
    MissingAPIKeyError,
    UnsupportedBackendError,
)
from .narration import NarrationOrchestrator, NarrationProgress, ProgressStage
from .probe import BackendProbe, check_availability

__all__ = [
    # Exceptions
    "BackendError",
    "BackendUnavailableError",
    "BackendTimeoutError",
    "BackendResponseError",
    "MissingAPIKeyError",
    "UnsupportedBackendError",
    "ConfigError",
    # Configuration
    "NarrationConfig",
    "get_config",
    "clear_config_cache",
    # Backends
    "AnalysisBackend",
    "BackendStatus",
    "OnDeviceAnalyzer",
    "EmbeddedAnalyzer",
    "RemoteAnalyzer",
    "CloudProxyAnalyzer",
    "TextOnlyNarrator",
    "BackendProbe",
    "check_availability",
    # Orchestration
    "NarrationOrchestrator",
    "NarrationProgress",
    "ProgressStage",
]
