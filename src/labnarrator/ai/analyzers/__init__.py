from .base import AnalysisBackend, BackendStatus, ChatCompletionBackend
from .cloud import CloudProxyAnalyzer
from .embedded import EmbeddedAnalyzer
from .on_device import OnDeviceAnalyzer
from .remote import RemoteAnalyzer
from .text_only import TextOnlyNarrator

__all__ = [
    "AnalysisBackend",
    "BackendStatus",
    "ChatCompletionBackend",
    "OnDeviceAnalyzer",
    "EmbeddedAnalyzer",
    "RemoteAnalyzer",
    "CloudProxyAnalyzer",
    "TextOnlyNarrator",
]
