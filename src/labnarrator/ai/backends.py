"""Backend utilities for labnarrator.ai module."""

from __future__ import annotations

import os
from typing import Literal

from labnarrator.ai.exceptions import API_KEY_ENV_VARS, MissingAPIKeyError
from labnarrator.base.description import BackendKind

__all__ = [
    "BackendKind",
    "NarrationMode",
    "RemoteProvider",
    "NARRATION_MODES",
    "REMOTE_PROVIDERS",
    "PROBE_PRIORITY",
    "get_api_key",
    "find_api_key",
]

# "auto" cascades through backends; every other mode pins exactly one backend.
NarrationMode = Literal["auto", "on_device", "remote", "cloud", "text"]
RemoteProvider = Literal["openai", "openrouter"]

NARRATION_MODES: tuple[str, ...] = ("auto", "on_device", "remote", "cloud", "text")

# Base URL (None = SDK default) and default model per hosted provider
REMOTE_PROVIDERS: dict[str, dict[str, str | None]] = {
    "openai": {"base_url": None, "model": "gpt-4o-mini"},
    "openrouter": {"base_url": "https://openrouter.ai/api/v1", "model": "meta-llama/llama-3.1-8b-instruct"},
}

# Zero-network local inference first, then local-network inference, then a configured paid API.
PROBE_PRIORITY: tuple[BackendKind, ...] = (
    BackendKind.BROWSER_EMBEDDED,
    BackendKind.ON_DEVICE,
    BackendKind.REMOTE,
)


def find_api_key(provider: str, api_key: str | None = None) -> str | None:
    """Like :func:`get_api_key` but returns None instead of raising."""
    if api_key:
        return api_key

    env_var = API_KEY_ENV_VARS.get(provider)
    if env_var:
        key = os.environ.get(env_var)
        if key:
            return key

    return None


def get_api_key(provider: str, api_key: str | None = None) -> str:
    """Get API key for a provider.

    Args:
        provider: Provider name (e.g., 'openai', 'openrouter', 'proxy')
        api_key: Optional explicit API key. If provided, returns this directly.

    Returns:
        The API key string.

    Raises:
        MissingAPIKeyError: If no API key is found.
    """
    key = find_api_key(provider, api_key)
    if key is None:
        raise MissingAPIKeyError(provider)
    return key
