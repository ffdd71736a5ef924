"""Configuration loader for labnarrator.ai module."""

from __future__ import annotations

import warnings
from dataclasses import dataclass, fields
from functools import lru_cache
from pathlib import Path
from typing import Any

import tomllib

from labnarrator.ai.backends import REMOTE_PROVIDERS, find_api_key
from labnarrator.ai.exceptions import ConfigError

__all__ = ["NarrationConfig", "get_config", "get_narration_settings", "clear_config_cache"]

DEFAULT_ON_DEVICE_URL = "http://localhost:5273"
DEFAULT_EMBEDDED_HOST = "http://localhost:11434"
DEFAULT_EMBEDDED_MODEL = "llama3.2"


def _find_config_file() -> Path | None:
    """Find the configuration file in current directory.

    Looks for:
    1. labnarrator.toml in current directory
    2. pyproject.toml in current directory

    Returns:
        Path to config file if found, None otherwise.
    """
    cwd = Path.cwd()

    labnarrator_toml = cwd / "labnarrator.toml"
    if labnarrator_toml.exists():
        return labnarrator_toml

    pyproject_toml = cwd / "pyproject.toml"
    if pyproject_toml.exists():
        return pyproject_toml

    return None


def _load_toml(path: Path) -> dict[str, Any]:
    """Load and parse a TOML file."""
    with open(path, "rb") as f:
        return tomllib.load(f)


def _extract_config(data: dict[str, Any], filename: str) -> dict[str, Any]:
    """Extract labnarrator config from parsed TOML data.

    Args:
        data: Parsed TOML data
        filename: Name of the file (to determine extraction method)

    Returns:
        The labnarrator configuration section, or empty dict if not found.
    """
    if filename == "labnarrator.toml":
        return data
    elif filename == "pyproject.toml":
        return data.get("tool", {}).get("labnarrator", {})
    return {}


@lru_cache(maxsize=1)
def _get_cached_config() -> dict[str, Any]:
    config_path = _find_config_file()
    if config_path is None:
        return {}

    try:
        data = _load_toml(config_path)
        return _extract_config(data, config_path.name)
    except tomllib.TOMLDecodeError as e:
        warnings.warn(f"Invalid TOML in config file {config_path}: {e}", RuntimeWarning)
        return {}
    except OSError as e:
        warnings.warn(f"Cannot read config file {config_path}: {e}", RuntimeWarning)
        return {}


def get_config() -> dict[str, Any]:
    """Get the current configuration.

    Returns:
        The configuration dictionary.
    """
    return _get_cached_config()


def get_narration_settings() -> dict[str, Any]:
    """Get the ``[narration]`` section of the configuration."""
    return dict(get_config().get("narration", {}))


def clear_config_cache() -> None:
    """Clear the configuration cache. Useful for testing."""
    _get_cached_config.cache_clear()


@dataclass(frozen=True)
class NarrationConfig:
    """Settings for the narration pipeline.

    Built once and handed to the orchestrator and its backends, so backend
    selection never depends on ambient state read at call time.

    Attributes:
        on_device_url: Base URL of the local OpenAI-compatible inference server
        embedded_host: Host of the embedded text model runtime
        embedded_model: Name of the embedded text model
        remote_provider: Hosted provider used by the remote backend
        remote_api_key: Credential for ``remote_provider``; the remote backend is
            available only when this is set
        remote_model: Model override for the hosted provider
        proxy_url: Endpoint of the server-side narration relay; the cloud
            backend is available only when this is set
        proxy_key: Optional bearer token sent to the relay
        analysis_timeout: Timeout in seconds for analysis calls
        probe_timeout: Timeout in seconds for network availability probes
        embedded_probe_timeout: Timeout in seconds for the embedded runtime check
        embedded_pull_timeout: Timeout in seconds for pulling a missing embedded model
        max_tokens: Completion token limit for analysis calls
        temperature: Sampling temperature for analysis calls
        max_inventory_tiles: Maximum number of quadrant tiles sent in the inventory pass
    """

    on_device_url: str = DEFAULT_ON_DEVICE_URL
    embedded_host: str = DEFAULT_EMBEDDED_HOST
    embedded_model: str = DEFAULT_EMBEDDED_MODEL
    remote_provider: str = "openai"
    remote_api_key: str | None = None
    remote_model: str | None = None
    proxy_url: str | None = None
    proxy_key: str | None = None
    analysis_timeout: float = 60.0
    probe_timeout: float = 2.0
    embedded_probe_timeout: float = 0.5
    embedded_pull_timeout: float = 600.0
    max_tokens: int = 4096
    temperature: float = 0.1
    max_inventory_tiles: int = 8

    def __post_init__(self) -> None:
        if self.remote_provider not in REMOTE_PROVIDERS:
            supported = ", ".join(REMOTE_PROVIDERS)
            raise ConfigError(f"remote_provider must be one of: {supported}")
        for name in ("analysis_timeout", "probe_timeout", "embedded_probe_timeout", "embedded_pull_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")
        if self.max_tokens < 1:
            raise ConfigError("max_tokens must be >= 1")
        if not 0.0 <= self.temperature <= 2.0:
            raise ConfigError("temperature must be between 0.0 and 2.0")
        if self.max_inventory_tiles < 0:
            raise ConfigError("max_inventory_tiles must be >= 0")

    @property
    def remote_configured(self) -> bool:
        return bool(self.remote_api_key)

    @property
    def cloud_configured(self) -> bool:
        return bool(self.proxy_url)

    @property
    def resolved_remote_model(self) -> str:
        return self.remote_model or str(REMOTE_PROVIDERS[self.remote_provider]["model"])

    @property
    def remote_base_url(self) -> str | None:
        return REMOTE_PROVIDERS[self.remote_provider]["base_url"]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NarrationConfig:
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown narration settings: {sorted(unknown)}")
        return cls(**data)

    @classmethod
    def from_config(cls, **overrides: Any) -> NarrationConfig:
        """Build settings from the config file, environment and explicit overrides.

        Priority:
        1. Explicit overrides
        2. Config file ``[narration]`` section
        3. Environment variables (API keys only)
        4. Hardcoded defaults
        """
        settings = get_narration_settings()
        settings.update({key: value for key, value in overrides.items() if value is not None})

        provider = settings.get("remote_provider", "openai")
        settings["remote_api_key"] = find_api_key(provider, settings.get("remote_api_key"))
        settings["proxy_key"] = find_api_key("proxy", settings.get("proxy_key"))
        return cls.from_dict(settings)
