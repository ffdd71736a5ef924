"""Exception hierarchy for labnarrator.ai module."""

from labnarrator.base.exceptions import InvalidInputError, LabNarratorError

# Environment variable names per provider
API_KEY_ENV_VARS: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "proxy": "LABNARRATOR_PROXY_KEY",
    "gateway": "RELAY_GATEWAY_API_KEY",
}

__all__ = [
    "API_KEY_ENV_VARS",
    "BackendError",
    "BackendUnavailableError",
    "BackendTimeoutError",
    "BackendResponseError",
    "MissingAPIKeyError",
    "UnsupportedBackendError",
    "ConfigError",
    "InvalidInputError",
]


class BackendError(LabNarratorError):
    """Base exception for backend-related errors."""

    pass


class BackendUnavailableError(BackendError):
    """Raised when no usable analysis backend was found."""

    pass


class BackendTimeoutError(BackendError):
    """Raised when a call to a backend exceeds its deadline."""

    def __init__(self, backend: str, timeout: float):
        super().__init__(f"Backend '{backend}' did not respond within {timeout:g}s")
        self.backend = backend
        self.timeout = timeout


class BackendResponseError(BackendError):
    """Raised when a backend answers with an error status or an empty completion."""

    def __init__(self, backend: str, message: str, status_code: int | None = None):
        prefix = f"Backend '{backend}'"
        if status_code is not None:
            prefix = f"{prefix} returned {status_code}"
        super().__init__(f"{prefix}: {message}")
        self.backend = backend
        self.status_code = status_code


class MissingAPIKeyError(BackendError):
    """Raised when a required API key is not found."""

    def __init__(self, provider: str):
        env_var = API_KEY_ENV_VARS.get(provider, f"{provider.upper()}_API_KEY")
        super().__init__(
            f"API key for '{provider}' not found. Set the {env_var} environment variable or pass api_key parameter."
        )
        self.provider = provider


class UnsupportedBackendError(BackendError, ValueError):
    """Raised when an unsupported backend or provider is requested."""

    def __init__(self, backend: str, supported: list[str]):
        super().__init__(f"Backend '{backend}' is not supported. Supported backends: {', '.join(supported)}")
        self.backend = backend
        self.supported = supported


class ConfigError(BackendError, ValueError):
    """Raised when there's an error loading or validating configuration."""

    pass
