"""Exception hierarchy for labnarrator.base module."""


class LabNarratorError(Exception):
    """Base exception for all labnarrator errors."""

    pass


class MediaError(LabNarratorError):
    """Base exception for media-related errors."""

    pass


class MediaLoadError(MediaError):
    """Raised when a media asset cannot be loaded or decoded."""

    def __init__(self, url: str, reason: str | None = None):
        message = f"Failed to load media: {url}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.url = url
        self.reason = reason


class InvalidInputError(LabNarratorError, ValueError):
    """Raised when the caller asks for something that cannot be satisfied as configured."""

    pass
