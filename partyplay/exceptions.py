"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class PartyplayError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(PartyplayError):
    """Raised for issues related to configuration loading or validation."""


class InvalidRequestError(PartyplayError):
    """Raised when a client request is missing fields or carries invalid values."""


class SongNotFoundError(PartyplayError):
    """Raised when a song ID is neither queued nor currently playing."""


class SchedulerStateError(PartyplayError):
    """Raised when a playback transition is requested from an invalid state."""


class BackendError(PartyplayError):
    """Raised when a media backend fails to initialize or answer a request."""


class BackendNotFoundError(BackendError):
    """Raised when no backend is registered under the requested name."""


class CacheError(PartyplayError):
    """Raised when a song cannot be materialized in the local cache."""


class DownloadStatusError(CacheError):
    """Raised when the media server answers a download with an unusable status."""

    def __init__(self, status: int, url: str):
        super().__init__(f"Unexpected status {status} while downloading {url}")
        self.status = status
        self.url = url


class RedirectLimitError(CacheError):
    """Raised when a download keeps redirecting past the configured ceiling."""


class RetryLimitError(CacheError):
    """
    Raised when a download keeps losing its connection past the configured ceiling.
    """
