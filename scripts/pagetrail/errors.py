"""
Exception types for pagetrail.

Background failures (probe, geo, delivery) are caught and logged inside the
engine; only configuration and caller errors reach the host application.
"""

from typing import Optional


class PagetrailError(Exception):
    """Base class for all pagetrail errors."""


class ConfigurationError(PagetrailError, ValueError):
    """Raised when the engine is constructed with an invalid configuration."""


class NotInitializedError(PagetrailError, RuntimeError):
    """Raised when a network call is attempted without an API key."""

    def __init__(self, message: str = "Initialize the engine with an API key before sending telemetry data."):
        super().__init__(message)


class DeliveryError(PagetrailError):
    """
    Raised when a request to the collection endpoint fails.

    Attributes:
        status_code: HTTP status of the last response (None for network errors)
        attempts: Number of attempts made before giving up
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        attempts: int = 1
    ):
        super().__init__(message)
        self.status_code = status_code
        self.attempts = attempts
