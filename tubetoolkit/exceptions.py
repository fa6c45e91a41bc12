"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class TubeToolkitError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(TubeToolkitError):
    """Raised for issues related to configuration loading or validation."""


class InvalidFormatError(ConfigurationError):
    """Raised when an unsupported download format is requested."""


class InvalidQualityError(ConfigurationError):
    """Raised when a quality preset does not exist for the requested format."""


class AcquisitionError(TubeToolkitError):
    """Raised when a single download attempt fails."""


class ProxyBlockedError(AcquisitionError):
    """
    Raised when an attempt was blocked or rate-limited in a way tied to the proxy in use.
    """


class InvalidTransitionError(TubeToolkitError):
    """Raised when a job is moved between lifecycle states illegally."""
