"""
Mixpanel Driver Exception Hierarchy

Structured exceptions for local validation failures and remote delivery failures.
Every exception carries a ``kind`` (validation, configuration, rate_limit, auth,
server, network) and a ``retryable`` flag so callers can branch without string
matching.
"""

from typing import Dict, Any, Optional


class DriverError(Exception):
    """Base exception for all driver errors"""

    kind = "unknown"
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        return f"{self.__class__.__name__}: {self.message}"


class ValidationError(DriverError):
    """
    Event data was rejected, locally or by the API (HTTP 400).

    Never retried and never sent over the wire when raised locally.
    """

    kind = "validation"
    reason = "invalid"


class EmptyEventNameError(ValidationError):
    """Event name is empty or not a string."""

    reason = "empty_event_name"


class MissingIdentityError(ValidationError):
    """device_id is missing, empty, or not a string."""

    reason = "missing_identity"


class PayloadSizeError(ValidationError):
    """
    Event or request payload exceeds the API size limit.

    Raised locally for events over 1MB and remotely on HTTP 413.
    """

    reason = "event_too_large"


class TooManyPropertiesError(ValidationError):
    """Event carries more than 255 properties."""

    reason = "too_many_properties"


class NestingTooDeepError(ValidationError):
    """Properties are nested deeper than 3 levels."""

    reason = "nesting_too_deep"


class EmptyBatchError(ValidationError):
    """Import batch has no events."""

    reason = "empty_batch"


class BatchTooLargeError(ValidationError):
    """Import batch has more than 2,000 events."""

    reason = "batch_too_large"


class ConfigurationError(DriverError):
    """
    Missing or malformed configuration.

    Raised when the config is loaded, or when a feature that needs missing
    configuration (import without a service account) is invoked.
    """

    kind = "configuration"


class AuthenticationError(DriverError):
    """
    Invalid project token or service account (HTTP 401/403).

    Not retried: credentials don't fix themselves.
    """

    kind = "auth"


class RateLimitError(DriverError):
    """
    API rate limit exceeded (HTTP 429) after automatic retries.

    The HTTP layer retries with exponential backoff and jitter;
    this exception is only raised once max_retries is exhausted.
    """

    kind = "rate_limit"
    retryable = True


class ServerError(DriverError):
    """API server error (HTTP 5xx) after automatic retries."""

    kind = "server"
    retryable = True


class ConnectionError(DriverError):
    """
    Cannot reach the API (connection refused, DNS failure, dropped socket).
    """

    kind = "network"
    retryable = True


class TimeoutError(ConnectionError):
    """Request timed out."""
