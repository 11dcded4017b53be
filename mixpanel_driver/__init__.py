"""
Mixpanel Python Driver

A driver for the Mixpanel event ingestion APIs.

Example:
    Basic usage:

    >>> from mixpanel_driver import MixpanelDriver
    >>>
    >>> # Create driver from environment
    >>> client = MixpanelDriver.from_env()
    >>>
    >>> # Batched (default): returns immediately, sent in the background
    >>> client.track("page_view", {"device_id": "device-uuid-123", "page": "/home"})
    >>>
    >>> # Immediate: returns the delivery result
    >>> response = client.track(
    ...     "purchase",
    ...     {"device_id": "device-uuid-123", "user_id": "user@example.com", "amount": 99.99},
    ...     immediate=True
    ... )
    >>> print(f"Accepted {response['accepted']} event(s)")
    >>>
    >>> # Historical import (requires a service account)
    >>> client.track_many([
    ...     {"event": "signup", "device_id": "device-uuid-123", "time": 1672531200}
    ... ])
    >>>
    >>> client.flush()
    >>> client.close()

Supports:
    - Live tracking (POST /track), immediate or batched
    - Historical import (POST /import) with service account Basic Auth

Features:
    - Size and timer based batching with a final flush at shutdown
    - Local validation (name, device_id, 1MB size, 255 properties, 3 nesting levels)
    - Structured exception hierarchy with retryable flags
    - Automatic retry with exponential backoff and jitter (429, 5xx, network)
    - Debug logging mode

Configuration:
    Set environment variables:
    - MIXPANEL_PROJECT_TOKEN: Required
    - MIXPANEL_SERVICE_ACCOUNT_USERNAME / _PASSWORD, MIXPANEL_PROJECT_ID: Import only
    - MIXPANEL_BATCH_SIZE, MIXPANEL_BATCH_TIMEOUT_MS: Batching (default: 1000, 5000)
    - MIXPANEL_DEBUG: "true" or "false" (default: "false")
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .client import MixpanelDriver

from .config import (
    MixpanelConfig,
    ServiceAccount,
    HTTPOptions,
)

from .event import Event

from .batcher import EventBatcher, BatcherMetrics

from .backend import HTTPBackend, HTTPResponse, RequestsBackend

from .transport import Transport

from .exceptions import (
    DriverError,
    ValidationError,
    EmptyEventNameError,
    MissingIdentityError,
    PayloadSizeError,
    TooManyPropertiesError,
    NestingTooDeepError,
    EmptyBatchError,
    BatchTooLargeError,
    ConfigurationError,
    AuthenticationError,
    RateLimitError,
    ServerError,
    ConnectionError,
    TimeoutError,
)

__all__ = [
    # Driver
    "MixpanelDriver",
    # Configuration
    "MixpanelConfig",
    "ServiceAccount",
    "HTTPOptions",
    # Building blocks
    "Event",
    "EventBatcher",
    "BatcherMetrics",
    "HTTPBackend",
    "HTTPResponse",
    "RequestsBackend",
    "Transport",
    # Exceptions
    "DriverError",
    "ValidationError",
    "EmptyEventNameError",
    "MissingIdentityError",
    "PayloadSizeError",
    "TooManyPropertiesError",
    "NestingTooDeepError",
    "EmptyBatchError",
    "BatchTooLargeError",
    "ConfigurationError",
    "AuthenticationError",
    "RateLimitError",
    "ServerError",
    "ConnectionError",
    "TimeoutError",
]
