"""
Mixpanel Driver

A Python driver for the Mixpanel ingestion APIs.

Supports:
- Live event tracking (POST /track), immediate or batched
- Historical event import (POST /import) with service account auth

Endpoint notes:
- /track authenticates with the project token inside each event payload
- /import authenticates with a Basic Auth header and scopes events by project_id
- Both accept at most 2,000 events and 1MB per event
"""

import atexit
import logging
import time
import weakref
from typing import Any, Callable, Dict, List, Optional

from .auth import attach_project_id, attach_token, import_headers, track_headers
from .backend import HTTPBackend, RequestsBackend
from .batcher import EventBatcher
from .config import MixpanelConfig
from .event import Event
from .exceptions import ConfigurationError, DriverError, ValidationError
from .transport import IMPORT_ENDPOINT, TRACK_ENDPOINT, Transport
from .validation import validate_batch

TelemetryCallback = Callable[[str, str, float, Dict[str, Any]], None]


class MixpanelDriver:
    """
    Mixpanel tracking driver.

    Events passed to track() are BATCHED BY DEFAULT: they are buffered and
    sent when the batch fills, when the batch timer expires, on flush(), or
    at close(). Pass immediate=True to send synchronously and get the
    delivery result back.

    Initialization order:
    1. Driver attributes and logging
    2. HTTP backend
    3. Transport and batcher
    4. Shutdown hook

    Telemetry (on_event):
    - ("track", "batch_queued" | "success" | "error" | "validation_error")
    - ("import", "success" | "error")

    Example:
        client = MixpanelDriver.from_env()
        client.track("page_view", {"device_id": "device-uuid-123", "page": "/home"})
        client.track("purchase", {"device_id": "device-uuid-123", "amount": 99.99}, immediate=True)
        client.close()
    """

    def __init__(
        self,
        config: MixpanelConfig,
        backend: Optional[HTTPBackend] = None,
        on_batch_result: Optional[Callable[..., None]] = None,
        on_event: Optional[TelemetryCallback] = None,
        register_atexit: bool = True
    ):
        """
        Initialize Mixpanel driver.

        Args:
            config: Validated driver configuration
            backend: HTTP backend (default: RequestsBackend built from config.http_options)
            on_batch_result: Callback ``(event_count, result, error)`` for batched sends
            on_event: Callback ``(operation, status, duration, metadata)`` invoked once per
                track/import call; duration is in seconds
            register_atexit: Flush and close automatically at interpreter exit

        Raises:
            ConfigurationError: If config is not a MixpanelConfig
        """
        if not isinstance(config, MixpanelConfig):
            raise ConfigurationError(
                "config must be a MixpanelConfig",
                details={"provided": type(config).__name__}
            )

        # ===== PHASE 1: Driver attributes =====
        self.driver_name = "MixpanelDriver"
        self.config = config
        self.debug = config.debug
        self.on_event = on_event

        if self.debug:
            logging.basicConfig(level=logging.DEBUG)
        self.logger = logging.getLogger(__name__)
        logging.getLogger("mixpanel_driver").setLevel(logging.DEBUG if self.debug else logging.WARNING)

        # ===== PHASE 2: HTTP backend =====
        self.backend = backend or RequestsBackend(config.http_options)

        # ===== PHASE 3: Transport and batcher =====
        self.transport = Transport(config, self.backend)
        self.batcher = EventBatcher(config, self.transport, on_result=on_batch_result)

        # ===== PHASE 4: Shutdown hook =====
        self._closed = False
        self._atexit_hook = None
        if register_atexit:
            # Holds the driver weakly
            self._atexit_hook = _close_at_exit(weakref.WeakMethod(self.close))
            atexit.register(self._atexit_hook)

        if self.debug:
            self.logger.debug(
                f"[Init] batch_size={config.batch_size} batch_timeout_ms={config.batch_timeout_ms} "
                f"base_url={config.base_url} service_account={'set' if config.service_account else 'not set'}"
            )

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None, **kwargs) -> "MixpanelDriver":
        """
        Create driver instance from environment variables.

        See ``mixpanel_driver.config`` for the variables read.

        Raises:
            ConfigurationError: If MIXPANEL_PROJECT_TOKEN is not set or settings are invalid

        Example:
            driver = MixpanelDriver.from_env()
        """
        config = MixpanelConfig.from_env(dotenv_path=dotenv_path)
        return cls(config, **kwargs)

    # ========================================================================
    # Tracking
    # ========================================================================

    def track(
        self,
        event_name: str,
        properties: Dict[str, Any],
        immediate: bool = False
    ) -> Dict[str, Any]:
        """
        Track a single event.

        Args:
            event_name: Name of the event
            properties: Event properties with required ``device_id`` and optional
                ``user_id``, ``ip`` and ``time`` (datetime or unix seconds)
            immediate: Send now instead of adding to the batch (default: False)

        Returns:
            {"accepted": count} when immediate, {"queued": True} when batched

        Raises:
            ValidationError: If the event is invalid (never sent)
            RateLimitError, AuthenticationError, ServerError, ConnectionError:
                Delivery failures, immediate mode only

        Example:
            client.track("purchase", {
                "device_id": "device-uuid-123",
                "user_id": "user@example.com",
                "amount": 99.99
            }, immediate=True)

        CRITICAL:
        - Batched events are fire-and-forget: a failed batch is logged and
          dropped, never reported back to the caller
        - Use immediate=True when delivery confirmation matters
        """
        start_time = time.monotonic()

        try:
            event = Event.create(event_name, properties)
        except ValidationError as e:
            self.logger.debug(f"[track] Rejected '{event_name}': {e.message}")
            self._emit("track", "validation_error", start_time, event_name=event_name, error=e)
            raise

        if not immediate:
            try:
                self.batcher.add_event(event)
            except DriverError as e:
                self._emit("track", "error", start_time, event_name=event_name, immediate=False, error=e)
                raise
            if self.debug:
                self.logger.debug(f"[track] Queued '{event_name}' (pending={self.batcher.pending_count})")
            self._emit("track", "batch_queued", start_time, event_name=event_name, batch_mode=True)
            return {"queued": True}

        token = self.config.project_token
        payload = attach_token(event.to_track_payload(), token)

        try:
            result = self.transport.send(payload, TRACK_ENDPOINT, track_headers(token))
        except DriverError as e:
            self.logger.warning(f"[track] Failed to send '{event_name}': {e}")
            self._emit("track", "error", start_time, event_name=event_name, immediate=True, error=e)
            raise

        if self.debug:
            self.logger.debug(
                f"[track] Sent '{event_name}' in {(time.monotonic() - start_time) * 1000:.1f}ms: {result}"
            )
        self._emit("track", "success", start_time, event_name=event_name, immediate=True, response=result)
        return result

    def track_many(self, events: List[Dict[str, Any]]) -> Dict[str, int]:
        """
        Import a batch of historical events (Import API).

        Requires a service account. Events may carry arbitrary past timestamps.

        Args:
            events: List of event mappings, each with ``event`` (name), ``device_id``,
                and optionally ``time``, ``user_id``, ``ip`` and other properties

        Returns:
            {"accepted": count}

        Raises:
            ConfigurationError: If no service account is configured (no request is made)
            ValidationError: If the batch is empty, over 2,000 events, or any event is invalid
            RateLimitError, AuthenticationError, ServerError, ConnectionError: Delivery failures

        Example:
            client.track_many([
                {"event": "signup", "device_id": "device-uuid-123",
                 "time": datetime(2023, 1, 1, tzinfo=timezone.utc), "source": "organic"},
                {"event": "purchase", "device_id": "device-uuid-123",
                 "user_id": "user@example.com", "amount": 49.99},
            ])

        CRITICAL:
        - Uses Basic Auth (service account), NOT the project token header
        - project_id and token are added to every event body
        - Maximum 2,000 events per request
        """
        start_time = time.monotonic()
        event_count = len(events) if isinstance(events, list) else 0

        try:
            result = self._import(events)
        except DriverError as e:
            self._emit("import", "error", start_time, event_count=event_count, error=e)
            raise

        self._emit("import", "success", start_time, event_count=event_count, response=result)
        return result

    import_events = track_many

    def _import(self, events: List[Dict[str, Any]]) -> Dict[str, int]:
        service_account = self.config.service_account
        if service_account is None:
            raise ConfigurationError(
                "service account not configured for import API",
                details={
                    "env_vars": [
                        "MIXPANEL_SERVICE_ACCOUNT_USERNAME",
                        "MIXPANEL_SERVICE_ACCOUNT_PASSWORD",
                        "MIXPANEL_PROJECT_ID"
                    ]
                }
            )

        validate_batch(events)

        parsed = []
        for index, data in enumerate(events):
            try:
                parsed.append(Event.from_mapping(data))
            except ValidationError as e:
                e.details.setdefault("index", index)
                self.logger.debug(f"[import] Rejected event at index {index}: {e.message}")
                raise

        token = self.config.project_token
        payloads = [
            attach_project_id(attach_token(event.to_import_payload(), token), service_account.project_id)
            for event in parsed
        ]

        try:
            result = self.transport.send(payloads, IMPORT_ENDPOINT, import_headers(service_account))
        except DriverError as e:
            self.logger.warning(f"[import] Failed to import {len(payloads)} events: {e}")
            raise

        if self.debug:
            self.logger.debug(f"[import] Imported {result['accepted']} of {len(payloads)} events")
        return result

    def _emit(self, operation: str, status: str, start_time: float, **metadata) -> None:
        """Report one operation outcome to ``on_event``; callback errors are logged, not raised."""
        if self.on_event is None:
            return
        duration = time.monotonic() - start_time
        try:
            self.on_event(operation, status, duration, metadata)
        except Exception:
            self.logger.exception(f"on_event callback raised for {operation}:{status}")

    # ========================================================================
    # Batch control
    # ========================================================================

    def flush(self) -> Dict[str, int]:
        """
        Send all pending batched events now.

        Returns:
            {"attempted": count}; the events may or may not have been delivered
        """
        return self.batcher.flush()

    @property
    def pending_count(self) -> int:
        """Number of events waiting in the batch."""
        return self.batcher.pending_count

    def close(self):
        """
        Flush pending events and release resources.

        Example:
            client = MixpanelDriver.from_env()
            try:
                client.track("login", {"device_id": "device-uuid-123"})
            finally:
                client.close()
        """
        if self._closed:
            return
        self._closed = True

        try:
            self.batcher.shutdown()
        finally:
            self.backend.close()
            if self._atexit_hook is not None:
                atexit.unregister(self._atexit_hook)

        if self.debug:
            self.logger.debug("Driver closed")

    def __enter__(self) -> "MixpanelDriver":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def _close_at_exit(close_ref: "weakref.WeakMethod") -> Callable[[], None]:
    def hook():
        close = close_ref()
        if close is not None:
            close()
    return hook
