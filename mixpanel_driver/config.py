"""
Driver configuration.

A ``MixpanelConfig`` is built once at startup (directly, from a mapping, or from
environment variables) and handed to every component that needs it. It is
validated on construction so that bad settings fail at load time rather than on
the first API call.

Environment variables (``MixpanelConfig.from_env``):
    MIXPANEL_PROJECT_TOKEN: Project token (required)
    MIXPANEL_SERVICE_ACCOUNT_USERNAME: Service account username (import only)
    MIXPANEL_SERVICE_ACCOUNT_PASSWORD: Service account secret (import only)
    MIXPANEL_PROJECT_ID: Project id (import only)
    MIXPANEL_BATCH_SIZE: Events per auto-flush (default: 1000)
    MIXPANEL_BATCH_TIMEOUT_MS: Auto-flush timer in milliseconds (default: 5000)
    MIXPANEL_BASE_URL: API base URL (default: https://api.mixpanel.com)
    MIXPANEL_TIMEOUT: Request timeout in seconds (default: 30)
    MIXPANEL_MAX_RETRIES: Retry attempts for 429/5xx/network errors (default: 3)
    MIXPANEL_DEBUG: "true" or "false" (default: "false")
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError
from .validation import MAX_BATCH_EVENTS

DEFAULT_BASE_URL = "https://api.mixpanel.com"
DEFAULT_BATCH_SIZE = 1000
DEFAULT_BATCH_TIMEOUT_MS = 5000


@dataclass(frozen=True)
class ServiceAccount:
    """Credentials for the import API (Basic Auth + project scoping)."""

    username: str
    password: str
    project_id: str

    def __post_init__(self):
        for name in ("username", "password", "project_id"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                raise ConfigurationError(
                    f"service_account.{name} must be a non-empty string",
                    details={"field": name, "provided": type(value).__name__}
                )

    def __repr__(self):
        return f"ServiceAccount(username={self.username!r}, password='***', project_id={self.project_id!r})"


@dataclass(frozen=True)
class HTTPOptions:
    """Timeout and retry policy for the HTTP backend."""

    timeout: float = 30
    max_retries: int = 3
    backoff_factor: float = 0.5
    backoff_jitter: float = 1.0
    retry: bool = True

    def __post_init__(self):
        if not isinstance(self.timeout, (int, float)) or isinstance(self.timeout, bool) or self.timeout <= 0:
            raise ConfigurationError(
                "http_options.timeout must be a positive number",
                details={"provided": self.timeout}
            )
        if not isinstance(self.max_retries, int) or isinstance(self.max_retries, bool) or self.max_retries < 0:
            raise ConfigurationError(
                "http_options.max_retries must be a non-negative integer",
                details={"provided": self.max_retries}
            )


@dataclass(frozen=True)
class MixpanelConfig:
    """
    Process-wide driver settings.

    Args:
        project_token: Mixpanel project token, embedded in tracked payloads
        service_account: Credentials required only for track_many/import
        batch_size: Buffered events that trigger an auto-flush
        batch_timeout_ms: Milliseconds after the first buffered event before an auto-flush
        base_url: API base URL ("/track" and "/import" are appended)
        http_options: Timeout and retry policy
        debug: Enable debug logging

    Raises:
        ConfigurationError: If any setting is missing or malformed
    """

    project_token: str
    service_account: Optional[ServiceAccount] = None
    batch_size: int = DEFAULT_BATCH_SIZE
    batch_timeout_ms: int = DEFAULT_BATCH_TIMEOUT_MS
    base_url: str = DEFAULT_BASE_URL
    http_options: HTTPOptions = field(default_factory=HTTPOptions)
    debug: bool = False

    def __post_init__(self):
        if self.project_token is None:
            raise ConfigurationError(
                "Mixpanel project_token not configured",
                details={"env_vars": ["MIXPANEL_PROJECT_TOKEN"]}
            )
        if not isinstance(self.project_token, str):
            raise ConfigurationError(
                "project_token must be a string",
                details={"provided": type(self.project_token).__name__}
            )
        if not self.project_token:
            raise ConfigurationError("project_token cannot be empty")

        if self.service_account is not None and not isinstance(self.service_account, ServiceAccount):
            raise ConfigurationError(
                "service_account must be a ServiceAccount",
                details={"provided": type(self.service_account).__name__}
            )

        for name in ("batch_size", "batch_timeout_ms"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise ConfigurationError(
                    f"{name} must be a positive integer",
                    details={"field": name, "provided": value}
                )

        if self.batch_size > MAX_BATCH_EVENTS:
            raise ConfigurationError(
                f"batch_size cannot exceed {MAX_BATCH_EVENTS} events per request",
                details={"provided": self.batch_size, "max_events": MAX_BATCH_EVENTS}
            )

        if not isinstance(self.base_url, str) or not self.base_url:
            raise ConfigurationError("base_url must be a non-empty string")

        if not isinstance(self.http_options, HTTPOptions):
            raise ConfigurationError(
                "http_options must be an HTTPOptions instance",
                details={"provided": type(self.http_options).__name__}
            )

    @property
    def batch_timeout(self) -> float:
        """Auto-flush timer in seconds."""
        return self.batch_timeout_ms / 1000.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MixpanelConfig":
        """
        Build config from a plain mapping (e.g. parsed JSON/YAML settings).

        ``service_account`` and ``http_options`` may be nested mappings.

        Example:
            config = MixpanelConfig.from_dict({
                "project_token": "abc123",
                "service_account": {"username": "sa", "password": "s3cret", "project_id": "42"},
                "batch_size": 50,
            })
        """
        values: Dict[str, Any] = dict(data)
        values.setdefault("project_token", None)

        service_account = values.get("service_account")
        if isinstance(service_account, Mapping):
            missing = [k for k in ("username", "password", "project_id") if k not in service_account]
            if missing:
                raise ConfigurationError(
                    f"service_account is missing required fields: {', '.join(missing)}",
                    details={"missing": missing}
                )
            values["service_account"] = ServiceAccount(
                username=service_account["username"],
                password=service_account["password"],
                project_id=service_account["project_id"],
            )

        http_options = values.get("http_options")
        if isinstance(http_options, Mapping):
            values["http_options"] = HTTPOptions(**http_options)

        unknown = set(values) - set(cls.__dataclass_fields__)
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration keys: {', '.join(sorted(unknown))}",
                details={"unknown": sorted(unknown)}
            )

        return cls(**values)

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None, **overrides) -> "MixpanelConfig":
        """
        Create config from environment variables (and a .env file, if present).

        Args:
            dotenv_path: Explicit .env file to load (default: search from cwd)
            **overrides: Values that take precedence over the environment

        Raises:
            ConfigurationError: If MIXPANEL_PROJECT_TOKEN is not set, numeric
                variables don't parse, or the service account is incomplete
        """
        load_dotenv(dotenv_path=dotenv_path)

        project_token = os.getenv("MIXPANEL_PROJECT_TOKEN")
        if not project_token and "project_token" not in overrides:
            raise ConfigurationError(
                "Missing Mixpanel credentials. Set MIXPANEL_PROJECT_TOKEN environment variable.",
                details={
                    "env_vars": ["MIXPANEL_PROJECT_TOKEN"],
                    "suggestion": "Set MIXPANEL_PROJECT_TOKEN in your .env file"
                }
            )

        values: Dict[str, Any] = {
            "project_token": project_token,
            "service_account": _service_account_from_env(),
            "batch_size": _int_env("MIXPANEL_BATCH_SIZE", DEFAULT_BATCH_SIZE),
            "batch_timeout_ms": _int_env("MIXPANEL_BATCH_TIMEOUT_MS", DEFAULT_BATCH_TIMEOUT_MS),
            "base_url": os.getenv("MIXPANEL_BASE_URL", DEFAULT_BASE_URL),
            "http_options": HTTPOptions(
                timeout=_int_env("MIXPANEL_TIMEOUT", 30),
                max_retries=_int_env("MIXPANEL_MAX_RETRIES", 3),
            ),
            "debug": os.getenv("MIXPANEL_DEBUG", "false").lower() == "true",
        }
        values.update(overrides)
        return cls(**values)


def _service_account_from_env() -> Optional[ServiceAccount]:
    env_vars = {
        "username": "MIXPANEL_SERVICE_ACCOUNT_USERNAME",
        "password": "MIXPANEL_SERVICE_ACCOUNT_PASSWORD",
        "project_id": "MIXPANEL_PROJECT_ID",
    }
    found = {key: os.getenv(var) for key, var in env_vars.items()}

    if not any(found.values()):
        return None

    missing = [env_vars[key] for key, value in found.items() if not value]
    if missing:
        raise ConfigurationError(
            f"Incomplete service account configuration. Missing: {', '.join(missing)}",
            details={"missing": missing, "suggestion": "Set all three service account variables or none"}
        )

    return ServiceAccount(**found)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(
            f"{name} must be an integer",
            details={"env_var": name, "provided": raw}
        )
