"""
Authentication handling for the Mixpanel endpoints.

CRITICAL: The two endpoints authenticate DIFFERENTLY!
- /track: project token in the REQUEST BODY (properties.token), no auth header
- /import: Basic Auth header (service account username:password) plus
  project_id in the request body

All functions are pure: payloads are copied, never mutated in place.
"""

import base64
from typing import Any, Dict

from .config import ServiceAccount

JSON_HEADERS = {
    "content-type": "application/json",
    "accept": "application/json",
}


def track_headers(project_token: str) -> Dict[str, str]:
    """
    Headers for the track endpoint.

    The token is accepted for symmetry with import_headers() but deliberately
    not used: /track reads it from the payload.
    """
    return dict(JSON_HEADERS)


def import_headers(service_account: ServiceAccount) -> Dict[str, str]:
    """Headers for the import endpoint, including Basic Auth."""
    credentials = f"{service_account.username}:{service_account.password}"
    encoded = base64.b64encode(credentials.encode("utf-8")).decode("ascii")

    headers = dict(JSON_HEADERS)
    headers["authorization"] = f"Basic {encoded}"
    return headers


def attach_token(payload: Dict[str, Any], token: str) -> Dict[str, Any]:
    """Return a copy of ``payload`` with properties.token set (overwrites any prior value)."""
    return _set_property(payload, "token", token)


def attach_project_id(payload: Dict[str, Any], project_id: str) -> Dict[str, Any]:
    """Return a copy of ``payload`` with properties.project_id set (overwrites any prior value)."""
    return _set_property(payload, "project_id", project_id)


def _set_property(payload: Dict[str, Any], key: str, value: Any) -> Dict[str, Any]:
    properties = dict(payload.get("properties") or {})
    properties[key] = value

    shaped = dict(payload)
    shaped["properties"] = properties
    return shaped
