"""
HTTP transport.

Sends one logical request per call and classifies the final response:

    status      result                  kind         retryable
    ------      ------                  ----         ---------
    2xx         {"accepted": n}         -            -
    429         RateLimitError          rate_limit   yes
    400         ValidationError         validation   no
    413         PayloadSizeError        validation   no
    401, 403    AuthenticationError     auth         no
    >= 500      ServerError             server       yes
    (network)   ConnectionError         network      yes

Retries already happened inside the backend by the time a response gets here.
"""

import logging
from typing import Any, Dict, List, Union

import requests

from .backend import HTTPBackend, HTTPResponse
from .config import MixpanelConfig
from .exceptions import (
    DriverError,
    AuthenticationError,
    ConnectionError,
    PayloadSizeError,
    RateLimitError,
    ServerError,
    TimeoutError,
    ValidationError,
)

logger = logging.getLogger(__name__)

TRACK_ENDPOINT = "track"
IMPORT_ENDPOINT = "import"

Payload = Union[Dict[str, Any], List[Dict[str, Any]]]


class Transport:
    """
    Stateless sender; safe to call from several threads at once.

    Args:
        config: Driver configuration (base URL and HTTP options)
        backend: HTTP backend used for the actual POST
    """

    def __init__(self, config: MixpanelConfig, backend: HTTPBackend):
        self.config = config
        self.backend = backend

    def url_for(self, endpoint: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{endpoint.lstrip('/')}"

    def send(self, payload: Payload, endpoint: str, headers: Dict[str, str]) -> Dict[str, int]:
        """
        POST a single payload (dict) or a batch (list) to ``endpoint``.

        Returns:
            {"accepted": count}

        Raises:
            DriverError subclass matching the response (see module docstring)
        """
        url = self.url_for(endpoint)
        count = len(payload) if isinstance(payload, list) else 1
        context = f"sending {count} event(s) to /{endpoint}"

        logger.debug(f"[{endpoint}] POST {url} events={count}")

        try:
            response = self.backend.post(url, payload, headers, self.config.http_options)
        except requests.exceptions.Timeout as e:
            raise TimeoutError(
                f"Network error: request timed out ({e})",
                details={"context": context, "timeout": self.config.http_options.timeout}
            )
        except requests.exceptions.RequestException as e:
            raise ConnectionError(
                f"Network error: {e}",
                details={"context": context, "url": url}
            )

        if 200 <= response.status < 300:
            return self._handle_success(response, endpoint, context)

        return self._handle_api_error(response, context)

    def _handle_success(self, response: HTTPResponse, endpoint: str, context: str) -> Dict[str, int]:
        body = response.body

        if isinstance(body, dict) and body.get("status") == 1:
            accepted = 1
        elif isinstance(body, dict) and "num_records_imported" in body:
            accepted = body["num_records_imported"]
        else:
            # Any other success body is treated as full acceptance, counted as 1
            # even for multi-event batches
            accepted = 1

        logger.debug(f"[{endpoint}] Accepted {accepted} event(s)")
        return {"accepted": accepted}

    def _handle_api_error(self, response: HTTPResponse, context: str = "") -> None:
        """
        Convert an error response into a structured driver exception.

        Raises:
            Appropriate DriverError subclass
        """
        status_code = response.status
        error_msg = _extract_error_message(response.body)

        if status_code == 429:
            retry_after = response.headers.get("Retry-After") or response.headers.get("retry-after")
            raise RateLimitError(
                error_msg,
                details={
                    "status_code": 429,
                    "retry_after": int(retry_after) if retry_after and retry_after.isdigit() else None,
                    "context": context,
                    "api_response": error_msg
                }
            )

        elif status_code == 400:
            raise ValidationError(
                error_msg,
                details={
                    "status_code": 400,
                    "context": context,
                    "api_response": error_msg
                }
            )

        elif status_code == 413:
            raise PayloadSizeError(
                f"Request payload too large: {error_msg}",
                details={
                    "status_code": 413,
                    "context": context,
                    "api_response": error_msg
                }
            )

        elif status_code in (401, 403):
            raise AuthenticationError(
                error_msg,
                details={
                    "status_code": status_code,
                    "context": context,
                    "suggestion": "Check your project token and service account credentials",
                    "api_response": error_msg
                }
            )

        elif status_code >= 500:
            raise ServerError(
                error_msg,
                details={
                    "status_code": status_code,
                    "context": context,
                    "api_response": error_msg
                }
            )

        else:
            raise DriverError(
                f"API request failed: {error_msg}",
                details={
                    "status_code": status_code,
                    "context": context,
                    "api_response": error_msg
                }
            )


def _extract_error_message(body: Any) -> str:
    """
    Pull a human message out of an error body.

    {"error": "msg"}, {"error": {"message": "msg"}} and plain-text bodies are
    supported; anything else is stringified.
    """
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, str):
            return error
        if isinstance(error, dict) and "message" in error:
            return str(error["message"])
        if "message" in body:
            return str(body["message"])
        return str(body) if body else "Unknown error"

    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")

    if isinstance(body, str) and body:
        return body[:500]

    return "Unknown error"
