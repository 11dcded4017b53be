"""
HTTP backends.

The transport only needs one capability: POST a JSON body and get back a status
and a decoded body. ``RequestsBackend`` is the production implementation; tests
inject their own ``HTTPBackend``.

Retry policy lives here, not in the transport: urllib3's ``Retry`` re-issues
requests on 429/5xx and connection failures with exponential backoff plus
jitter, and hands back the final response once attempts are exhausted.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import HTTPOptions

logger = logging.getLogger(__name__)

RETRY_STATUS_CODES = [429, 500, 502, 503, 504]
USER_AGENT = "MixpanelDriver-Python-Driver/1.0.0"


@dataclass
class HTTPResponse:
    """Status code and decoded body (JSON if parseable, otherwise text)."""

    status: int
    body: Any = None
    headers: Dict[str, str] = field(default_factory=dict)


class HTTPBackend(ABC):
    """
    Minimal HTTP capability used by the transport.

    Implementations raise ``requests.exceptions.RequestException`` subclasses
    (``ConnectionError``, ``Timeout``, ...) for transport-level failures.
    """

    @abstractmethod
    def post(
        self,
        url: str,
        json_body: Any,
        headers: Dict[str, str],
        options: Optional[HTTPOptions] = None
    ) -> HTTPResponse:
        """POST ``json_body`` to ``url`` and return the final response."""

    def close(self):
        """Release any pooled connections."""


class RequestsBackend(HTTPBackend):
    """
    ``requests.Session`` backed implementation.

    Example:
        backend = RequestsBackend(HTTPOptions(timeout=10, max_retries=5))
        response = backend.post("https://api.mixpanel.com/track", [...], {...})
        backend.close()
    """

    def __init__(self, options: Optional[HTTPOptions] = None):
        self.options = options or HTTPOptions()
        self.session = self._create_session()

    def post(
        self,
        url: str,
        json_body: Any,
        headers: Dict[str, str],
        options: Optional[HTTPOptions] = None
    ) -> HTTPResponse:
        timeout = (options or self.options).timeout

        logger.debug(f"POST {url} headers={sorted(headers)}")

        response = self.session.post(
            url,
            json=json_body,  # Serializes body; content-type comes from headers
            headers=headers,
            timeout=timeout
        )

        try:
            body = response.json()
        except ValueError:
            body = response.text

        return HTTPResponse(
            status=response.status_code,
            body=body,
            headers=dict(response.headers)
        )

    def close(self):
        if self.session:
            self.session.close()
            logger.debug("Session closed")

    def _create_session(self) -> requests.Session:
        """
        Create HTTP session with retry policy.

        Content-Type and Authorization are set per-request: /track and /import
        authenticate differently, so nothing credential-related goes on the session.
        """
        session = requests.Session()

        session.headers.update({
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        })

        adapter = HTTPAdapter(max_retries=self._build_retry())
        session.mount("https://", adapter)
        session.mount("http://", adapter)

        return session

    def _build_retry(self) -> Retry:
        if not self.options.retry:
            # One attempt; still return the response instead of raising on status
            return Retry(total=0, raise_on_status=False)

        # raise_on_status=False: hand back the final 429/5xx response so the
        # transport can classify it instead of getting a RetryError
        return Retry(
            total=self.options.max_retries,
            backoff_factor=self.options.backoff_factor,
            backoff_jitter=self.options.backoff_jitter,
            status_forcelist=RETRY_STATUS_CODES,
            allowed_methods=["POST"],
            respect_retry_after_header=True,
            raise_on_status=False
        )
