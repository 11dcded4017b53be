"""
Test suite for the HTTP transport.

Tests:
- URL construction
- Success body interpretation
- Error status classification
- Network failure mapping
"""

import pytest
import requests
from unittest.mock import MagicMock

from mixpanel_driver import (
    AuthenticationError,
    ConnectionError,
    DriverError,
    HTTPBackend,
    HTTPResponse,
    MixpanelConfig,
    PayloadSizeError,
    RateLimitError,
    ServerError,
    TimeoutError,
    Transport,
    ValidationError,
)
from mixpanel_driver.transport import IMPORT_ENDPOINT, TRACK_ENDPOINT

HEADERS = {"content-type": "application/json"}


@pytest.fixture
def backend():
    return MagicMock(spec=HTTPBackend)


@pytest.fixture
def transport(backend):
    return Transport(MixpanelConfig(project_token="test_token"), backend)


def respond(backend, status, body=None, headers=None):
    backend.post.return_value = HTTPResponse(status=status, body=body, headers=headers or {})


class TestRequest:
    """Test how requests are issued."""

    def test_url_for(self, backend):
        transport = Transport(
            MixpanelConfig(project_token="t", base_url="https://api-eu.mixpanel.com/"),
            backend
        )
        assert transport.url_for(TRACK_ENDPOINT) == "https://api-eu.mixpanel.com/track"
        assert transport.url_for(IMPORT_ENDPOINT) == "https://api-eu.mixpanel.com/import"

    def test_send_posts_payload(self, transport, backend):
        respond(backend, 200, {"status": 1})
        payload = {"event": "e", "properties": {"token": "test_token"}}

        transport.send(payload, TRACK_ENDPOINT, HEADERS)

        backend.post.assert_called_once_with(
            "https://api.mixpanel.com/track",
            payload,
            HEADERS,
            transport.config.http_options
        )


class TestSuccess:
    """Test 2xx handling."""

    def test_track_status_one(self, transport, backend):
        respond(backend, 200, {"status": 1})
        assert transport.send({"event": "e"}, TRACK_ENDPOINT, HEADERS) == {"accepted": 1}

    def test_import_records_count(self, transport, backend, mock_import_response):
        respond(backend, 200, mock_import_response)

        result = transport.send([{}, {}, {}], IMPORT_ENDPOINT, HEADERS)

        assert result == {"accepted": 3}

    def test_other_success_body_counts_one(self, transport, backend):
        """A bare 200 is counted as one accepted event, even for a batch."""
        respond(backend, 200, "1")
        assert transport.send([{}, {}], TRACK_ENDPOINT, HEADERS) == {"accepted": 1}

        respond(backend, 204, None)
        assert transport.send({}, TRACK_ENDPOINT, HEADERS) == {"accepted": 1}

    def test_status_zero_is_still_accepted(self, transport, backend):
        """Any 2xx is a success; a status 0 body counts as one accepted event."""
        respond(backend, 200, {"status": 0, "error": "some data points in the request failed validation"})

        assert transport.send({}, TRACK_ENDPOINT, HEADERS) == {"accepted": 1}


class TestErrorStatus:
    """Test non-2xx classification."""

    def test_rate_limit(self, transport, backend, mock_rate_limit_response):
        backend.post.return_value = mock_rate_limit_response

        with pytest.raises(RateLimitError) as exc_info:
            transport.send({}, TRACK_ENDPOINT, HEADERS)

        error = exc_info.value
        assert error.kind == "rate_limit"
        assert error.retryable is True
        assert error.message == "Rate limited"
        assert error.details["retry_after"] == 60
        assert error.details["status_code"] == 429

    def test_rate_limit_without_retry_after(self, transport, backend):
        respond(backend, 429, {"error": "too many requests"})

        with pytest.raises(RateLimitError) as exc_info:
            transport.send({}, TRACK_ENDPOINT, HEADERS)
        assert exc_info.value.details["retry_after"] is None

    def test_bad_request(self, transport, backend):
        respond(backend, 400, {"error": "Invalid event"})

        with pytest.raises(ValidationError) as exc_info:
            transport.send({}, TRACK_ENDPOINT, HEADERS)

        assert exc_info.value.message == "Invalid event"
        assert exc_info.value.retryable is False

    def test_bad_request_nested_message(self, transport, backend):
        respond(backend, 400, {"error": {"message": "project_id mismatch"}})

        with pytest.raises(ValidationError) as exc_info:
            transport.send([], IMPORT_ENDPOINT, HEADERS)
        assert exc_info.value.message == "project_id mismatch"

    def test_payload_too_large(self, transport, backend):
        respond(backend, 413, "Request Entity Too Large")

        with pytest.raises(PayloadSizeError) as exc_info:
            transport.send([], TRACK_ENDPOINT, HEADERS)
        assert exc_info.value.details["status_code"] == 413

    def test_authentication_errors(self, transport, backend):
        for status in (401, 403):
            respond(backend, status, {"error": "Invalid credentials"})

            with pytest.raises(AuthenticationError) as exc_info:
                transport.send([], IMPORT_ENDPOINT, HEADERS)

            assert exc_info.value.kind == "auth"
            assert exc_info.value.retryable is False
            assert exc_info.value.details["status_code"] == status

    def test_server_errors(self, transport, backend):
        for status in (500, 503):
            respond(backend, status, "Service Unavailable")

            with pytest.raises(ServerError) as exc_info:
                transport.send({}, TRACK_ENDPOINT, HEADERS)

            assert exc_info.value.retryable is True
            assert exc_info.value.message == "Service Unavailable"

    def test_unclassified_status(self, transport, backend):
        respond(backend, 404, {"message": "Not found"})

        with pytest.raises(DriverError) as exc_info:
            transport.send({}, TRACK_ENDPOINT, HEADERS)

        assert type(exc_info.value) is DriverError
        assert exc_info.value.kind == "unknown"
        assert exc_info.value.message == "API request failed: Not found"

    def test_error_context(self, transport, backend):
        respond(backend, 500, None)

        with pytest.raises(ServerError) as exc_info:
            transport.send([{}, {}], TRACK_ENDPOINT, HEADERS)

        assert exc_info.value.message == "Unknown error"
        assert exc_info.value.details["context"] == "sending 2 event(s) to /track"


class TestNetworkErrors:
    """Test transport-level failures."""

    def test_connection_error(self, transport, backend):
        backend.post.side_effect = requests.exceptions.ConnectionError("connection refused")

        with pytest.raises(ConnectionError) as exc_info:
            transport.send({}, TRACK_ENDPOINT, HEADERS)

        assert exc_info.value.kind == "network"
        assert exc_info.value.retryable is True
        assert "Network error" in exc_info.value.message

    def test_timeout(self, transport, backend):
        backend.post.side_effect = requests.exceptions.Timeout("read timed out")

        with pytest.raises(TimeoutError) as exc_info:
            transport.send({}, TRACK_ENDPOINT, HEADERS)

        assert isinstance(exc_info.value, ConnectionError)
        assert exc_info.value.kind == "network"
        assert "Network error" in exc_info.value.message
