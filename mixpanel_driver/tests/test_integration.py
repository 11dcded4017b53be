"""
Integration tests for Mixpanel driver.

Tests:
- Multi-step workflows
- End-to-end scenarios over the requests backend
- Error recovery
- Batch processing workflows
"""

import pytest
from datetime import datetime, timezone
from unittest.mock import Mock, patch

from mixpanel_driver import (
    HTTPOptions,
    HTTPResponse,
    MixpanelConfig,
    MixpanelDriver,
    RateLimitError,
    ServiceAccount,
)


def _mock_response(json_body, status_code=200, headers=None):
    response = Mock()
    response.json.return_value = json_body
    response.status_code = status_code
    response.headers = headers or {}
    response.text = ""
    return response


@pytest.fixture
def requests_client():
    """Driver over the real RequestsBackend with session.post patched."""
    config = MixpanelConfig(
        project_token="test_token",
        service_account=ServiceAccount("test_user", "test_pass", "123456"),
        batch_size=10,
        batch_timeout_ms=60000,
        http_options=HTTPOptions(retry=False),
    )
    client = MixpanelDriver(config, register_atexit=False)
    with patch.object(client.backend.session, "post") as mock_post:
        mock_post.return_value = _mock_response({"status": 1})
        yield client, mock_post
        client.batcher.clear()
        client.close()


class TestTrackWorkflow:
    """Test complete tracking workflows."""

    def test_user_journey_workflow(self, requests_client):
        """Test workflow: queue a session of events, flush, verify one request."""
        client, mock_post = requests_client
        journey = ["session_start", "page_view", "add_to_cart", "checkout", "session_end"]

        for step in journey:
            client.track(step, {"device_id": "device-uuid-123", "user_id": "user@example.com"})

        assert client.pending_count == 5
        assert client.flush() == {"attempted": 5}

        mock_post.assert_called_once()
        sent = mock_post.call_args.kwargs["json"]
        assert [p["event"] for p in sent] == journey
        assert all(p["properties"]["token"] == "test_token" for p in sent)
        assert mock_post.call_args.args[0] == "https://api.mixpanel.com/track"

    def test_multiple_batches_workflow(self, requests_client):
        """Test workflow: 25 events with batch_size=10 become three requests."""
        client, mock_post = requests_client

        for i in range(25):
            client.track("page_view", {"device_id": f"device-{i}"})

        assert client.batcher.wait(timeout=2)
        assert client.pending_count == 5
        client.flush()

        sizes = sorted(len(call.kwargs["json"]) for call in mock_post.call_args_list)
        assert sizes == [5, 10, 10]

    def test_immediate_and_batched_mix(self, requests_client):
        """Test workflow: immediate sends bypass the pending batch."""
        client, mock_post = requests_client

        client.track("page_view", {"device_id": "d1"})
        result = client.track("purchase", {"device_id": "d1", "amount": 99.99}, immediate=True)

        assert result == {"accepted": 1}
        assert client.pending_count == 1
        assert mock_post.call_args.kwargs["json"]["event"] == "purchase"


class TestImportWorkflow:
    """Test historical import workflows."""

    def test_backfill_workflow(self, requests_client):
        """Test workflow: import past events with datetime timestamps."""
        client, mock_post = requests_client
        mock_post.return_value = _mock_response({"code": 200, "num_records_imported": 2, "status": "OK"})

        result = client.track_many([
            {
                "event": "signup",
                "device_id": "device-uuid-123",
                "time": datetime(2023, 1, 1, tzinfo=timezone.utc),
            },
            {
                "event": "purchase",
                "device_id": "device-uuid-123",
                "time": datetime(2023, 1, 2, tzinfo=timezone.utc),
                "amount": 49.99,
            },
        ])

        assert result == {"accepted": 2}
        sent = mock_post.call_args.kwargs["json"]
        assert [p["properties"]["time"] for p in sent] == [1672531200, 1672617600]
        assert all(p["properties"]["project_id"] == "123456" for p in sent)
        assert mock_post.call_args.kwargs["headers"]["authorization"].startswith("Basic ")
        assert mock_post.call_args.args[0] == "https://api.mixpanel.com/import"


class TestErrorRecovery:
    """Test error handling in workflows."""

    def test_recover_from_rate_limit(self, requests_client):
        """Test workflow: rate limited once, succeed on the caller's retry."""
        client, mock_post = requests_client
        mock_post.side_effect = [
            _mock_response({"error": "Rate limited"}, status_code=429, headers={"Retry-After": "1"}),
            _mock_response({"status": 1}),
        ]

        with pytest.raises(RateLimitError) as exc_info:
            client.track("purchase", {"device_id": "d1"}, immediate=True)
        assert exc_info.value.details["retry_after"] == 1

        result = client.track("purchase", {"device_id": "d1"}, immediate=True)
        assert result == {"accepted": 1}
        assert mock_post.call_count == 2

    def test_batched_failure_then_success(self):
        """Test workflow: a dropped batch does not block later batches."""
        backend = Mock()
        backend.post.side_effect = [
            HTTPResponse(status=503, body="Service Unavailable"),
            HTTPResponse(status=200, body={"status": 1}),
        ]
        results = []
        client = MixpanelDriver(
            MixpanelConfig(project_token="test_token", batch_size=100),
            backend=backend,
            on_batch_result=lambda *args: results.append(args),
            register_atexit=False
        )

        client.track("page_view", {"device_id": "d1"})
        client.flush()
        client.track("page_view", {"device_id": "d2"})
        client.flush()
        client.close()

        assert results[0][1] is None
        assert results[0][2].kind == "server"
        assert results[1] == (1, {"accepted": 1}, None)
        assert client.batcher.metrics.events_dropped == 1
        assert client.batcher.metrics.events_sent == 1
