"""
Unit tests for notification and analytics sinks.

The webhook sink is exercised against httpx.MockTransport.
"""

import json
import logging

import httpx
import pytest

from errorwatch.tracking.infrastructure import (
    CircuitBreaker,
    CircuitState,
    LoggingAnalyticsSink,
    LoggingNotificationSink,
    WebhookNotificationSink,
)

WEBHOOK_URL = "https://hooks.example.com/errorwatch"


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestWebhookNotificationSink:

    @pytest.mark.asyncio
    async def test_posts_json_payload(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(json.loads(request.content))
            return httpx.Response(200)

        sink = WebhookNotificationSink(WEBHOOK_URL, client=mock_client(handler))

        delivered = await sink.notify_admins("Error Alert: app_crash", "3 occurrences", {"type": "error_alert"})

        assert delivered is True
        assert requests == [{
            "title": "Error Alert: app_crash",
            "body": "3 occurrences",
            "data": {"type": "error_alert"},
        }]
        await sink.close()

    @pytest.mark.asyncio
    async def test_retries_then_gives_up(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            return httpx.Response(503)

        breaker = CircuitBreaker(failure_threshold=5)
        sink = WebhookNotificationSink(
            WEBHOOK_URL,
            max_retries=3,
            backoff_base_seconds=0,
            client=mock_client(handler),
            circuit_breaker=breaker,
        )

        assert await sink.notify_admins("t", "b", {}) is False
        assert len(attempts) == 3
        assert breaker.state == CircuitState.CLOSED
        await sink.close()

    @pytest.mark.asyncio
    async def test_transport_error_is_retried(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(204)

        sink = WebhookNotificationSink(WEBHOOK_URL, backoff_base_seconds=0, client=mock_client(handler))

        assert await sink.notify_admins("t", "b", {}) is True
        assert len(attempts) == 2
        await sink.close()

    @pytest.mark.asyncio
    async def test_open_circuit_skips_delivery(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            return httpx.Response(500)

        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=300)
        sink = WebhookNotificationSink(
            WEBHOOK_URL,
            max_retries=1,
            client=mock_client(handler),
            circuit_breaker=breaker,
        )

        await sink.notify_admins("t", "b", {})
        assert breaker.state == CircuitState.OPEN

        assert await sink.notify_admins("t", "b", {}) is False
        assert len(attempts) == 1
        await sink.close()

    @pytest.mark.asyncio
    async def test_missing_url_skips_delivery(self):
        sink = WebhookNotificationSink(None)

        assert await sink.notify_admins("t", "b", {}) is False


class TestCircuitBreaker:

    def test_half_open_after_recovery_timeout(self):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=0)

        breaker.record_failure()

        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.allow_request()

    def test_success_closes_circuit(self):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
        breaker.record_failure()

        breaker.record_success()

        assert breaker.state == CircuitState.CLOSED

    def test_half_open_lets_one_trial_through(self):
        now = [0.0]
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=30, clock=lambda: now[0])
        breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED
        breaker.record_failure()
        assert not breaker.allow_request()

        now[0] = 30.0

        assert breaker.allow_request()
        assert not breaker.allow_request()

    def test_failed_trial_reopens_for_full_timeout(self):
        now = [0.0]
        breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=30, clock=lambda: now[0])
        for _ in range(3):
            breaker.record_failure()
        now[0] = 31.0
        assert breaker.allow_request()

        breaker.record_failure()
        now[0] = 60.0

        assert breaker.state == CircuitState.OPEN
        now[0] = 61.0
        assert breaker.state == CircuitState.HALF_OPEN


class TestLoggingSinks:

    @pytest.mark.asyncio
    async def test_logging_notification_sink(self, caplog):
        caplog.set_level(logging.WARNING)

        assert await LoggingNotificationSink().notify_admins("Incident Escalated", "b", {"type": "x"})
        assert "Admin notification: Incident Escalated" in caplog.text

    @pytest.mark.asyncio
    async def test_logging_analytics_sink(self, caplog):
        caplog.set_level(logging.INFO, logger="errorwatch.analytics")
        sink = LoggingAnalyticsSink()

        await sink.log_event("error_occurred", {"error_type": "network_error"})
        await sink.record_error("boom", None, {"incident_id": "1"}, fatal=True)

        records = [r for r in caplog.records if r.name == "errorwatch.analytics"]
        assert records[0].event_name == "error_occurred"
        assert records[1].fatal is True
