"""
test_sms_api.py — Tests for the SMS HTTP surface.

Covers:
    • POST /api/v1/sms/send status mapping (200 / 202 / 400 / 403 / 502)
    • POST /api/v1/sms/acks webhook routing
    • POST /api/v1/sms/outbox/drain gateway collection
    • POST /api/v1/sms/{token}/cancel
    • GET  /api/v1/sms/channels, /api/v1/sms/health
    • Deep health probes, request-id middleware and app restarts

Run with:
    pytest tests/test_sms_api.py -v
"""

from __future__ import annotations

import threading
import time

import pytest
from fastapi.testclient import TestClient

from backend.app.main import app
from backend.app.sms.listener_registry import InMemoryListenerRegistry
from backend.app.sms.models import Channel
from backend.app.sms.permissions import Permission, StaticPermissions
from backend.app.sms.result_translator import ResultCode
from backend.app.sms.sms_service import SmsService, get_sms_service
from backend.app.sms.telephony import SimulatedTelephony, WebhookTelephony


# ═══════════════════════════════════════════════════════════════════════════
# Test Fixtures
# ═══════════════════════════════════════════════════════════════════════════

PHONE = "+919876543210"
SEND_URL = "/api/v1/sms/send"
ALL_PERMISSIONS = (Permission.SEND_SMS, Permission.READ_PHONE_STATE)


def _make_simulated_service(
    result_code: int = ResultCode.OK,
    drop_acks: bool = False,
    granted=ALL_PERMISSIONS,
    timeout: float = 2.0,
) -> SmsService:
    registry = InMemoryListenerRegistry()
    telephony = SimulatedTelephony(
        registry,
        [Channel(1, "SIM 1"), Channel(2, "SIM 2")],
        result_code=result_code,
        ack_delay_seconds=0.01,
        drop_acks=drop_acks,
    )
    return SmsService(
        telephony, StaticPermissions(granted), registry=registry, ack_timeout=timeout,
    )


def _make_webhook_service(timeout: float = 5.0) -> SmsService:
    registry = InMemoryListenerRegistry()
    return SmsService(
        WebhookTelephony([Channel(1, "SIM 1")]),
        StaticPermissions(ALL_PERMISSIONS),
        registry=registry,
        ack_timeout=timeout,
    )


def _client_for(service: SmsService) -> TestClient:
    app.dependency_overrides[get_sms_service] = lambda: service
    return TestClient(app)


def _wait_until(predicate, timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(0.005)


@pytest.fixture(autouse=True)
def _clear_overrides():
    yield
    app.dependency_overrides.clear()


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: POST /send
# ═══════════════════════════════════════════════════════════════════════════

class TestSendEndpoint:
    """Test status mapping of the send call."""

    def test_success(self):
        client = _client_for(_make_simulated_service())
        resp = client.post(SEND_URL, json={"phone": PHONE, "message": "I need help"})

        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["status"] == "success"
        assert data["segment_count"] == 1
        assert data["channel"]["channel_id"] == 1
        assert data["correlation_token"].startswith("SMS_SENT_")

    def test_multipart_message(self):
        client = _client_for(_make_simulated_service())
        resp = client.post(SEND_URL, json={"phone": PHONE, "message": "x" * 200})

        assert resp.status_code == 200
        assert resp.json()["segment_count"] == 2

    @pytest.mark.parametrize("payload", [
        {},
        {"phone": PHONE},
        {"message": "Help"},
        {"phone": "   ", "message": "Help"},
        {"phone": PHONE, "message": ""},
    ])
    def test_missing_arguments_are_bad_args(self, payload):
        service = _make_simulated_service()
        client = _client_for(service)
        resp = client.post(SEND_URL, json=payload)

        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "BAD_ARGS"
        assert error["message"] == "phone or message missing"
        assert len(service.telephony.submissions) == 0

    def test_missing_permission(self):
        service = _make_simulated_service(granted=[Permission.READ_PHONE_STATE])
        client = _client_for(service)
        resp = client.post(SEND_URL, json={"phone": PHONE, "message": "Help"})

        assert resp.status_code == 403
        error = resp.json()["error"]
        assert error["code"] == "NO_PERMISSION"
        assert error["details"]["permission"] == "SEND_SMS"
        assert len(service.telephony.submissions) == 0

    def test_carrier_failure_is_send_fail(self):
        client = _client_for(_make_simulated_service(result_code=ResultCode.GENERIC_FAILURE))
        resp = client.post(SEND_URL, json={"phone": PHONE, "message": "Help"})

        assert resp.status_code == 502
        error = resp.json()["error"]
        assert error["code"] == "SEND_FAIL"
        assert "Generic failure" in error["message"]
        assert error["details"]["result_code"] == 1

    def test_vendor_block_message(self):
        client = _client_for(_make_simulated_service(result_code=16))
        resp = client.post(SEND_URL, json={"phone": PHONE, "message": "Help"})

        assert resp.status_code == 502
        assert "Permissions > SMS > Allow" in resp.json()["error"]["message"]

    def test_timeout_is_accepted_not_failed(self):
        client = _client_for(_make_simulated_service(drop_acks=True, timeout=0.05))
        resp = client.post(SEND_URL, json={"phone": PHONE, "message": "Help"})

        assert resp.status_code == 202
        data = resp.json()
        assert data["success"] is None
        assert data["status"] == "timed_out"
        assert "may have been sent" in data["message"]

    def test_request_id_header(self):
        client = _client_for(_make_simulated_service())
        resp = client.post(
            SEND_URL,
            json={"phone": PHONE, "message": "Help"},
            headers={"X-Request-ID": "abc123"},
        )
        assert resp.headers["X-Request-ID"] == "abc123"
        assert "X-Process-Time" in resp.headers


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Webhook acks and cancel
# ═══════════════════════════════════════════════════════════════════════════

class TestAckEndpoint:
    """Test gateway acknowledgments routed through the registry."""

    def test_ack_resolves_pending_send(self):
        service = _make_webhook_service()
        client = _client_for(service)
        results = []
        worker = threading.Thread(
            target=lambda: results.append(service.send_message_sync(PHONE, "Help")),
        )
        worker.start()
        _wait_until(lambda: len(service.telephony.pending()) == 1)
        token = service.telephony.pending()[0].ack_token

        resp = client.post("/api/v1/sms/acks", json={"token": token, "result_code": -1})
        worker.join(timeout=2.0)

        assert resp.status_code == 200
        assert resp.json() == {"token": token, "kind": "sent", "delivered": True}
        assert results[0].ok

    def test_failure_ack(self):
        service = _make_webhook_service()
        client = _client_for(service)
        results = []
        worker = threading.Thread(
            target=lambda: results.append(service.send_message_sync(PHONE, "Help")),
        )
        worker.start()
        _wait_until(lambda: len(service.telephony.pending()) == 1)
        token = service.telephony.pending()[0].ack_token

        client.post("/api/v1/sms/acks", json={"token": token, "result_code": 4})
        worker.join(timeout=2.0)

        assert results[0].outcome.is_failure
        assert "No service" in results[0].message

    def test_unknown_token_not_delivered(self):
        client = _client_for(_make_webhook_service())
        resp = client.post(
            "/api/v1/sms/acks", json={"token": "SMS_SENT_stale", "result_code": -1},
        )
        assert resp.status_code == 200
        assert resp.json()["delivered"] is False

    def test_delivery_receipt_accepted(self):
        client = _client_for(_make_webhook_service())
        resp = client.post(
            "/api/v1/sms/acks",
            json={"token": "SMS_DELIVERED_x", "result_code": -1, "kind": "delivered"},
        )
        assert resp.status_code == 200
        assert resp.json()["kind"] == "delivered"

    def test_invalid_ack_body(self):
        client = _client_for(_make_webhook_service())
        resp = client.post("/api/v1/sms/acks", json={"token": "t"})
        assert resp.status_code == 422


class TestOutboxEndpoint:
    """Test gateway collection of queued submissions."""

    def test_drain_returns_and_clears_queue(self):
        service = _make_webhook_service()
        client = _client_for(service)
        results = []
        worker = threading.Thread(
            target=lambda: results.append(service.send_message_sync(PHONE, "x" * 170)),
        )
        worker.start()
        _wait_until(lambda: len(service.telephony.pending()) == 1)

        resp = client.post("/api/v1/sms/outbox/drain")
        data = resp.json()
        submission = data["submissions"][0]
        again = client.post("/api/v1/sms/outbox/drain").json()
        client.post(
            "/api/v1/sms/acks",
            json={"token": submission["ack_token"], "result_code": -1},
        )
        worker.join(timeout=2.0)

        assert resp.status_code == 200
        assert data["telephony_profile"] == "webhook"
        assert submission["recipient"] == PHONE
        assert submission["segments"] == ["x" * 160, "x" * 10]
        assert submission["multipart"] is True
        assert again["submissions"] == []
        assert results[0].ok

    def test_more_sends_than_outbox_size(self):
        registry = InMemoryListenerRegistry()
        service = SmsService(
            WebhookTelephony([Channel(1, "SIM 1")], outbox_size=2),
            StaticPermissions(ALL_PERMISSIONS),
            registry=registry,
            ack_timeout=5.0,
        )
        client = _client_for(service)

        for i in range(4):
            results = []
            worker = threading.Thread(
                target=lambda: results.append(service.send_message_sync(PHONE, f"msg {i}")),
            )
            worker.start()
            _wait_until(lambda: len(service.telephony.pending()) == 1)
            token = service.telephony.pending()[0].ack_token
            client.post("/api/v1/sms/acks", json={"token": token, "result_code": -1})
            worker.join(timeout=2.0)
            assert results[0].ok

        assert service.telephony.pending() == []

    def test_simulation_profile_has_no_outbox(self):
        client = _client_for(_make_simulated_service())
        resp = client.post("/api/v1/sms/outbox/drain")
        assert resp.status_code == 409


class TestCancelEndpoint:

    def test_cancel_pending_send(self):
        service = _make_webhook_service()
        client = _client_for(service)
        results = []
        worker = threading.Thread(
            target=lambda: results.append(service.send_message_sync(PHONE, "Help")),
        )
        worker.start()
        _wait_until(lambda: len(service.telephony.pending()) == 1)
        token = service.telephony.pending()[0].ack_token

        resp = client.post(f"/api/v1/sms/{token}/cancel")
        worker.join(timeout=2.0)

        assert resp.status_code == 200
        assert resp.json()["status"] == "cancelled"
        assert results[0].outcome.is_timed_out

    def test_cancel_unknown(self):
        client = _client_for(_make_webhook_service())
        resp = client.post("/api/v1/sms/SMS_SENT_nope/cancel")
        assert resp.status_code == 404


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Channels and health
# ═══════════════════════════════════════════════════════════════════════════

class TestChannelsEndpoint:

    def test_lists_channels_and_selection(self):
        client = _client_for(_make_simulated_service())
        data = client.get("/api/v1/sms/channels").json()

        assert data["telephony_profile"] == "simulation"
        assert [c["channel_id"] for c in data["active_channels"]] == [1, 2]
        assert data["selected"]["channel_id"] == 1

    def test_generic_default_without_phone_state(self):
        client = _client_for(_make_simulated_service(granted=[Permission.SEND_SMS]))
        data = client.get("/api/v1/sms/channels").json()
        assert data["selected"]["channel_id"] == -1


class TestHealthEndpoints:

    def test_sms_health(self):
        client = _client_for(_make_simulated_service())
        data = client.get("/api/v1/sms/health").json()
        assert data["status"] == "healthy"
        assert data["details"]["telephony_profile"] == "simulation"
        assert data["details"]["pending_waits"] == 0

    def test_deep_health_healthy(self):
        client = _client_for(_make_simulated_service())
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        names = {c["name"] for c in data["components"]}
        assert names == {"telephony", "ack_listeners", "permissions"}

    def test_readiness_unhealthy_without_send_permission(self):
        client = _client_for(_make_simulated_service(granted=[Permission.READ_PHONE_STATE]))
        resp = client.get("/health/ready")
        assert resp.status_code == 503
        assert resp.json()["status"] == "unhealthy"

    def test_degraded_without_phone_state(self):
        client = _client_for(_make_simulated_service(granted=[Permission.SEND_SMS]))
        assert client.get("/health").json()["status"] == "degraded"

    def test_liveness(self):
        client = _client_for(_make_simulated_service())
        assert client.get("/health/live").json() == {"status": "alive"}


class TestLifespan:
    """Test startup/shutdown of the process-wide service."""

    def test_restart_builds_a_fresh_service(self):
        get_sms_service.cache_clear()
        with TestClient(app):
            first = get_sms_service()
        with TestClient(app) as client:
            second = get_sms_service()
            resp = client.post(SEND_URL, json={"phone": PHONE, "message": "Help"})

        assert first is not second
        assert resp.status_code == 200
        assert resp.json()["success"] is True
