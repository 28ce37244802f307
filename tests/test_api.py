"""
tests/test_api.py - HTTP surface via FastAPI TestClient
"""

import hashlib
import hmac
import json
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from wandermate.agents.travel_agent import get_travel_agent
from wandermate.config import settings
from wandermate.errors import ConcurrencyTimeout
from wandermate.main import app

APP_SECRET = "app_secret"
VERIFY_TOKEN = "verify_me"


@pytest.fixture
def client(agent):
    app.dependency_overrides[get_travel_agent] = lambda: agent
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def whatsapp_settings(monkeypatch):
    monkeypatch.setattr(settings, "WHATSAPP_APP_SECRET", APP_SECRET)
    monkeypatch.setattr(settings, "WHATSAPP_VERIFY_TOKEN", VERIFY_TOKEN)


def signed(body: bytes) -> dict:
    digest = hmac.new(APP_SECRET.encode(), body, hashlib.sha256).hexdigest()
    return {"X-Hub-Signature-256": f"sha256={digest}", "Content-Type": "application/json"}


def webhook_payload(message: dict) -> bytes:
    return json.dumps({
        "object": "whatsapp_business_account",
        "entry": [{
            "id": "waba",
            "changes": [{
                "field": "messages",
                "value": {"metadata": {"phone_number_id": "12345"}, "messages": [message]},
            }],
        }],
    }).encode()


class TestAgentEndpoint:
    def test_post_message(self, client):
        response = client.post("/api/ai-agent", json={"message": "hello", "sessionId": "s1"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["sessionId"] == "s1"
        assert body["autonomyLevel"] == "assisted"
        assert body["turnIndex"] == 0
        assert "Namaste" in body["response"]["text"]

    def test_new_session_id_generated(self, client):
        body = client.post("/api/ai-agent", json={"message": "hello"}).json()
        assert body["sessionId"].startswith("sess_")

    def test_empty_message_is_400(self, client):
        response = client.post("/api/ai-agent", json={"message": "", "sessionId": "s1"})
        assert response.status_code == 400
        assert response.json()["field"] == "message"

    def test_autonomy_level_and_location(self, client, catalog):
        response = client.post("/api/ai-agent", json={
            "message": "Book the sunrise boat tour for tomorrow for 2 people",
            "sessionId": "s1",
            "autonomyLevel": "manual",
            "userLocation": {"lat": 25.31, "lng": 83.01},
        })

        body = response.json()
        assert body["autonomyLevel"] == "manual"
        assert body["outcome"] == "awaiting_confirmation"
        assert catalog.book_calls == 0

    def test_busy_session_is_429(self, client, agent):
        agent.process_message = AsyncMock(side_effect=ConcurrencyTimeout("s1", 5.0))

        response = client.post("/api/ai-agent", json={"message": "hello", "sessionId": "s1"})

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "5"

    def test_unexpected_error_is_500(self, agent):
        agent.process_message = AsyncMock(side_effect=RuntimeError("database on fire"))
        app.dependency_overrides[get_travel_agent] = lambda: agent
        try:
            response = TestClient(app, raise_server_exceptions=False).post(
                "/api/ai-agent", json={"message": "hello", "sessionId": "s1"}
            )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 500
        assert "database" not in response.text

    def test_agent_info(self, client):
        response = client.get("/api/ai-agent", params={"sessionId": "s1"})
        info = response.json()["agentInfo"]
        assert info["autonomyLevel"] == "assisted"
        assert info["providers"]["payment"] == "ready"

    def test_agent_info_requires_session(self, client):
        assert client.get("/api/ai-agent").status_code == 400

    def test_update_autonomy(self, client):
        response = client.put("/api/ai-agent/autonomy", json={"sessionId": "s1", "autonomyLevel": "guided"})
        assert response.json()["autonomyLevel"] == "manual"

        bad = client.put("/api/ai-agent/autonomy", json={"sessionId": "s1", "autonomyLevel": "reckless"})
        assert bad.status_code == 400

    def test_history(self, client):
        client.post("/api/ai-agent", json={"message": "hello", "sessionId": "s1"})
        client.post("/api/ai-agent", json={"message": "weather today", "sessionId": "s1"})

        turns = client.get("/api/ai-agent/history/s1").json()["turns"]
        assert [t["index"] for t in turns] == [0, 1]
        assert turns[1]["tool_results"][0]["provider"] == "weather"

    def test_history_unknown_session(self, client):
        assert client.get("/api/ai-agent/history/nobody").status_code == 404


class TestWhatsAppWebhook:
    def test_verification(self, client, whatsapp_settings):
        response = client.get("/api/whatsapp/webhook", params={
            "hub.mode": "subscribe", "hub.verify_token": VERIFY_TOKEN, "hub.challenge": "42"
        })
        assert response.status_code == 200
        assert response.text == "42"

    def test_verification_wrong_token(self, client, whatsapp_settings):
        response = client.get("/api/whatsapp/webhook", params={
            "hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "42"
        })
        assert response.status_code == 403

    def test_rejects_bad_signature(self, client, whatsapp_settings, transport):
        body = webhook_payload({"from": "919876543210", "type": "text", "text": {"body": "hello"}})
        response = client.post(
            "/api/whatsapp/webhook", content=body, headers={"X-Hub-Signature-256": "sha256=" + "0" * 64}
        )
        assert response.status_code == 401
        assert transport.sent == []

    def test_text_message_processed_and_replied(self, client, agent, whatsapp_settings, transport):
        body = webhook_payload({"from": "919876543210", "type": "text", "text": {"body": "hello"}})

        response = client.post("/api/whatsapp/webhook", content=body, headers=signed(body))

        assert response.status_code == 200
        assert transport.sent[0]["to"] == "919876543210"
        assert "Namaste" in transport.sent[0]["text"]

    def test_button_reply_confirms_pending_booking(self, client, agent, whatsapp_settings, catalog):
        book = webhook_payload({
            "from": "919876543210", "type": "text",
            "text": {"body": "Book the sunrise boat tour for tomorrow for 2 people"},
        })
        client.put("/api/ai-agent/autonomy", json={"sessionId": "whatsapp_919876543210", "autonomyLevel": "manual"})
        client.post("/api/whatsapp/webhook", content=book, headers=signed(book))
        assert catalog.book_calls == 0

        tap = webhook_payload({
            "from": "919876543210", "type": "interactive",
            "interactive": {"type": "button_reply", "button_reply": {"id": "quick_reply_0", "title": "Yes, confirm"}},
        })
        client.post("/api/whatsapp/webhook", content=tap, headers=signed(tap))

        assert catalog.book_calls == 1

    def test_media_message_gets_placeholder(self, client, agent, whatsapp_settings):
        body = webhook_payload({"from": "919876543210", "type": "image", "image": {"id": "media1"}})

        client.post("/api/whatsapp/webhook", content=body, headers=signed(body))

        history = client.get("/api/ai-agent/history/whatsapp_919876543210").json()["turns"]
        assert history[0]["input_text"] == "[Image received]"


class TestPaymentsAndHealth:
    def test_verify_payment(self, client, payment):
        response = client.post("/api/verify-payment", json={
            "razorpay_order_id": "order_1",
            "razorpay_payment_id": "pay_1",
            "razorpay_signature": payment.sign("order_1", "pay_1"),
        })
        assert response.status_code == 200
        assert response.json()["verified"] is True

    def test_verify_payment_mismatch(self, client):
        response = client.post("/api/verify-payment", json={
            "razorpay_order_id": "order_1",
            "razorpay_payment_id": "pay_1",
            "razorpay_signature": "0" * 64,
        })
        assert response.status_code == 400
        assert response.json()["verified"] is False

    def test_health(self, client):
        body = client.get("/api/ai/health").json()
        assert body["status"] == "healthy"
        assert body["providers"]["booking"] == "ready"

    def test_root(self, client):
        assert client.get("/").json()["service"] == "WanderMate Travel Agent"

    def test_lifespan_uses_overridden_agent(self, agent):
        app.dependency_overrides[get_travel_agent] = lambda: agent
        try:
            with TestClient(app) as client:
                client.post("/api/ai-agent", json={"message": "hello", "sessionId": "s1"})
                body = client.get("/api/ai/health").json()
        finally:
            app.dependency_overrides.clear()

        assert body["session_backend"] == "memory"
        assert body["active_sessions"] == 1

    def test_shutdown_closes_provider_clients(self, agent, payment):
        payment.aclose = AsyncMock()
        app.dependency_overrides[get_travel_agent] = lambda: agent
        try:
            with TestClient(app) as client:
                client.get("/api/ai/health")
                payment.aclose.assert_not_awaited()
        finally:
            app.dependency_overrides.clear()

        payment.aclose.assert_awaited_once()
