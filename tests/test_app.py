import asyncio
import hashlib
import hmac
import json
from urllib.parse import parse_qs

import httpx
import pytest
from fastapi.testclient import TestClient

from app import create_app
from channels import SmsAdapter, WebAdapter, WhatsAppAdapter
from triage.models import OutboundMessage, Platform

APP_SECRET = "app-secret"


class Outbound:
    """Records requests the channel adapters send to providers."""

    def __init__(self):
        self.requests = []

    def client(self):
        def handler(request):
            self.requests.append(request)
            return httpx.Response(200, json={"ok": True})

        return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def outbound():
    return Outbound()


@pytest.fixture
def web():
    return WebAdapter()


@pytest.fixture
def app(manager, outbound, web):
    whatsapp = WhatsAppAdapter(
        access_token="token",
        phone_number_id="1234",
        api_url="https://graph.example.com/v18.0",
        verify_token="verify-me",
        app_secret=APP_SECRET,
        client=outbound.client(),
    )
    sms = SmsAdapter(gateway_url="https://sms.example.com/send", client=outbound.client())
    return create_app(manager=manager, whatsapp=whatsapp, sms=sms, web=web, run_sweeper=False)


def signed(body: bytes) -> dict:
    digest = hmac.new(APP_SECRET.encode(), body, hashlib.sha256).hexdigest()
    return {"X-Hub-Signature-256": f"sha256={digest}", "Content-Type": "application/json"}


def test_web_message_round_trip(app):
    with TestClient(app) as client:
        resp = client.post("/v1/messages", json={"userId": "u1", "text": "hi"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["text"] == "Hi, how are you? How can I help you today?"
        assert body["intent"] == "greeting"
        assert [b["title"] for b in body["buttons"]] == ["Health Question", "Vaccination Info", "Symptoms Check"]

        follow_up = client.post("/v1/messages", json={"userId": "u1", "text": "I have fever"}).json()
        assert follow_up["sessionId"] == body["sessionId"]
        assert follow_up["text"] == "What is your current body temperature?"


def test_web_message_validation(app):
    with TestClient(app) as client:
        resp = client.post("/v1/messages", json={"userId": "u1", "text": "   "})
        assert resp.status_code == 422
        assert "empty" in resp.json()["error"]

        resp = client.post("/v1/messages", json={"userId": "u1", "text": "hi", "platform": "fax"})
        assert resp.status_code == 422

        assert client.post("/v1/messages", json={"text": "hi"}).status_code == 422


def test_web_outbox(app, web):
    asyncio.run(web.send(OutboundMessage(
        session_id="s1", user_id="u1", platform=Platform.WEB, language="en", text="A health worker will call you."
    )))
    with TestClient(app) as client:
        messages = client.get("/v1/web/u1/outbox").json()["messages"]
        assert [m["text"] for m in messages] == ["A health worker will call you."]
        assert client.get("/v1/web/u1/outbox").json()["messages"] == []


def test_whatsapp_verification(app):
    with TestClient(app) as client:
        ok = client.get(
            "/v1/whatsapp/webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "424242"},
        )
        assert ok.status_code == 200
        assert ok.text == "424242"

        bad = client.get(
            "/v1/whatsapp/webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": "wrong", "hub.challenge": "424242"},
        )
        assert bad.status_code == 403


def test_whatsapp_webhook_replies_through_graph_api(app, outbound):
    body = json.dumps({"entry": [{"changes": [{"value": {"messages": [
        {"from": "919876543210", "id": "wamid.1", "type": "text", "text": {"body": "hi"}},
    ]}}]}]}).encode()

    with TestClient(app) as client:
        resp = client.post("/v1/whatsapp/webhook", content=body, headers=signed(body))
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "processed": 1}

    (request,) = outbound.requests
    assert str(request.url) == "https://graph.example.com/v18.0/1234/messages"
    sent = json.loads(request.content)
    assert sent["to"] == "919876543210"
    assert sent["type"] == "interactive"


def test_whatsapp_webhook_rejects_bad_signature(app, outbound):
    body = b'{"entry": []}'
    with TestClient(app) as client:
        resp = client.post(
            "/v1/whatsapp/webhook",
            content=body,
            headers={"X-Hub-Signature-256": "sha256=forged", "Content-Type": "application/json"},
        )
        assert resp.status_code == 403
    assert outbound.requests == []


def test_whatsapp_webhook_malformed_json(app):
    body = b"not json"
    with TestClient(app) as client:
        assert client.post("/v1/whatsapp/webhook", content=body, headers=signed(body)).status_code == 400


def test_sms_webhook(app, outbound):
    with TestClient(app) as client:
        resp = client.post("/v1/sms/webhook", data={"From": "9876543210", "Body": "hi", "MessageSid": "SM1"})
        assert resp.status_code == 200
        assert resp.json() == {"success": True}

    (request,) = outbound.requests
    form = parse_qs(request.content.decode())
    assert form["To"] == ["+919876543210"]
    assert "Options:" in form["Body"][0]


def test_sms_webhook_replies_in_the_language_of_the_script(app, outbound):
    with TestClient(app) as client:
        resp = client.post("/v1/sms/webhook", data={"From": "9876543210", "Body": "नमस्ते"})
        assert resp.status_code == 200

    bodies = [parse_qs(r.content.decode())["Body"][0] for r in outbound.requests]
    assert "नमस्ते, आप कैसे हैं?" in bodies[0]


def test_sms_webhook_requires_sender(app):
    with TestClient(app) as client:
        assert client.post("/v1/sms/webhook", data={"Body": "hi"}).status_code == 422


def test_end_session(app):
    with TestClient(app) as client:
        client.post("/v1/messages", json={"userId": "u1", "text": "hi"})
        assert client.post("/v1/sessions/web/u1/end").json() == {"ended": True}
        assert client.post("/v1/sessions/web/u1/end").json() == {"ended": False}
        assert client.post("/v1/sessions/fax/u1/end").status_code == 404


def test_health(app):
    with TestClient(app) as client:
        assert client.get("/health").json() == {"status": "healthy", "service": "health_triage_engine"}
