import asyncio
import hashlib
import hmac
import json
from urllib.parse import parse_qs

import httpx
import pytest

from channels.sms import SmsAdapter, normalize_phone, prepare_parts, render_options, split_message
from channels.web import WebAdapter, render
from channels.whatsapp import WhatsAppAdapter
from triage.delivery import OutboundDispatcher
from triage.errors import ChannelDeliveryError, ValidationError
from triage.models import Button, OutboundMessage, Platform

BUTTONS = [
    Button(id="health_question", title="Health Question"),
    Button(id="vaccination_info", title="Vaccination Info"),
    Button(id="symptoms_check", title="Symptoms Check"),
    Button(id="talk_to_doctor", title="Talk to a Doctor Right Now"),
]


def webhook(*messages):
    return {"entry": [{"changes": [{"value": {"messages": list(messages)}}]}]}


def recording_client(status_code=200):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(status_code, json={"ok": status_code < 400})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), requests


def reply(platform, buttons=(), text="hello", user_id="919876543210"):
    return OutboundMessage(
        session_id="s1", user_id=user_id, platform=platform, language="en", text=text, buttons=list(buttons)
    )


# ── WhatsApp ───────────────────────────────────────────────────────────────


def test_whatsapp_parses_text_and_button_replies():
    adapter = WhatsAppAdapter(client=httpx.AsyncClient())
    payload = webhook(
        {"from": "919876543210", "id": "wamid.1", "timestamp": "1714550400", "type": "text",
         "text": {"body": "I have fever"}},
        {"from": "919876543210", "id": "wamid.2", "type": "interactive",
         "interactive": {"type": "button_reply", "button_reply": {"id": "symptoms_check", "title": "Symptoms Check"}}},
        {"from": "919876543210", "id": "wamid.3", "type": "image", "image": {"id": "media"}},
    )
    messages = adapter.parse(payload)
    assert [m.text for m in messages] == ["I have fever", "Symptoms Check"]
    assert messages[0].platform == Platform.WHATSAPP
    assert messages[0].message_id == "wamid.1"
    assert messages[0].timestamp.year == 2024


def test_whatsapp_status_updates_produce_no_messages():
    adapter = WhatsAppAdapter(client=httpx.AsyncClient())
    payload = {"entry": [{"changes": [{"value": {"statuses": [{"id": "wamid.1", "status": "read"}]}}]}]}
    assert adapter.parse(payload) == []


def test_whatsapp_drops_empty_text():
    adapter = WhatsAppAdapter(client=httpx.AsyncClient())
    payload = webhook({"from": "919876543210", "id": "wamid.1", "type": "text", "text": {"body": "  "}})
    assert adapter.parse(payload) == []


def test_whatsapp_reads_language_from_script():
    adapter = WhatsAppAdapter(client=httpx.AsyncClient())
    payload = webhook(
        {"from": "919876543210", "id": "wamid.1", "type": "text", "text": {"body": "नमस्ते"}},
        {"from": "919876543210", "id": "wamid.2", "type": "text", "text": {"body": "hello"}},
    )
    hindi, latin = adapter.parse(payload)
    assert hindi.language == "hi"
    assert latin.language is None


def test_whatsapp_subscription_verification():
    adapter = WhatsAppAdapter(verify_token="secret-token", client=httpx.AsyncClient())
    assert adapter.verify_subscription("subscribe", "secret-token", "12345") == "12345"
    assert adapter.verify_subscription("subscribe", "wrong", "12345") is None
    assert adapter.verify_subscription("unsubscribe", "secret-token", "12345") is None


def test_whatsapp_signature():
    adapter = WhatsAppAdapter(app_secret="app-secret", client=httpx.AsyncClient())
    body = b'{"entry": []}'
    digest = hmac.new(b"app-secret", body, hashlib.sha256).hexdigest()
    assert adapter.verify_signature(body, f"sha256={digest}")
    assert not adapter.verify_signature(body, "sha256=deadbeef")
    assert not adapter.verify_signature(body, None)
    assert WhatsAppAdapter(app_secret="", client=httpx.AsyncClient()).verify_signature(body, None)


def test_whatsapp_payload_limits_buttons():
    adapter = WhatsAppAdapter(client=httpx.AsyncClient())
    payload = adapter.build_payload(reply(Platform.WHATSAPP, BUTTONS))
    buttons = payload["interactive"]["action"]["buttons"]
    assert payload["type"] == "interactive"
    assert len(buttons) == 3
    assert all(len(b["reply"]["title"]) <= 20 for b in buttons)

    plain = adapter.build_payload(reply(Platform.WHATSAPP))
    assert plain["type"] == "text"
    assert plain["text"]["body"] == "hello"


def test_whatsapp_send_posts_to_graph_api():
    client, requests = recording_client()
    adapter = WhatsAppAdapter(
        access_token="token", phone_number_id="1234", api_url="https://graph.example.com/v18.0", client=client
    )
    asyncio.run(adapter.send(reply(Platform.WHATSAPP)))
    (request,) = requests
    assert str(request.url) == "https://graph.example.com/v18.0/1234/messages"
    assert request.headers["Authorization"] == "Bearer token"
    assert json.loads(request.content)["to"] == "919876543210"


def test_whatsapp_send_failure_raises():
    client, _ = recording_client(status_code=500)
    adapter = WhatsAppAdapter(phone_number_id="1234", client=client)
    with pytest.raises(ChannelDeliveryError):
        asyncio.run(adapter.send(reply(Platform.WHATSAPP)))


# ── SMS ────────────────────────────────────────────────────────────────────


def test_normalize_phone():
    assert normalize_phone("98765 43210") == "+919876543210"
    assert normalize_phone("+91-98765-43210") == "+919876543210"
    assert normalize_phone("+1 (415) 555-0100") == "+14155550100"


def test_render_options_numbers_buttons():
    text = render_options("Pick one", BUTTONS[:2])
    assert text == (
        "Pick one\n\nOptions:\n1. Health Question\n2. Vaccination Info\n\n"
        "Reply with option number (1, 2, etc.)"
    )
    assert render_options("Plain", []) == "Plain"


def test_split_message_breaks_at_words():
    text = "word " * 80
    parts = split_message(text.strip())
    assert len(parts) > 1
    assert all(len(p) <= 160 for p in parts)
    assert " ".join(parts).split() == text.split()


def test_prepare_parts_numbers_and_truncates():
    parts = prepare_parts("a" * 200)
    assert parts == ["(1/2) " + "a" * 160, "(2/2) " + "a" * 40]

    (truncated,) = prepare_parts("x" * 1000)
    assert truncated == "x" * (160 * 3 - 50) + "... (continued)"

    assert prepare_parts("short") == ["short"]


def test_sms_parse():
    adapter = SmsAdapter(client=httpx.AsyncClient())
    (message,) = adapter.parse({"From": "9876543210", "Body": "fever", "MessageSid": "SM1"})
    assert message.user_id == "+919876543210"
    assert message.platform == Platform.SMS
    assert message.text == "fever"
    assert message.message_id == "SM1"

    with pytest.raises(ValidationError):
        adapter.parse({"Body": "fever"})
    with pytest.raises(ValidationError):
        adapter.parse({"From": "9876543210", "Body": ""})


def test_sms_send_posts_each_part():
    client, requests = recording_client()
    adapter = SmsAdapter(gateway_url="https://sms.example.com/send", sender_id="HEALTH", client=client)
    asyncio.run(adapter.send(reply(Platform.SMS, text="a" * 200, user_id="+919876543210")))
    assert len(requests) == 2
    form = parse_qs(requests[0].content.decode())
    assert form["To"] == ["+919876543210"]
    assert form["From"] == ["HEALTH"]
    assert form["Body"][0].startswith("(1/2) ")


def test_sms_retry_resumes_after_the_last_accepted_part():
    bodies = []

    def handler(request):
        body = parse_qs(request.content.decode())["Body"][0]
        bodies.append(body)
        # The gateway rejects the second part once
        if body.startswith("(2/2)") and bodies.count(body) == 1:
            return httpx.Response(503)
        return httpx.Response(200, json={"ok": True})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    adapter = SmsAdapter(gateway_url="https://sms.example.com/send", client=client)
    dispatcher = OutboundDispatcher({Platform.SMS: adapter}, backoff_seconds=0)
    message = reply(Platform.SMS, text="a" * 200, user_id="+919876543210")

    assert asyncio.run(dispatcher.deliver(message)) is True
    assert [b[:5] for b in bodies] == ["(1/2)", "(2/2)", "(2/2)"]
    assert message.delivered_parts == 2


def test_sms_send_without_gateway_fails():
    adapter = SmsAdapter(gateway_url="", client=httpx.AsyncClient())
    with pytest.raises(ChannelDeliveryError):
        asyncio.run(adapter.send(reply(Platform.SMS)))


def test_sms_send_http_error_raises():
    client, _ = recording_client(status_code=502)
    adapter = SmsAdapter(gateway_url="https://sms.example.com/send", client=client)
    with pytest.raises(ChannelDeliveryError):
        asyncio.run(adapter.send(reply(Platform.SMS)))


# ── Web ────────────────────────────────────────────────────────────────────


def test_web_render():
    message = reply(Platform.WEB, BUTTONS[:1])
    message.intent = "greeting"
    assert render(message) == {
        "sessionId": "s1",
        "text": "hello",
        "escalated": False,
        "language": "en",
        "intent": "greeting",
        "buttons": [{"id": "health_question", "title": "Health Question"}],
    }
    message.durable = False
    assert render(message)["durable"] is False


def test_web_parse_and_outbox():
    adapter = WebAdapter()
    (message,) = adapter.parse({"userId": "u1", "text": "hi", "language": "hi-IN", "location": "Pune"})
    assert message.platform == Platform.WEB
    assert message.language == "hi"
    assert message.location == "Pune"

    asyncio.run(adapter.send(reply(Platform.WEB, user_id="u1")))
    assert [m["text"] for m in adapter.drain("u1")] == ["hello"]
    assert adapter.drain("u1") == []
