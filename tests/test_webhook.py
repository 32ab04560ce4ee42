"""
WhatsApp webhook tests.

The provider must always get a fast 200 unless the signature is wrong;
replies are produced in a background task and captured by FakeWhatsApp.
"""

import hashlib
import hmac
import json

import pytest

from app.config import settings
from app.dependencies import get_db_path
from app.main import app
from app.services.whatsapp import verify_signature


def text_payload(body: str, sender: str = "15551234567", message_id: str = "wamid.abc"):
    return {
        "object": "whatsapp_business_account",
        "entry": [{
            "id": "WABA_ID",
            "changes": [{
                "field": "messages",
                "value": {
                    "messaging_product": "whatsapp",
                    "contacts": [{"profile": {"name": "Ana"}, "wa_id": sender}],
                    "messages": [{
                        "from": sender,
                        "id": message_id,
                        "timestamp": "1707500000",
                        "type": "text",
                        "text": {"body": body},
                    }],
                },
            }],
        }],
    }


STATUS_PAYLOAD = {
    "object": "whatsapp_business_account",
    "entry": [{
        "changes": [{
            "value": {
                "statuses": [{
                    "id": "wamid.out1",
                    "status": "delivered",
                    "timestamp": "1707500001",
                    "recipient_id": "15551234567",
                }],
            },
        }],
    }],
}


class TestVerification:

    def test_challenge_echoed(self, client):
        response = client.get(
            "/whatsapp/webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "1158201444"},
        )
        assert response.status_code == 200
        assert response.text == "1158201444"

    def test_wrong_token_forbidden(self, client):
        response = client.get(
            "/whatsapp/webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "123"},
        )
        assert response.status_code == 403


class TestReceive:

    def test_text_message_acknowledged_and_answered(self, client, whatsapp, seeded):
        response = client.post("/whatsapp/webhook", json=text_payload("hi"))

        assert response.status_code == 200
        assert response.text == "EVENT_RECEIVED"
        assert len(whatsapp.sent) == 1
        to, body = whatsapp.sent[0]
        assert to == "15551234567"
        assert "1. Citrus" in body
        assert "2. Green" in body

    def test_malformed_json_acknowledged(self, client, whatsapp):
        response = client.post(
            "/whatsapp/webhook",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 200
        assert whatsapp.sent == []

    @pytest.mark.parametrize("payload", [{}, {"entry": []}, {"entry": [{"changes": [{}]}]}, [1, 2]])
    def test_unexpected_envelope_acknowledged(self, client, whatsapp, payload):
        response = client.post("/whatsapp/webhook", json=payload)
        assert response.status_code == 200
        assert whatsapp.sent == []

    @pytest.mark.parametrize("breakage", ["value_not_object", "null_text_body", "text_as_string", "contact_as_string"])
    def test_mistyped_message_fields_acknowledged(self, client, whatsapp, breakage):
        payload = text_payload("hi")
        change = payload["entry"][0]["changes"][0]
        if breakage == "value_not_object":
            change["value"] = "x"
        elif breakage == "null_text_body":
            change["value"]["messages"][0]["text"] = {"body": None}
        elif breakage == "text_as_string":
            change["value"]["messages"][0]["text"] = "hi"
        elif breakage == "contact_as_string":
            change["value"]["contacts"] = ["x"]

        response = client.post("/whatsapp/webhook", json=payload)
        assert response.status_code == 200
        assert response.text == "EVENT_RECEIVED"
        assert whatsapp.sent == []

    def test_out_of_range_timestamp_still_answered(self, client, whatsapp, seeded):
        payload = text_payload("hi")
        payload["entry"][0]["changes"][0]["value"]["messages"][0]["timestamp"] = "99999999999999999999"

        response = client.post("/whatsapp/webhook", json=payload)
        assert response.status_code == 200
        assert len(whatsapp.sent) == 1
        assert "1. Citrus" in whatsapp.sent[0][1]

    def test_status_update_acknowledged_without_reply(self, client, whatsapp):
        response = client.post("/whatsapp/webhook", json=STATUS_PAYLOAD)
        assert response.status_code == 200
        assert whatsapp.sent == []

    def test_duplicate_delivery_processed_once(self, client, whatsapp, seeded):
        payload = text_payload("menu", message_id="wamid.dup")
        assert client.post("/whatsapp/webhook", json=payload).status_code == 200
        assert client.post("/whatsapp/webhook", json=payload).status_code == 200
        assert len(whatsapp.sent) == 1

    def test_non_text_message_gets_notice(self, client, whatsapp):
        payload = text_payload("ignored")
        message = payload["entry"][0]["changes"][0]["value"]["messages"][0]
        message["type"] = "image"
        del message["text"]
        message["image"] = {"id": "MEDIA_ID", "mime_type": "image/jpeg"}

        assert client.post("/whatsapp/webhook", json=payload).status_code == 200
        assert whatsapp.sent == [("15551234567", "Sorry, I can only read text messages. Send *menu* to start.")]

    def test_unreachable_database_still_acknowledged(self, client, whatsapp, tmp_path):
        # A directory cannot be opened as a database file.
        app.dependency_overrides[get_db_path] = lambda: str(tmp_path)

        response = client.post("/whatsapp/webhook", json=text_payload("hi", message_id="wamid.nodb"))
        assert response.status_code == 200
        assert response.text == "EVENT_RECEIVED"
        assert whatsapp.sent == []

    def test_processing_error_still_acknowledged(self, client, whatsapp, monkeypatch):
        async def boom(self, sender, text, customer_name=None):
            raise RuntimeError("database went away")

        monkeypatch.setattr("app.services.bot.ChatBot.handle", boom)
        response = client.post("/whatsapp/webhook", json=text_payload("hi"))
        assert response.status_code == 200
        assert whatsapp.sent == []


class TestSignature:

    def sign(self, body: bytes, secret: str) -> str:
        return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()

    def test_verify_signature(self):
        body = b'{"object": "whatsapp_business_account"}'
        assert verify_signature(body, self.sign(body, "app-secret"), "app-secret")
        assert not verify_signature(body, self.sign(body, "other"), "app-secret")
        assert not verify_signature(body, "", "app-secret")

    def test_bad_signature_rejected_when_secret_set(self, client, whatsapp, monkeypatch):
        monkeypatch.setattr(settings, "WHATSAPP_APP_SECRET", "app-secret")
        body = json.dumps(text_payload("hi")).encode()

        response = client.post(
            "/whatsapp/webhook",
            content=body,
            headers={"Content-Type": "application/json", "X-Hub-Signature-256": "sha256=deadbeef"},
        )
        assert response.status_code == 401
        assert whatsapp.sent == []

    def test_good_signature_accepted(self, client, whatsapp, seeded, monkeypatch):
        monkeypatch.setattr(settings, "WHATSAPP_APP_SECRET", "app-secret")
        body = json.dumps(text_payload("hi")).encode()

        response = client.post(
            "/whatsapp/webhook",
            content=body,
            headers={"Content-Type": "application/json", "X-Hub-Signature-256": self.sign(body, "app-secret")},
        )
        assert response.status_code == 200
        assert len(whatsapp.sent) == 1
