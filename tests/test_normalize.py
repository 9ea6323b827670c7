"""
Tests for inbound message normalization.
"""

import pytest

from wa_sessions.contracts.events import MessageReceived
from wa_sessions.webhooks.normalize import build_webhook_payload, extract_text, resolve_sender


@pytest.fixture
def text_envelope():
    """Inbound text message from a direct chat."""
    return {
        "key": {
            "id": "3EB0C767D26A1D2E5F0A",
            "remoteJid": "5511888888888@s.whatsapp.net",
            "fromMe": False,
        },
        "message": {"conversation": "Preciso de cimento"},
        "pushName": "Maria",
        "messageTimestamp": 1704067200,
    }


class TestExtractText:
    """Tests for extract_text."""

    def test_conversation(self):
        assert extract_text({"conversation": "oi"}) == "oi"

    def test_extended_text(self):
        assert extract_text({"extendedTextMessage": {"text": "veja https://x.y"}}) == "veja https://x.y"

    def test_ephemeral_wrapper(self):
        """Test disappearing-message containers are unwrapped."""
        message = {"ephemeralMessage": {"message": {"extendedTextMessage": {"text": "some"}}}}
        assert extract_text(message) == "some"

    @pytest.mark.parametrize(
        "message",
        [None, {}, {"imageMessage": {"url": "..."}}, {"conversation": "   "}],
    )
    def test_no_text(self, message):
        assert extract_text(message) is None


class TestResolveSender:
    """Tests for sender normalization."""

    def test_direct_chat(self):
        assert resolve_sender({"remoteJid": "5511888888888@s.whatsapp.net"}) == "5511888888888"

    def test_device_suffix_stripped(self):
        assert resolve_sender({"remoteJid": "5511888888888:7@s.whatsapp.net"}) == "5511888888888"

    def test_group_uses_participant(self):
        key = {"remoteJid": "120363041234567890@g.us", "participant": "5511777777777@s.whatsapp.net"}
        assert resolve_sender(key) == "5511777777777"

    @pytest.mark.parametrize("alt_key", ["senderPn", "participantPn", "remoteJidAlt", "participantAlt"])
    def test_anonymized_prefers_phone(self, alt_key):
        """Test @lid senders resolve to a co-located phone identifier."""
        key = {"remoteJid": "84724567890123@lid", alt_key: "5511888888888@s.whatsapp.net"}
        assert resolve_sender(key) == "5511888888888"

    def test_anonymized_group_participant(self):
        key = {
            "remoteJid": "120363041234567890@g.us",
            "participant": "84724567890123@lid",
            "participantPn": "5511777777777@s.whatsapp.net",
        }
        assert resolve_sender(key) == "5511777777777"

    def test_anonymized_without_alternate(self):
        """Test the anonymized id is the fallback."""
        assert resolve_sender({"remoteJid": "84724567890123@lid"}) == "84724567890123"

    def test_no_address(self):
        assert resolve_sender({}) is None


class TestBuildWebhookPayload:
    """Tests for the webhookReceived payload."""

    def test_payload_shape(self, text_envelope):
        """Test the W-API field layout."""
        payload = build_webhook_payload(
            "shop-1", MessageReceived(envelope=text_envelope), connected_phone="5511999999999"
        )

        assert payload == {
            "event": "webhookReceived",
            "instanceId": "shop-1",
            "connectedPhone": "5511999999999",
            "messageId": "3EB0C767D26A1D2E5F0A",
            "fromMe": False,
            "isGroup": False,
            "moment": 1704067200,
            "chat": {"id": "5511888888888"},
            "sender": {"id": "5511888888888", "pushName": "Maria"},
            "msgContent": {"text": "Preciso de cimento"},
        }

    def test_group_message(self, text_envelope):
        text_envelope["key"]["remoteJid"] = "120363041234567890@g.us"
        text_envelope["key"]["participant"] = "5511777777777@s.whatsapp.net"

        payload = build_webhook_payload("shop-1", MessageReceived(envelope=text_envelope))

        assert payload["isGroup"] is True
        assert payload["chat"]["id"] == "120363041234567890"
        assert payload["sender"]["id"] == "5511777777777"

    def test_own_message_dropped(self, text_envelope):
        text_envelope["key"]["fromMe"] = True
        assert build_webhook_payload("shop-1", MessageReceived(envelope=text_envelope)) is None

    def test_non_text_dropped(self, text_envelope):
        text_envelope["message"] = {"stickerMessage": {}}
        assert build_webhook_payload("shop-1", MessageReceived(envelope=text_envelope)) is None

    def test_missing_timestamp_uses_receive_time(self, text_envelope):
        del text_envelope["messageTimestamp"]
        event = MessageReceived(envelope=text_envelope)

        payload = build_webhook_payload("shop-1", event)

        assert payload["moment"] == int(event.received_at.timestamp())
