"""
Inbound Message Normalization

Converts raw Baileys-shaped envelopes into the W-API "webhookReceived"
payload delivered to the configured webhook.
"""

from datetime import datetime, timezone
from typing import Any

from wa_sessions.contracts.events import MessageReceived

ANONYMIZED_SUFFIX = "@lid"
GROUP_SUFFIX = "@g.us"

# Keys where the network places the phone-number form of an anonymized sender
PHONE_ALTERNATE_KEYS = ("senderPn", "participantPn", "remoteJidAlt", "participantAlt")

# Wrappers whose inner "message" holds the actual content
WRAPPER_KEYS = ("ephemeralMessage", "viewOnceMessage", "viewOnceMessageV2", "documentWithCaptionMessage")


def is_anonymized(jid: str | None) -> bool:
    return bool(jid) and jid.endswith(ANONYMIZED_SUFFIX)


def jid_to_user(jid: str) -> str:
    """ "5511999999999:12@s.whatsapp.net" -> "5511999999999" """
    return jid.split("@", 1)[0].split(":", 1)[0]


def extract_text(message: dict[str, Any] | None) -> str | None:
    """
    Text body of a message, or None when it carries no text.

    Looks at conversation and extendedTextMessage.text, unwrapping
    ephemeral/view-once containers.
    """
    if not message:
        return None

    for wrapper in WRAPPER_KEYS:
        inner = (message.get(wrapper) or {}).get("message")
        if inner:
            return extract_text(inner)

    text = message.get("conversation") or (message.get("extendedTextMessage") or {}).get("text")
    if not text or not str(text).strip():
        return None
    return str(text)


def resolve_sender(key: dict[str, Any]) -> str | None:
    """
    Sender phone for a message key.

    The primary address is the participant in groups and the chat JID
    otherwise. When it is an anonymized @lid address, a co-located
    phone-number identifier is preferred; the primary is the fallback.
    """
    remote_jid = key.get("remoteJid") or ""
    if remote_jid.endswith(GROUP_SUFFIX):
        primary = key.get("participant") or ""
    else:
        primary = remote_jid

    if primary and not is_anonymized(primary):
        return jid_to_user(primary)

    for alt_key in PHONE_ALTERNATE_KEYS:
        candidate = key.get(alt_key)
        if candidate and not is_anonymized(candidate):
            return jid_to_user(candidate)

    return jid_to_user(primary) if primary else None


def build_webhook_payload(
    tenant_id: str,
    event: MessageReceived,
    connected_phone: str | None = None,
) -> dict[str, Any] | None:
    """
    Build the webhookReceived payload for an inbound message.

    Returns:
        Payload dict, or None when the event must not be relayed
        (own message, no text, no sender)
    """
    if event.from_me:
        return None

    envelope = event.envelope
    text = extract_text(envelope.get("message"))
    if text is None:
        return None

    key = event.key
    sender_id = resolve_sender(key)
    if not sender_id:
        return None

    remote_jid = key.get("remoteJid") or ""
    is_group = remote_jid.endswith(GROUP_SUFFIX)
    moment = envelope.get("messageTimestamp")
    try:
        moment = int(moment) if moment is not None else int(event.received_at.timestamp())
    except (TypeError, ValueError):
        moment = int(datetime.now(timezone.utc).timestamp())

    return {
        "event": "webhookReceived",
        "instanceId": tenant_id,
        "connectedPhone": connected_phone,
        "messageId": key.get("id"),
        "fromMe": False,
        "isGroup": is_group,
        "moment": moment,
        "chat": {"id": jid_to_user(remote_jid) if is_group else sender_id},
        "sender": {
            "id": sender_id,
            "pushName": envelope.get("pushName"),
        },
        "msgContent": {"text": text},
    }
