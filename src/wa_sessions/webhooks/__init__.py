"""Inbound message relay."""

from wa_sessions.webhooks.dispatcher import WebhookDispatcher
from wa_sessions.webhooks.normalize import build_webhook_payload, extract_text, resolve_sender

__all__ = [
    "WebhookDispatcher",
    "build_webhook_payload",
    "extract_text",
    "resolve_sender",
]
