"""
Evolution API Webhook Utilities

Helper functions for processing Evolution API webhooks.
"""

import logging
from typing import Any

logger = logging.getLogger(__name__)

MESSAGES_UPSERT = "messages.upsert"
QRCODE_UPDATED = "qrcode.updated"
CONNECTION_UPDATE = "connection.update"
LOGOUT_INSTANCE = "logout.instance"


def normalize_event_name(event: str | None) -> str:
    """Evolution sends both "MESSAGES_UPSERT" and "messages.upsert" forms."""
    return (event or "").strip().lower().replace("_", ".")


def extract_instance_name(payload: dict[str, Any]) -> str | None:
    """
    Extract instance name from webhook payload.

    This is used for handle resolution before full parsing.
    """
    instance = payload.get("instance")
    if isinstance(instance, dict):
        return instance.get("instanceName")
    return instance


def extract_messages(payload: dict[str, Any]) -> list[dict[str, Any]]:
    """
    Message envelopes of a messages.upsert webhook.

    Evolution v2 posts a single envelope as data; v1 posts {"messages": [...]}.
    """
    data = payload.get("data")
    if isinstance(data, list):
        return [item for item in data if isinstance(item, dict)]
    if not isinstance(data, dict):
        return []
    if isinstance(data.get("messages"), list):
        return [item for item in data["messages"] if isinstance(item, dict)]
    if data.get("key"):
        return [data]
    return []


def extract_pairing_code(payload: dict[str, Any]) -> str | None:
    """Raw pairing code of a qrcode.updated webhook."""
    data = payload.get("data") or {}
    qrcode = data.get("qrcode") or {}
    return qrcode.get("code") or data.get("code")


def extract_connection_state(payload: dict[str, Any]) -> str | None:
    """State ("open", "connecting", "close") of a connection.update webhook."""
    data = payload.get("data") or {}
    state = data.get("state") or data.get("connection")
    return str(state).lower() if state else None


def validate_api_key(request_headers: dict[str, str], expected_api_key: str) -> bool:
    """
    Validate API key from request headers.

    Evolution API can send API key in:
    - Header: "apikey"
    - Header: "Authorization: Bearer <key>"
    """
    apikey_header = request_headers.get("apikey") or request_headers.get("Apikey")
    if apikey_header == expected_api_key:
        return True

    auth_header = request_headers.get("authorization") or request_headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:]
        if token == expected_api_key:
            return True

    return False
