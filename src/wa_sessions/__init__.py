"""
Multi-tenant chat session core.

Keeps one logical chat-network session per tenant: opening, pairing,
reconnecting, resetting and logging out, plus inbound message relay.
"""

from wa_sessions.contracts import PairingPayload, SessionState, TenantSession
from wa_sessions.errors import (
    CredentialStoreError,
    GatewayError,
    NotConnectedError,
    PairingNotReadyError,
    TransportError,
    UnknownTenantError,
    ValidationError,
    WebhookDeliveryError,
)
from wa_sessions.lifecycle import PairingStatus, SessionLifecycleController, TenantLocks
from wa_sessions.registry import PairingCodeCache, SessionRegistry

__all__ = [
    "CredentialStoreError",
    "GatewayError",
    "NotConnectedError",
    "PairingCodeCache",
    "PairingNotReadyError",
    "PairingPayload",
    "PairingStatus",
    "SessionLifecycleController",
    "SessionRegistry",
    "SessionState",
    "TenantLocks",
    "TenantSession",
    "TransportError",
    "UnknownTenantError",
    "ValidationError",
    "WebhookDeliveryError",
]
