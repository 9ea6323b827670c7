"""
Session Gateway Contracts

Session state and transport event definitions.
"""

from wa_sessions.contracts.events import (
    CredentialsUpdated,
    MessageReceived,
    PairingCodeIssued,
    SessionClosed,
    SessionOpened,
    TransportEvent,
    TransportEventType,
)
from wa_sessions.contracts.session import (
    LIVE_STATES,
    PairingPayload,
    SessionState,
    TenantSession,
)

__all__ = [
    "CredentialsUpdated",
    "MessageReceived",
    "PairingCodeIssued",
    "SessionClosed",
    "SessionOpened",
    "TransportEvent",
    "TransportEventType",
    "LIVE_STATES",
    "PairingPayload",
    "SessionState",
    "TenantSession",
]
