"""
Tenant session state.

A TenantSession is created and mutated only by the lifecycle controller.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import uuid4

if TYPE_CHECKING:
    from wa_sessions.transports.base import TransportHandle


class SessionState(str, Enum):
    """Connection state of a tenant session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_PAIRING = "awaiting_pairing"
    CONNECTED = "connected"
    LOGGED_OUT = "logged_out"

    def __str__(self) -> str:
        return self.value


LIVE_STATES = frozenset(
    {SessionState.CONNECTING, SessionState.AWAITING_PAIRING, SessionState.CONNECTED}
)


@dataclass(frozen=True)
class PairingPayload:
    """Raw pairing code as issued by the transport."""

    code: str
    issued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(eq=False)
class TenantSession:
    """
    One tenant's logical connection.

    Attributes:
        tenant_id: Externally supplied tenant key
        handle: Transport handle owned by this session
        state: Current SessionState
        identity: Account JID, set only while CONNECTED
        pairing_payload: Latest code, set only while AWAITING_PAIRING
        session_id: Distinguishes successive sessions of the same tenant
        reconnect_attempts: Consecutive reconnects since the last open
    """

    tenant_id: str
    handle: "TransportHandle | None"
    state: SessionState = SessionState.CONNECTING
    identity: str | None = None
    pairing_payload: PairingPayload | None = None
    session_id: str = field(default_factory=lambda: uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    reconnect_attempts: int = 0
    reconnect_timer: Any = field(default=None, repr=False)

    @property
    def is_live(self) -> bool:
        return self.handle is not None and self.state in LIVE_STATES

    @property
    def connected(self) -> bool:
        return self.state is SessionState.CONNECTED

    @property
    def connected_phone(self) -> str | None:
        """Identity reduced to its phone number ("5511...:12@s.whatsapp.net" -> "5511...")."""
        if not self.identity:
            return None
        return self.identity.split("@", 1)[0].split(":", 1)[0]
