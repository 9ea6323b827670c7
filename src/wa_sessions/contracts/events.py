"""
Transport Events

Events a transport handle emits toward the lifecycle controller.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class TransportEventType(str, Enum):
    """
    Event classes emitted by a transport handle.

    - PAIRING_CODE: a new pairing (QR) payload was issued
    - OPENED: the account is paired and the connection is open
    - CLOSED: the connection closed, transiently or by logout
    - MESSAGE: an inbound message arrived
    - CREDENTIALS: key material changed and should be persisted
    """

    PAIRING_CODE = "pairing_code"
    OPENED = "opened"
    CLOSED = "closed"
    MESSAGE = "message"
    CREDENTIALS = "credentials"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TransportEvent:
    """Base class; subclasses set event_type."""

    event_type = None  # type: TransportEventType | None


@dataclass(frozen=True)
class PairingCodeIssued(TransportEvent):
    code: str
    event_type = TransportEventType.PAIRING_CODE


@dataclass(frozen=True)
class SessionOpened(TransportEvent):
    identity: str
    event_type = TransportEventType.OPENED


@dataclass(frozen=True)
class SessionClosed(TransportEvent):
    reason: str
    is_explicit_logout: bool = False
    event_type = TransportEventType.CLOSED


@dataclass(frozen=True)
class CredentialsUpdated(TransportEvent):
    credentials: dict[str, Any]
    event_type = TransportEventType.CREDENTIALS


@dataclass(frozen=True)
class MessageReceived(TransportEvent):
    """
    Inbound message with its raw Baileys-shaped envelope.

    Envelope layout:
    {
        "key": {"id": "...", "remoteJid": "...", "fromMe": false, "participant": "..."},
        "message": {"conversation": "..."} | {"extendedTextMessage": {"text": "..."}},
        "pushName": "...",
        "messageTimestamp": 1704067200,
    }
    """

    envelope: dict[str, Any]
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_type = TransportEventType.MESSAGE

    @property
    def key(self) -> dict[str, Any]:
        return self.envelope.get("key") or {}

    @property
    def message_id(self) -> str | None:
        return self.key.get("id")

    @property
    def from_me(self) -> bool:
        return bool(self.key.get("fromMe"))
