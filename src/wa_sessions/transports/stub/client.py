"""
Stub Transport

Development transport that pairs, sends and receives without a network.
Useful for local development and testing.
"""

import asyncio
import logging
import secrets
import time
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from wa_sessions.contracts.events import (
    CredentialsUpdated,
    MessageReceived,
    PairingCodeIssued,
    SessionClosed,
    SessionOpened,
)
from wa_sessions.credentials.base import Credentials
from wa_sessions.errors import TransportError
from wa_sessions.transports.base import TransportFactory, TransportHandle

logger = logging.getLogger(__name__)

STUB_ACCOUNT_PHONE = "5511999999999"


class StubTransportHandle(TransportHandle):
    """
    Stub handle for development and testing.

    - Issues a fake pairing code on start unless credentials are already paired
    - Optionally pairs itself after a delay
    - Logs and records all outbound messages
    - Exposes simulate_* hooks to drive lifecycle events
    """

    def __init__(
        self,
        tenant_id: str,
        credentials: Credentials | None = None,
        auto_connect_after: float | None = None,
        fail_sends: bool = False,
        fail_logout: bool = False,
        fail_terminate: bool = False,
    ):
        super().__init__(tenant_id)
        self.credentials = dict(credentials or {})
        self.auto_connect_after = auto_connect_after
        self.fail_sends = fail_sends
        self.fail_logout = fail_logout
        self.fail_terminate = fail_terminate
        self.sent_messages: list[dict[str, Any]] = []
        self.started = False
        self.logout_calls = 0
        self.terminate_calls = 0
        self._auto_connect_task: asyncio.Task | None = None

    async def start(self) -> None:
        self.started = True

        if self.credentials.get("me"):
            logger.info(f"[STUB] Resuming paired session", extra={"tenant_id": self.tenant_id})
            self.emit(SessionOpened(identity=self.credentials["me"]))
            return

        if not self.credentials:
            self.credentials = {
                "registration_id": secrets.randbelow(16380) + 1,
                "noise_key": secrets.token_hex(32),
                "adv_secret_key": secrets.token_hex(32),
            }
            self.emit(CredentialsUpdated(credentials=dict(self.credentials)))

        self.simulate_pairing_code()

        if self.auto_connect_after is not None:
            self._auto_connect_task = asyncio.create_task(self._auto_connect())

    async def _auto_connect(self) -> None:
        await asyncio.sleep(self.auto_connect_after or 0)
        if not self.closed:
            self.simulate_open()

    async def send_text(self, phone: str, text: str) -> str:
        if self.closed:
            raise TransportError("Connection closed", code="CONNECTION_CLOSED", retryable=True)

        message_id = f"stub_msg_{uuid4().hex[:16]}"
        self.sent_messages.append({
            "to": f"{phone}@s.whatsapp.net",
            "text": text,
            "message_id": message_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

        logger.info(
            f"[STUB] Sending text message",
            extra={
                "tenant_id": self.tenant_id,
                "to": phone,
                "text": text[:100] + "..." if len(text) > 100 else text,
                "message_id": message_id,
            },
        )

        if self.fail_sends:
            raise TransportError("Simulated failure for testing", code="STUB_SIMULATED_FAILURE")

        return message_id

    async def logout(self) -> None:
        self.logout_calls += 1
        if self.fail_logout:
            raise TransportError("Simulated logout failure", code="STUB_SIMULATED_FAILURE")
        logger.info(f"[STUB] Logging out", extra={"tenant_id": self.tenant_id})
        self.simulate_close("logged_out", is_explicit_logout=True)
        self._stop()

    async def terminate(self) -> None:
        self.terminate_calls += 1
        self._stop()
        if self.fail_terminate:
            raise TransportError("Simulated terminate failure", code="STUB_SIMULATED_FAILURE")

    def _stop(self) -> None:
        self.closed = True
        if self._auto_connect_task and not self._auto_connect_task.done():
            self._auto_connect_task.cancel()

    # Simulation hooks

    def simulate_pairing_code(self, code: str | None = None) -> str:
        """Issue a pairing code shaped like the real ones."""
        code = code or ",".join([
            f"2@{secrets.token_urlsafe(48)}",
            secrets.token_urlsafe(32),
            secrets.token_urlsafe(32),
            secrets.token_urlsafe(16),
        ])
        self.emit(PairingCodeIssued(code=code))
        return code

    def simulate_open(self, phone: str = STUB_ACCOUNT_PHONE) -> str:
        """Complete pairing as the given account."""
        identity = f"{phone}:{secrets.randbelow(90) + 10}@s.whatsapp.net"
        self.credentials["me"] = identity
        self.emit(CredentialsUpdated(credentials=dict(self.credentials)))
        self.emit(SessionOpened(identity=identity))
        return identity

    def simulate_close(self, reason: str = "connection_lost", is_explicit_logout: bool = False) -> None:
        """Drop the connection as the network would."""
        self.emit(SessionClosed(reason=reason, is_explicit_logout=is_explicit_logout))

    def simulate_inbound(
        self,
        from_phone: str,
        text: str | None,
        push_name: str | None = None,
        lid: str | None = None,
        extended: bool = False,
        from_me: bool = False,
    ) -> MessageReceived:
        """
        Deliver an inbound message.

        With lid set, the sender arrives as an anonymized @lid address and the
        phone number only as senderPn.
        """
        key: dict[str, Any] = {
            "id": f"stub_in_{uuid4().hex[:16].upper()}",
            "fromMe": from_me,
        }
        if lid:
            key["remoteJid"] = f"{lid}@lid"
            key["senderPn"] = f"{from_phone}@s.whatsapp.net"
        else:
            key["remoteJid"] = f"{from_phone}@s.whatsapp.net"

        message: dict[str, Any] = {}
        if text is not None:
            message = {"extendedTextMessage": {"text": text}} if extended else {"conversation": text}

        event = MessageReceived(envelope={
            "key": key,
            "message": message,
            "pushName": push_name,
            "messageTimestamp": int(time.time()),
        })
        self.emit(event)
        return event


class StubTransportFactory(TransportFactory):
    """Builds stub handles and keeps them for inspection."""

    def __init__(
        self,
        auto_connect_after: float | None = None,
        fail_create: bool = False,
        create_delay: float = 0.0,
    ):
        self.auto_connect_after = auto_connect_after
        self.fail_create = fail_create
        self.create_delay = create_delay
        self.handles: dict[str, list[StubTransportHandle]] = {}

    async def create(self, credentials: Credentials | None, tenant_id: str) -> StubTransportHandle:
        if self.create_delay:
            await asyncio.sleep(self.create_delay)
        if self.fail_create:
            raise TransportError("Simulated factory failure", code="STUB_SIMULATED_FAILURE")

        handle = StubTransportHandle(
            tenant_id,
            credentials=credentials,
            auto_connect_after=self.auto_connect_after,
        )
        self.handles.setdefault(tenant_id, []).append(handle)
        return handle

    def latest(self, tenant_id: str) -> StubTransportHandle | None:
        handles = self.handles.get(tenant_id)
        return handles[-1] if handles else None
