"""
Evolution API Transport

Drives one Evolution instance per tenant. Connection state and pairing
codes are polled; inbound messages and state changes also arrive through
the Evolution webhook, routed here by EvolutionTransportFactory.
"""

import asyncio
import logging
from typing import Any

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
from wa_sessions.transports.evolution.client import EvolutionApiClient
from wa_sessions.transports.evolution.webhook import (
    CONNECTION_UPDATE,
    LOGOUT_INSTANCE,
    MESSAGES_UPSERT,
    QRCODE_UPDATED,
    extract_connection_state,
    extract_instance_name,
    extract_messages,
    extract_pairing_code,
    normalize_event_name,
)

logger = logging.getLogger(__name__)

# Status codes Evolution answers with when an instance name is taken
NAME_IN_USE_CODES = {"403", "409"}


class EvolutionTransportHandle(TransportHandle):
    """Transport handle backed by an Evolution API instance."""

    def __init__(
        self,
        api: EvolutionApiClient,
        tenant_id: str,
        instance_name: str,
        credentials: Credentials | None = None,
        poll_interval: float = 5.0,
        max_poll_failures: int = 3,
    ):
        super().__init__(tenant_id)
        self.api = api
        self.instance_name = instance_name
        self.credentials = dict(credentials or {})
        self.poll_interval = poll_interval
        self.max_poll_failures = max_poll_failures
        self._opened = False
        self._last_code: str | None = None
        self._poll_task: asyncio.Task | None = None

    async def start(self) -> None:
        if not self.credentials.get("instance_name"):
            await self._provision()
        self._poll_task = asyncio.create_task(self._poll_loop())

    async def _provision(self) -> None:
        """Create the Evolution instance, replacing a leftover one with the same name."""
        try:
            response = await self.api.create_instance(self.instance_name)
        except TransportError as e:
            if e.code not in NAME_IN_USE_CODES:
                raise
            logger.warning(
                f"Instance name in use, recreating",
                extra={"tenant_id": self.tenant_id, "instance": self.instance_name},
            )
            await self.api.delete_instance(self.instance_name)
            response = await self.api.create_instance(self.instance_name)

        token = response.get("hash")
        if isinstance(token, dict):
            token = token.get("apikey")

        self.credentials = {"instance_name": self.instance_name, "instance_token": token}
        self.emit(CredentialsUpdated(credentials=dict(self.credentials)))

        code = (response.get("qrcode") or {}).get("code")
        if code:
            self._issue_code(code)

    async def _poll_loop(self) -> None:
        failures = 0
        while not self.closed:
            try:
                state = await self.api.connection_state(self.instance_name)
                failures = 0
                await self._apply_state(state)
            except asyncio.CancelledError:
                raise
            except TransportError as e:
                if e.code == "404":
                    self._close("instance_not_found", is_explicit_logout=True)
                    return
                failures += 1
                logger.warning(
                    f"Evolution poll failed: {e}",
                    extra={"tenant_id": self.tenant_id, "failures": failures},
                )
                if failures >= self.max_poll_failures:
                    self._close("unreachable")
                    return
            except Exception:
                logger.exception(
                    "Evolution poll crashed, closing handle",
                    extra={"tenant_id": self.tenant_id, "instance": self.instance_name},
                )
                self._close("poll_error")
                return

            if self.closed:
                return
            await asyncio.sleep(self.poll_interval)

    async def _apply_state(self, state: str | None) -> None:
        if state == "open":
            if not self._opened:
                owner = await self.api.fetch_owner_jid(self.instance_name)
                self._open(owner)
            return

        if self._opened:
            self._close(f"connection_{state or 'close'}")
            return

        response = await self.api.connect_instance(self.instance_name)
        code = response.get("code")
        if code:
            self._issue_code(code)

    def _issue_code(self, code: str) -> None:
        if code == self._last_code or self._opened:
            return
        self._last_code = code
        self.emit(PairingCodeIssued(code=code))

    def _open(self, owner_jid: str | None) -> None:
        self._opened = True
        identity = owner_jid or f"{self.instance_name}@s.whatsapp.net"
        if owner_jid and self.credentials.get("owner_jid") != owner_jid:
            self.credentials["owner_jid"] = owner_jid
            self.emit(CredentialsUpdated(credentials=dict(self.credentials)))
        self.emit(SessionOpened(identity=identity))

    def _close(self, reason: str, is_explicit_logout: bool = False) -> None:
        if self.closed:
            return
        self.closed = True
        self.emit(SessionClosed(reason=reason, is_explicit_logout=is_explicit_logout))

    async def ingest(self, payload: dict[str, Any]) -> None:
        """Apply an Evolution webhook addressed to this instance."""
        if self.closed:
            return

        event = normalize_event_name(payload.get("event"))

        if event == MESSAGES_UPSERT:
            for envelope in extract_messages(payload):
                self.emit(MessageReceived(envelope=envelope))
        elif event == QRCODE_UPDATED:
            code = extract_pairing_code(payload)
            if code:
                self._issue_code(code)
        elif event == CONNECTION_UPDATE:
            state = extract_connection_state(payload)
            if state == "open" and not self._opened:
                self._open(payload.get("sender") or (payload.get("data") or {}).get("wuid"))
            elif state == "close" and self._opened:
                self._close("connection_close")
        elif event == LOGOUT_INSTANCE:
            self._close("logged_out", is_explicit_logout=True)
        else:
            logger.debug(f"Ignoring Evolution event {event}", extra={"tenant_id": self.tenant_id})

    async def send_text(self, phone: str, text: str) -> str:
        if self.closed:
            raise TransportError("Connection closed", code="CONNECTION_CLOSED", retryable=True)

        response = await self.api.send_text(self.instance_name, phone, text)
        message_id = (response.get("key") or {}).get("id") or response.get("id")
        if not message_id:
            raise TransportError(
                "Evolution API returned no message id",
                code="NO_MESSAGE_ID",
                details=response,
            )

        logger.info(
            f"Sent text message via Evolution API",
            extra={"tenant_id": self.tenant_id, "to": phone, "message_id": message_id},
        )
        return message_id

    async def logout(self) -> None:
        await self.api.logout_instance(self.instance_name)
        self._close("logged_out", is_explicit_logout=True)
        self._cancel_poll()

    async def terminate(self) -> None:
        self.closed = True
        self._cancel_poll()

    def _cancel_poll(self) -> None:
        task = self._poll_task
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()


class EvolutionTransportFactory(TransportFactory):
    """
    Builds Evolution handles and routes Evolution webhooks to them.

    Instance names are the tenant id with an optional prefix.
    """

    def __init__(
        self,
        api: EvolutionApiClient,
        instance_prefix: str = "",
        poll_interval: float = 5.0,
    ):
        self.api = api
        self.instance_prefix = instance_prefix
        self.poll_interval = poll_interval
        self._handles: dict[str, EvolutionTransportHandle] = {}

    def instance_name_for(self, tenant_id: str) -> str:
        return f"{self.instance_prefix}{tenant_id}"

    async def create(self, credentials: Credentials | None, tenant_id: str) -> EvolutionTransportHandle:
        instance_name = (credentials or {}).get("instance_name") or self.instance_name_for(tenant_id)
        handle = EvolutionTransportHandle(
            self.api,
            tenant_id,
            instance_name,
            credentials=credentials,
            poll_interval=self.poll_interval,
        )
        self._handles[instance_name] = handle
        return handle

    async def route_webhook(self, payload: dict[str, Any]) -> bool:
        """
        Deliver a webhook to the live handle of its instance.

        Returns:
            True if a live handle consumed it
        """
        instance_name = extract_instance_name(payload)
        if not instance_name:
            return False

        handle = self._handles.get(instance_name)
        if handle is None:
            return False
        if handle.closed:
            self._handles.pop(instance_name, None)
            return False

        await handle.ingest(payload)
        return True

    async def close(self) -> None:
        await self.api.close()
