"""
Session Lifecycle Controller

Owns the per-tenant state machine:

    disconnected --ensure_session--> connecting
    connecting --pairing code--> awaiting_pairing
    connecting | awaiting_pairing --opened--> connected
    any live --closed (transient)--> disconnected --(delay)--> connecting
    any --closed (logout) | logout()--> logged_out   (credentials erased)
    any --reset()--> disconnected                     (credentials erased)

Transport events from every handle go through one queue and are applied
by one dispatch loop. Applying an event never awaits, so transitions
cannot interleave; the async sequences (open, reconnect, reset, logout)
are serialized per tenant with TenantLocks.
"""

import asyncio
import contextlib
import functools
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Coroutine

from wa_sessions.contracts.events import (
    CredentialsUpdated,
    MessageReceived,
    PairingCodeIssued,
    SessionClosed,
    SessionOpened,
    TransportEvent,
)
from wa_sessions.contracts.session import PairingPayload, SessionState, TenantSession
from wa_sessions.credentials.base import CredentialStore
from wa_sessions.errors import (
    CredentialStoreError,
    GatewayError,
    NotConnectedError,
    TransportError,
    UnknownTenantError,
)
from wa_sessions.registry import PairingCodeCache, SessionRegistry
from wa_sessions.transports.base import TransportFactory, TransportHandle
from wa_sessions.validation import normalize_phone, validate_tenant_id, validate_text
from wa_sessions.webhooks.dispatcher import WebhookDispatcher

logger = logging.getLogger(__name__)

PairingCallback = Callable[[str, str], None]


class TenantLocks:
    """One asyncio.Lock per tenant id, kept only while someone holds or awaits it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @contextlib.asynccontextmanager
    async def hold(self, tenant_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(tenant_id)
        if lock is None:
            lock = self._locks[tenant_id] = asyncio.Lock()
        self._users[tenant_id] = self._users.get(tenant_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._users.pop(tenant_id) - 1
            if remaining:
                self._users[tenant_id] = remaining
            else:
                del self._locks[tenant_id]


@dataclass(frozen=True)
class PairingStatus:
    """Answer to a pairing artifact request."""

    tenant_id: str
    connected: bool
    payload: PairingPayload | None = None


class SessionLifecycleController:
    """
    Creates, tracks, reconnects and tears down one session per tenant.

    The registry and pairing cache are injected; the controller is the only
    writer. Transport handles are reachable only through its operations.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        pairing_cache: PairingCodeCache,
        credential_store: CredentialStore,
        transport_factory: TransportFactory,
        webhook_dispatcher: WebhookDispatcher | None = None,
        reconnect_delay: float = 3.0,
        call_timeout: float = 10.0,
        on_pairing_code: PairingCallback | None = None,
    ):
        """
        Initialize controller.

        Args:
            registry: Session registry shared with readers
            pairing_cache: Pairing code cache shared with readers
            credential_store: Per-tenant credential persistence
            transport_factory: Builds transport handles
            webhook_dispatcher: Receives inbound messages (optional)
            reconnect_delay: Fixed delay before reconnecting after a transient close
            call_timeout: Upper bound for transport logout/terminate calls
            on_pairing_code: Called with (tenant_id, code) for every new code
        """
        self.registry = registry
        self.pairing_cache = pairing_cache
        self.credential_store = credential_store
        self.transport_factory = transport_factory
        self.webhook_dispatcher = webhook_dispatcher
        self.reconnect_delay = reconnect_delay
        self.call_timeout = call_timeout
        self.on_pairing_code = on_pairing_code

        self._locks = TenantLocks()
        self._events: asyncio.Queue[tuple[TenantSession, TransportEvent]] = asyncio.Queue()
        self._pending: dict[str, int] = {}
        self._drained: dict[str, asyncio.Event] = {}
        self._dispatch_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()

    # Process lifecycle

    async def start(self) -> None:
        """Start the event dispatch loop."""
        self._ensure_dispatching()

    async def restore_sessions(self) -> int:
        """
        Reopen every tenant with persisted credentials.

        Returns:
            Number of sessions opened
        """
        opened = 0
        for tenant_id in self.credential_store.list_tenants():
            try:
                await self.ensure_session(tenant_id)
                opened += 1
            except GatewayError as e:
                logger.error(
                    f"Failed to restore session: {e}",
                    extra={"tenant_id": tenant_id, "code": e.code},
                )
        logger.info(f"Restored {opened} sessions")
        return opened

    async def shutdown(self) -> None:
        """Terminate every handle, keeping credentials for the next start."""
        for session in self.registry.snapshot():
            self._cancel_reconnect(session)
            if session.handle is not None:
                await self._terminate_quietly(session.tenant_id, session.handle)

        for task in list(self._background):
            task.cancel()

        if self._dispatch_task is not None:
            self._dispatch_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._dispatch_task
            self._dispatch_task = None

    async def wait_idle(self, tenant_id: str | None = None) -> None:
        """Wait until queued transport events have been applied, for one tenant or for all."""
        await asyncio.sleep(0)
        if tenant_id is None:
            await self._events.join()
            return
        drained = self._drained.get(tenant_id)
        if drained is not None:
            await drained.wait()

    # Queries

    def get_session(self, tenant_id: str) -> TenantSession | None:
        return self.registry.get(validate_tenant_id(tenant_id))

    def is_connected(self, tenant_id: str) -> bool:
        session = self.get_session(tenant_id)
        return session is not None and session.connected

    def stats(self) -> dict[str, int]:
        counts = {state.value: 0 for state in SessionState}
        for session in self.registry.snapshot():
            counts[session.state.value] += 1
        return counts

    # Operations

    async def ensure_session(self, tenant_id: str) -> TenantSession:
        """
        Return the tenant's live session, opening one if needed.

        Raises:
            ValidationError: if the tenant id is invalid or reserved
            TransportError: if the transport could not be created or started
            CredentialStoreError: if stored credentials cannot be read
        """
        tenant_id = validate_tenant_id(tenant_id)
        self._ensure_dispatching()

        async with self._locks.hold(tenant_id):
            session = self.registry.get(tenant_id)
            if session is not None and session.is_live:
                return session
            return await self._open_session(tenant_id, previous=session)

    async def pairing_status(self, tenant_id: str) -> PairingStatus:
        """Ensure the session exists and report its pairing state."""
        session = await self.ensure_session(tenant_id)
        # Events emitted while starting are applied before answering
        try:
            await asyncio.wait_for(self.wait_idle(session.tenant_id), timeout=self.call_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Answering pairing status with events still queued",
                extra={"tenant_id": session.tenant_id},
            )
        if session.connected:
            return PairingStatus(tenant_id=session.tenant_id, connected=True)
        return PairingStatus(
            tenant_id=session.tenant_id,
            connected=False,
            payload=self.pairing_cache.get(session.tenant_id),
        )

    async def send_text(self, tenant_id: str, phone: str | None, text: str | None) -> str:
        """
        Send a text message through the tenant's connected session.

        Returns:
            Provider message id

        Raises:
            ValidationError: invalid tenant id, phone or empty text
            UnknownTenantError: no session for the tenant
            NotConnectedError: session exists but is not connected
            TransportError: the transport rejected the message
        """
        tenant_id = validate_tenant_id(tenant_id)
        phone = normalize_phone(phone)
        text = validate_text(text)

        session = self.registry.get(tenant_id)
        if session is None:
            raise UnknownTenantError("Instância não encontrada", details={"instance_id": tenant_id})

        handle = session.handle
        if not session.connected or handle is None:
            raise NotConnectedError(
                "Instância não conectada",
                details={"instance_id": tenant_id, "state": session.state.value},
            )

        try:
            message_id = await handle.send_text(phone, text)
        except TransportError as e:
            logger.error(f"Failed to send text message: {e}", extra={"tenant_id": tenant_id})
            raise
        except Exception as e:
            logger.exception("Transport raised while sending", extra={"tenant_id": tenant_id})
            raise TransportError(f"Send failed: {e}", code="SEND_FAILED") from e

        return message_id

    async def reset(self, tenant_id: str) -> bool:
        """
        Hard reset: terminate the transport, erase credentials, forget the tenant.

        Idempotent; unknown tenants succeed.

        Returns:
            True if a session existed
        """
        tenant_id = validate_tenant_id(tenant_id)

        async with self._locks.hold(tenant_id):
            session = self._detach(tenant_id, SessionState.DISCONNECTED)
            if session is not None and session.handle is not None:
                handle, session.handle = session.handle, None
                await self._terminate_quietly(tenant_id, handle)
            erased = self._erase_credentials(tenant_id)

        logger.info(
            "Session reset",
            extra={"tenant_id": tenant_id, "had_session": session is not None, "erased": erased},
        )
        return session is not None

    async def logout(self, tenant_id: str) -> bool:
        """
        Graceful logout: unpair at the transport, then clean up like reset.

        Local cleanup happens even if the transport logout fails.

        Returns:
            True if a session existed
        """
        tenant_id = validate_tenant_id(tenant_id)

        async with self._locks.hold(tenant_id):
            session = self._detach(tenant_id, SessionState.LOGGED_OUT)
            if session is not None and session.handle is not None:
                handle, session.handle = session.handle, None
                try:
                    await asyncio.wait_for(handle.logout(), timeout=self.call_timeout)
                except Exception as e:
                    logger.warning(
                        f"Transport logout failed, cleaning up locally: {e!r}",
                        extra={"tenant_id": tenant_id},
                    )
                await self._terminate_quietly(tenant_id, handle)
            erased = self._erase_credentials(tenant_id)

        logger.info(
            "Session logged out",
            extra={"tenant_id": tenant_id, "had_session": session is not None, "erased": erased},
        )
        return session is not None

    # Session opening

    async def _open_session(self, tenant_id: str, previous: TenantSession | None) -> TenantSession:
        """Build, register and start a new session. Caller holds the tenant lock."""
        credentials = self.credential_store.load(tenant_id)

        try:
            handle = await self.transport_factory.create(credentials, tenant_id)
        except TransportError:
            raise
        except Exception as e:
            raise TransportError(
                f"Transport factory failed: {e}",
                code="FACTORY_ERROR",
                retryable=True,
            ) from e

        session = TenantSession(tenant_id=tenant_id, handle=handle)
        if previous is not None:
            session.reconnect_attempts = previous.reconnect_attempts

        # Registered before start so events emitted while starting are applied
        self.registry.put(tenant_id, session)
        self.pairing_cache.clear(tenant_id)
        handle.subscribe(functools.partial(self._enqueue, session))

        try:
            await handle.start()
        except Exception as e:
            self.registry.remove_if(tenant_id, session)
            if previous is not None:
                self.registry.put(tenant_id, previous)
            session.handle = None
            session.state = SessionState.DISCONNECTED
            await self._terminate_quietly(tenant_id, handle)
            if isinstance(e, TransportError):
                raise
            raise TransportError(
                f"Transport failed to start: {e}",
                code="START_FAILED",
                retryable=True,
            ) from e

        if previous is not None:
            self._cancel_reconnect(previous)

        logger.info(
            "Session connecting",
            extra={
                "tenant_id": tenant_id,
                "session_id": session.session_id,
                "has_credentials": credentials is not None,
            },
        )
        return session

    # Transport events

    def _ensure_dispatching(self) -> None:
        if self._dispatch_task is None or self._dispatch_task.done():
            self._dispatch_task = asyncio.create_task(
                self._dispatch_loop(), name="session-event-dispatch"
            )

    def _enqueue(self, session: TenantSession, event: TransportEvent) -> None:
        tenant_id = session.tenant_id
        self._pending[tenant_id] = self._pending.get(tenant_id, 0) + 1
        if tenant_id not in self._drained:
            self._drained[tenant_id] = asyncio.Event()
        self._events.put_nowait((session, event))

    def _applied(self, tenant_id: str) -> None:
        remaining = self._pending.pop(tenant_id) - 1
        if remaining:
            self._pending[tenant_id] = remaining
        else:
            self._drained.pop(tenant_id).set()

    async def _dispatch_loop(self) -> None:
        while True:
            session, event = await self._events.get()
            try:
                self._apply(session, event)
            except Exception:
                logger.exception(
                    "Failed to apply transport event",
                    extra={"tenant_id": session.tenant_id, "event_type": str(event.event_type)},
                )
            finally:
                self._applied(session.tenant_id)
                self._events.task_done()

    def _apply(self, session: TenantSession, event: TransportEvent) -> None:
        if self.registry.get(session.tenant_id) is not session or session.handle is None:
            logger.debug(
                "Ignoring event from superseded session",
                extra={
                    "tenant_id": session.tenant_id,
                    "session_id": session.session_id,
                    "event_type": str(event.event_type),
                },
            )
            return

        if isinstance(event, PairingCodeIssued):
            self._on_pairing_code(session, event)
        elif isinstance(event, SessionOpened):
            self._on_opened(session, event)
        elif isinstance(event, SessionClosed):
            self._on_closed(session, event)
        elif isinstance(event, CredentialsUpdated):
            self._on_credentials(session, event)
        elif isinstance(event, MessageReceived):
            self._on_message(session, event)
        else:
            logger.warning(f"Unknown transport event {event!r}", extra={"tenant_id": session.tenant_id})

    def _on_pairing_code(self, session: TenantSession, event: PairingCodeIssued) -> None:
        if session.state not in (SessionState.CONNECTING, SessionState.AWAITING_PAIRING):
            logger.warning(
                "Pairing code received while not pairing",
                extra={"tenant_id": session.tenant_id, "state": session.state.value},
            )
            return

        payload = PairingPayload(code=event.code)
        session.identity = None
        session.pairing_payload = payload
        session.state = SessionState.AWAITING_PAIRING
        self.pairing_cache.set(session.tenant_id, payload)

        logger.info("New pairing code issued", extra={"tenant_id": session.tenant_id})

        if self.on_pairing_code is not None:
            try:
                self.on_pairing_code(session.tenant_id, event.code)
            except Exception:
                logger.exception("Pairing code callback failed", extra={"tenant_id": session.tenant_id})

    def _on_opened(self, session: TenantSession, event: SessionOpened) -> None:
        self.pairing_cache.clear(session.tenant_id)
        session.pairing_payload = None
        session.identity = event.identity
        session.state = SessionState.CONNECTED
        session.reconnect_attempts = 0

        logger.info(
            "Session connected",
            extra={"tenant_id": session.tenant_id, "identity": event.identity},
        )

    def _on_closed(self, session: TenantSession, event: SessionClosed) -> None:
        tenant_id = session.tenant_id
        handle, session.handle = session.handle, None

        if event.is_explicit_logout:
            self._detach(tenant_id, SessionState.LOGGED_OUT)
            self._erase_credentials(tenant_id)
            self._spawn(self._terminate_quietly(tenant_id, handle))
            logger.info("Session logged out by transport", extra={"tenant_id": tenant_id, "reason": event.reason})
            return

        self.pairing_cache.clear(tenant_id)
        session.pairing_payload = None
        session.identity = None
        session.state = SessionState.DISCONNECTED
        session.reconnect_attempts += 1
        self._spawn(self._terminate_quietly(tenant_id, handle))
        self._schedule_reconnect(session)

        logger.warning(
            "Connection closed, reconnecting",
            extra={
                "tenant_id": tenant_id,
                "reason": event.reason,
                "attempt": session.reconnect_attempts,
                "delay": self.reconnect_delay,
            },
        )

    def _on_credentials(self, session: TenantSession, event: CredentialsUpdated) -> None:
        try:
            self.credential_store.save(session.tenant_id, event.credentials)
        except CredentialStoreError as e:
            logger.error(f"Failed to persist credentials: {e}", extra={"tenant_id": session.tenant_id})

    def _on_message(self, session: TenantSession, event: MessageReceived) -> None:
        if self.webhook_dispatcher is None:
            return
        try:
            self.webhook_dispatcher.dispatch(session.tenant_id, event, session.connected_phone)
        except Exception:
            logger.exception("Webhook dispatch failed", extra={"tenant_id": session.tenant_id})

    # Reconnect

    def _schedule_reconnect(self, session: TenantSession) -> None:
        self._cancel_reconnect(session)
        loop = asyncio.get_running_loop()
        session.reconnect_timer = loop.call_later(self.reconnect_delay, self._fire_reconnect, session)

    def _fire_reconnect(self, session: TenantSession) -> None:
        session.reconnect_timer = None
        self._spawn(self._reconnect(session))

    async def _reconnect(self, session: TenantSession) -> None:
        tenant_id = session.tenant_id
        async with self._locks.hold(tenant_id):
            if self.registry.get(tenant_id) is not session or session.state is not SessionState.DISCONNECTED:
                logger.debug("Reconnect superseded", extra={"tenant_id": tenant_id})
                return

            logger.info(
                "Reconnecting",
                extra={"tenant_id": tenant_id, "attempt": session.reconnect_attempts},
            )
            try:
                await self._open_session(tenant_id, previous=session)
            except GatewayError as e:
                logger.error(f"Reconnect failed: {e}", extra={"tenant_id": tenant_id, "code": e.code})
                if self.registry.get(tenant_id) is session:
                    session.reconnect_attempts += 1
                    self._schedule_reconnect(session)

    @staticmethod
    def _cancel_reconnect(session: TenantSession) -> None:
        if session.reconnect_timer is not None:
            session.reconnect_timer.cancel()
            session.reconnect_timer = None

    # Cleanup helpers

    def _detach(self, tenant_id: str, final_state: SessionState) -> TenantSession | None:
        """Forget the tenant's session and pairing code."""
        session = self.registry.remove(tenant_id)
        self.pairing_cache.clear(tenant_id)
        if session is not None:
            self._cancel_reconnect(session)
            session.state = final_state
            session.identity = None
            session.pairing_payload = None
        return session

    def _erase_credentials(self, tenant_id: str) -> bool:
        try:
            return self.credential_store.erase(tenant_id)
        except CredentialStoreError as e:
            logger.error(f"Failed to erase credentials: {e}", extra={"tenant_id": tenant_id})
            return False

    async def _terminate_quietly(self, tenant_id: str, handle: TransportHandle | None) -> None:
        if handle is None:
            return
        try:
            await asyncio.wait_for(handle.terminate(), timeout=self.call_timeout)
        except Exception as e:
            logger.warning(f"Transport terminate failed: {e!r}", extra={"tenant_id": tenant_id})

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
