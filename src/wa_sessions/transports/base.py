"""
Transport Base

Abstract interface for chat transports.
Implementations: Stub (development), Evolution API (Baileys over REST).
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable

from wa_sessions.contracts.events import TransportEvent
from wa_sessions.credentials.base import Credentials

logger = logging.getLogger(__name__)

EventSink = Callable[[TransportEvent], None]


class TransportHandle(ABC):
    """
    One tenant's live connection to the chat network.

    A handle emits TransportEvents to a single subscriber and accepts the
    commands below. Handles never touch the registry or credential store;
    the lifecycle controller reacts to their events.
    """

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        self._sink: EventSink | None = None
        self._backlog: list[TransportEvent] = []
        self.closed = False

    def subscribe(self, sink: EventSink) -> None:
        """
        Route every event of this handle to sink.

        Events emitted before subscribing are replayed in order.
        """
        self._sink = sink
        backlog, self._backlog = self._backlog, []
        for event in backlog:
            sink(event)

    def emit(self, event: TransportEvent) -> None:
        """Hand an event to the subscriber (buffered until one exists)."""
        if self._sink is None:
            self._backlog.append(event)
            return
        self._sink(event)

    @abstractmethod
    async def start(self) -> None:
        """
        Begin connecting.

        Raises:
            TransportError: if the connection cannot be initiated
        """
        ...

    @abstractmethod
    async def send_text(self, phone: str, text: str) -> str:
        """
        Send a text message.

        Args:
            phone: Recipient phone number, digits only
            text: Message body

        Returns:
            Provider-assigned message id

        Raises:
            TransportError: if the message was not accepted
        """
        ...

    @abstractmethod
    async def logout(self) -> None:
        """
        Unpair the account at the network side.

        A successful logout emits SessionClosed(is_explicit_logout=True).
        """
        ...

    @abstractmethod
    async def terminate(self) -> None:
        """Drop the connection locally without unpairing. Must be idempotent."""
        ...


class TransportFactory(ABC):
    """Builds transport handles from persisted credentials."""

    @abstractmethod
    async def create(self, credentials: Credentials | None, tenant_id: str) -> TransportHandle:
        """
        Build a handle for a tenant.

        Args:
            credentials: Persisted bundle, or None for a never-paired tenant
            tenant_id: Tenant the handle belongs to

        Returns:
            An unstarted handle

        Raises:
            TransportError: if the handle cannot be built
        """
        ...

    async def close(self) -> None:
        """Release shared resources (HTTP clients etc)."""
        return None
