"""
Tests for the stub transport and the handle event plumbing.
"""

import pytest

from wa_sessions.contracts.events import (
    CredentialsUpdated,
    MessageReceived,
    PairingCodeIssued,
    SessionClosed,
    SessionOpened,
)
from wa_sessions.errors import TransportError
from wa_sessions.transports.stub import StubTransportFactory, StubTransportHandle


class TestEventSubscription:
    """Tests for TransportHandle.subscribe/emit."""

    def test_backlog_replayed_in_order(self):
        """Test events emitted before subscribing are not lost."""
        handle = StubTransportHandle("shop-1")
        handle.simulate_pairing_code("2@first")
        handle.simulate_close()

        events = []
        handle.subscribe(events.append)
        handle.simulate_pairing_code("2@second")

        assert events == [
            PairingCodeIssued(code="2@first"),
            SessionClosed(reason="connection_lost"),
            PairingCodeIssued(code="2@second"),
        ]


class TestStubTransportHandle:
    """Tests for StubTransportHandle."""

    @pytest.fixture
    def events(self):
        return []

    async def test_start_new_tenant(self, events):
        """Test a fresh handle generates credentials, then a code."""
        handle = StubTransportHandle("shop-1")
        handle.subscribe(events.append)

        await handle.start()

        assert isinstance(events[0], CredentialsUpdated)
        assert isinstance(events[1], PairingCodeIssued)
        assert events[1].code.startswith("2@")

    async def test_start_paired(self, events):
        handle = StubTransportHandle("shop-1", credentials={"me": "5511999999999:3@s.whatsapp.net"})
        handle.subscribe(events.append)

        await handle.start()

        assert events == [SessionOpened(identity="5511999999999:3@s.whatsapp.net")]

    async def test_auto_connect(self, events, eventually):
        handle = StubTransportHandle("shop-1", auto_connect_after=0.01)
        handle.subscribe(events.append)

        await handle.start()
        await eventually(lambda: isinstance(events[-1], SessionOpened))
        await handle.terminate()

    async def test_inbound_anonymized_sender(self, events):
        handle = StubTransportHandle("shop-1")
        handle.subscribe(events.append)

        event = handle.simulate_inbound("5511888888888", "oi", lid="84724567890123")

        assert isinstance(event, MessageReceived)
        assert event.key["remoteJid"] == "84724567890123@lid"
        assert event.key["senderPn"] == "5511888888888@s.whatsapp.net"

    async def test_send_after_terminate(self):
        handle = StubTransportHandle("shop-1")
        await handle.terminate()
        await handle.terminate()

        assert handle.terminate_calls == 2
        with pytest.raises(TransportError):
            await handle.send_text("5511888888888", "oi")


class TestStubTransportFactory:
    async def test_keeps_handles(self):
        factory = StubTransportFactory()

        first = await factory.create(None, "shop-1")
        second = await factory.create({"me": "x"}, "shop-1")

        assert factory.handles["shop-1"] == [first, second]
        assert factory.latest("shop-1") is second
        assert factory.latest("shop-2") is None
        assert second.credentials == {"me": "x"}

    async def test_fail_create(self):
        with pytest.raises(TransportError):
            await StubTransportFactory(fail_create=True).create(None, "shop-1")
