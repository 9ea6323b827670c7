"""
Tests for the Evolution API transport.
"""

import json

import httpx
import pytest

from wa_sessions.contracts.events import (
    CredentialsUpdated,
    MessageReceived,
    PairingCodeIssued,
    SessionClosed,
    SessionOpened,
)
from wa_sessions.errors import TransportError
from wa_sessions.transports.evolution import (
    EvolutionApiClient,
    EvolutionTransportFactory,
    EvolutionTransportHandle,
)
from wa_sessions.transports.evolution.webhook import (
    extract_connection_state,
    extract_instance_name,
    extract_messages,
    extract_pairing_code,
    normalize_event_name,
    validate_api_key,
)

OWNER_JID = "5511999999999@s.whatsapp.net"


class FakeEvolution:
    """Minimal Evolution API server for httpx.MockTransport."""

    def __init__(self):
        self.instances = set()
        self.state = "connecting"
        self.code = "2@evo-code"
        self.missing = False
        self.unreachable = False
        self.malformed = False
        self.calls = []
        self.requests = []

    def __call__(self, request):
        method, path = request.method, request.url.path
        self.calls.append((method, path))
        self.requests.append(request)
        name = path.rsplit("/", 1)[-1]

        if self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)

        if path == "/instance/create":
            name = json.loads(request.content)["instanceName"]
            if name in self.instances:
                return httpx.Response(403, json={"status": 403, "response": {"message": "name in use"}})
            self.instances.add(name)
            return httpx.Response(201, json={
                "instance": {"instanceName": name, "status": "created"},
                "hash": {"apikey": f"tok-{name}"},
                "qrcode": {"code": self.code},
            })
        if path.startswith("/instance/delete/"):
            self.instances.discard(name)
            return httpx.Response(200, json={"status": "SUCCESS"})
        if path.startswith("/instance/connectionState/"):
            if self.malformed:
                return httpx.Response(200, json=[])
            if self.missing:
                return httpx.Response(404, json={"error": "instance not found"})
            return httpx.Response(200, json={"instance": {"instanceName": name, "state": self.state}})
        if path.startswith("/instance/connect/"):
            return httpx.Response(200, json={"code": self.code, "base64": "data:image/png;base64,AAA"})
        if path == "/instance/fetchInstances":
            name = request.url.params["instanceName"]
            return httpx.Response(200, json=[{"instance": {"instanceName": name, "owner": OWNER_JID}}])
        if path.startswith("/instance/logout/"):
            return httpx.Response(200, json={"status": "SUCCESS"})
        if path.startswith("/message/sendText/"):
            return httpx.Response(201, json={"key": {"id": "EVO123", "fromMe": True}, "status": "PENDING"})
        return httpx.Response(404, json={"error": "not found"})


@pytest.fixture
def server():
    return FakeEvolution()


@pytest.fixture
async def api(server):
    client = EvolutionApiClient(
        "http://evolution.test/",
        "global-key",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(server)),
    )
    yield client
    await client.close()


def make_handle(api, credentials=None):
    handle = EvolutionTransportHandle(
        api, "shop-1", "wapi-shop-1", credentials=credentials, poll_interval=0.01
    )
    events = []
    handle.subscribe(events.append)
    return handle, events


class TestEvolutionApiClient:
    """Tests for the REST client."""

    async def test_auth_header_and_body(self, api, server):
        """Test requests carry the global key."""
        await api.send_text("wapi-shop-1", "5511888888888", "oi")

        request = server.requests[0]
        assert str(request.url) == "http://evolution.test/message/sendText/wapi-shop-1"
        assert request.headers["apikey"] == "global-key"
        assert json.loads(request.content) == {"number": "5511888888888", "text": "oi"}

    async def test_connection_state(self, api, server):
        server.state = "OPEN"
        assert await api.connection_state("wapi-shop-1") == "open"

    async def test_fetch_owner_jid(self, api):
        assert await api.fetch_owner_jid("wapi-shop-1") == OWNER_JID

    async def test_client_error(self, api, server):
        """Test 4xx answers are non-retryable with the status as code."""
        server.missing = True

        with pytest.raises(TransportError) as exc_info:
            await api.connection_state("wapi-shop-1")

        assert exc_info.value.code == "404"
        assert exc_info.value.retryable is False

    async def test_network_error(self, api, server):
        server.unreachable = True

        with pytest.raises(TransportError) as exc_info:
            await api.connect_instance("wapi-shop-1")

        assert exc_info.value.code == "HTTP_ERROR"
        assert exc_info.value.retryable is True


class TestEvolutionTransportHandle:
    """Tests for the instance-backed handle."""

    async def test_provision_and_pair(self, api, server, eventually):
        """Test a new tenant gets an instance, a code, then opens."""
        handle, events = make_handle(api)

        await handle.start()

        assert events[0] == CredentialsUpdated(
            credentials={"instance_name": "wapi-shop-1", "instance_token": "tok-wapi-shop-1"}
        )
        assert events[1] == PairingCodeIssued(code="2@evo-code")

        server.state = "open"
        await eventually(lambda: any(isinstance(e, SessionOpened) for e in events))
        await handle.terminate()

        opened = [e for e in events if isinstance(e, SessionOpened)]
        assert opened == [SessionOpened(identity=OWNER_JID)]
        assert [e for e in events if isinstance(e, PairingCodeIssued)] == [PairingCodeIssued(code="2@evo-code")]
        assert events[-2].credentials["owner_jid"] == OWNER_JID

    async def test_name_in_use_is_recreated(self, api, server):
        """Test a leftover instance with the same name is replaced."""
        server.instances.add("wapi-shop-1")
        handle, events = make_handle(api)

        await handle.start()
        await handle.terminate()

        assert ("DELETE", "/instance/delete/wapi-shop-1") in server.calls
        assert isinstance(events[0], CredentialsUpdated)

    async def test_resume_without_provisioning(self, api, server, eventually):
        """Test stored credentials reuse the instance."""
        server.state = "open"
        handle, events = make_handle(api, {"instance_name": "wapi-shop-1", "owner_jid": OWNER_JID})

        await handle.start()
        await eventually(lambda: bool(events))
        await handle.terminate()

        assert ("POST", "/instance/create") not in server.calls
        assert events == [SessionOpened(identity=OWNER_JID)]

    async def test_open_then_close(self, api, server, eventually):
        """Test a drop after opening is a transient close."""
        server.state = "open"
        handle, events = make_handle(api, {"instance_name": "wapi-shop-1", "owner_jid": OWNER_JID})

        await handle.start()
        await eventually(lambda: bool(events))
        server.state = "close"
        await eventually(lambda: isinstance(events[-1], SessionClosed))
        await handle.terminate()

        assert events[-1] == SessionClosed(reason="connection_close", is_explicit_logout=False)

    async def test_missing_instance_is_logout(self, api, server, eventually):
        """Test a deleted instance means the pairing is gone."""
        server.missing = True
        handle, events = make_handle(api, {"instance_name": "wapi-shop-1"})

        await handle.start()
        await eventually(lambda: bool(events))

        assert events == [SessionClosed(reason="instance_not_found", is_explicit_logout=True)]
        assert handle.closed is True

    async def test_unreachable_is_transient(self, api, server, eventually):
        """Test repeated poll failures close without logging out."""
        server.unreachable = True
        handle, events = make_handle(api, {"instance_name": "wapi-shop-1"})

        await handle.start()
        await eventually(lambda: bool(events))

        assert events == [SessionClosed(reason="unreachable", is_explicit_logout=False)]

    async def test_unexpected_answer_is_transient(self, api, server, eventually):
        """Test a malformed state answer closes the handle instead of stalling it."""
        server.malformed = True
        handle, events = make_handle(api, {"instance_name": "wapi-shop-1"})

        await handle.start()
        await eventually(lambda: bool(events))

        assert events == [SessionClosed(reason="poll_error", is_explicit_logout=False)]
        assert handle.closed is True

    async def test_send_text(self, api):
        handle, _ = make_handle(api, {"instance_name": "wapi-shop-1"})
        assert await handle.send_text("5511888888888", "oi") == "EVO123"

    async def test_send_after_close(self, api):
        handle, _ = make_handle(api, {"instance_name": "wapi-shop-1"})
        await handle.terminate()

        with pytest.raises(TransportError):
            await handle.send_text("5511888888888", "oi")

    async def test_logout(self, api, server):
        """Test logout unpairs the instance and reports it."""
        handle, events = make_handle(api, {"instance_name": "wapi-shop-1"})

        await handle.logout()

        assert ("DELETE", "/instance/logout/wapi-shop-1") in server.calls
        assert events == [SessionClosed(reason="logged_out", is_explicit_logout=True)]


class TestEvolutionWebhookRouting:
    """Tests for webhook ingestion through the factory."""

    @pytest.fixture
    async def routed(self, api):
        factory = EvolutionTransportFactory(api, instance_prefix="wapi-", poll_interval=10)
        handle = await factory.create(None, "shop-1")
        events = []
        handle.subscribe(events.append)
        return factory, handle, events

    async def test_instance_name_from_prefix(self, routed):
        factory, handle, _ = routed
        assert handle.instance_name == "wapi-shop-1"
        assert factory.instance_name_for("shop-2") == "wapi-shop-2"

    async def test_message_upsert(self, routed):
        factory, _, events = routed
        payload = {
            "event": "MESSAGES_UPSERT",
            "instance": "wapi-shop-1",
            "data": {
                "key": {"id": "M1", "remoteJid": "5511888888888@s.whatsapp.net", "fromMe": False},
                "message": {"conversation": "Preciso de cimento"},
                "pushName": "Maria",
            },
        }

        assert await factory.route_webhook(payload) is True
        assert isinstance(events[0], MessageReceived)
        assert events[0].message_id == "M1"

    async def test_qrcode_and_connection(self, routed):
        factory, _, events = routed

        await factory.route_webhook({
            "event": "qrcode.updated",
            "instance": "wapi-shop-1",
            "data": {"qrcode": {"code": "2@hook-code"}},
        })
        await factory.route_webhook({
            "event": "connection.update",
            "instance": "wapi-shop-1",
            "sender": OWNER_JID,
            "data": {"state": "open"},
        })

        assert events[0] == PairingCodeIssued(code="2@hook-code")
        assert events[-1] == SessionOpened(identity=OWNER_JID)

    async def test_logout_event_closes_routing(self, routed):
        factory, handle, events = routed

        await factory.route_webhook({"event": "LOGOUT_INSTANCE", "instance": "wapi-shop-1"})

        assert events == [SessionClosed(reason="logged_out", is_explicit_logout=True)]
        assert await factory.route_webhook({"event": "messages.upsert", "instance": "wapi-shop-1"}) is False

    async def test_unknown_instance(self, routed):
        factory, _, _ = routed
        assert await factory.route_webhook({"event": "messages.upsert", "instance": "other"}) is False
        assert await factory.route_webhook({"event": "messages.upsert"}) is False


class TestEvolutionWebhookHelpers:
    """Tests for webhook payload helpers."""

    def test_normalize_event_name(self):
        assert normalize_event_name("MESSAGES_UPSERT") == "messages.upsert"
        assert normalize_event_name("connection.update") == "connection.update"
        assert normalize_event_name(None) == ""

    def test_extract_instance_name(self):
        assert extract_instance_name({"instance": "wapi-shop-1"}) == "wapi-shop-1"
        assert extract_instance_name({"instance": {"instanceName": "wapi-shop-1"}}) == "wapi-shop-1"
        assert extract_instance_name({}) is None

    def test_extract_messages_v1_list(self):
        payload = {"data": {"messages": [{"key": {"id": "A"}}, {"key": {"id": "B"}}]}}
        assert [m["key"]["id"] for m in extract_messages(payload)] == ["A", "B"]

    def test_extract_pairing_code_and_state(self):
        assert extract_pairing_code({"data": {"qrcode": {"code": "2@x"}}}) == "2@x"
        assert extract_connection_state({"data": {"state": "OPEN"}}) == "open"
        assert extract_connection_state({"data": {}}) is None

    def test_validate_api_key(self):
        """Test API key validation."""
        assert validate_api_key({"apikey": "test-key"}, "test-key") is True
        assert validate_api_key({"authorization": "Bearer test-key"}, "test-key") is True
        assert validate_api_key({"apikey": "wrong-key"}, "test-key") is False
