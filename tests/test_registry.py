"""
Tests for the session registry and pairing code cache.
"""

from wa_sessions.contracts import PairingPayload, SessionState, TenantSession
from wa_sessions.registry import PairingCodeCache, SessionRegistry


def make_session(tenant_id="shop-1"):
    return TenantSession(tenant_id=tenant_id, handle=None)


class TestSessionRegistry:
    """Tests for SessionRegistry."""

    def test_put_get_remove(self):
        """Test point operations."""
        registry = SessionRegistry()
        session = make_session()

        registry.put("shop-1", session)
        assert registry.get("shop-1") is session
        assert "shop-1" in registry
        assert len(registry) == 1

        assert registry.remove("shop-1") is session
        assert registry.get("shop-1") is None
        assert registry.remove("shop-1") is None

    def test_remove_if_only_removes_same_session(self):
        """Test remove_if leaves a newer session alone."""
        registry = SessionRegistry()
        old, new = make_session(), make_session()
        registry.put("shop-1", new)

        assert registry.remove_if("shop-1", old) is False
        assert registry.get("shop-1") is new
        assert registry.remove_if("shop-1", new) is True
        assert "shop-1" not in registry

    def test_snapshot_is_a_copy(self):
        """Test snapshot does not follow later changes."""
        registry = SessionRegistry()
        registry.put("shop-1", make_session("shop-1"))
        registry.put("shop-2", make_session("shop-2"))

        snapshot = registry.snapshot()
        registry.remove("shop-1")

        assert {s.tenant_id for s in snapshot} == {"shop-1", "shop-2"}
        assert len(registry) == 1

    def test_tenants_are_isolated(self):
        """Test operations on one tenant never touch another."""
        registry = SessionRegistry()
        registry.put("shop-1", make_session("shop-1"))
        registry.put("shop-2", make_session("shop-2"))

        registry.remove("shop-1")

        assert registry.get("shop-2").tenant_id == "shop-2"


class TestPairingCodeCache:
    """Tests for PairingCodeCache."""

    def test_set_get_clear(self):
        """Test point operations."""
        cache = PairingCodeCache()
        payload = PairingPayload(code="2@abc")

        assert cache.get("shop-1") is None
        cache.set("shop-1", payload)
        assert cache.get("shop-1") is payload
        assert "shop-1" in cache

        cache.clear("shop-1")
        assert cache.get("shop-1") is None
        cache.clear("shop-1")


class TestTenantSession:
    """Tests for TenantSession helpers."""

    def test_connected_phone(self):
        """Test identity reduced to a phone number."""
        session = make_session()
        session.identity = "5511999999999:12@s.whatsapp.net"
        assert session.connected_phone == "5511999999999"

    def test_not_live_without_handle(self):
        """Test a session without a handle is never live."""
        session = make_session()
        assert session.state is SessionState.CONNECTING
        assert session.is_live is False
