"""
Pytest fixtures for gateway tests.
"""

import asyncio

import pytest

from wa_sessions.credentials import MemoryCredentialStore
from wa_sessions.lifecycle import SessionLifecycleController
from wa_sessions.registry import PairingCodeCache, SessionRegistry
from wa_sessions.transports.stub import StubTransportFactory


@pytest.fixture
def sample_tenant_id():
    """Sample tenant id."""
    return "shop-1"


@pytest.fixture
def sample_phone():
    """Sample phone number."""
    return "+55 (11) 88888-8888"


@pytest.fixture
def credential_store():
    """In-memory credential store."""
    return MemoryCredentialStore()


@pytest.fixture
def transport_factory():
    """Stub transport factory that keeps every handle it builds."""
    return StubTransportFactory()


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def pairing_cache():
    return PairingCodeCache()


@pytest.fixture
async def controller(registry, pairing_cache, credential_store, transport_factory):
    """Running lifecycle controller with a short reconnect delay."""
    controller = SessionLifecycleController(
        registry=registry,
        pairing_cache=pairing_cache,
        credential_store=credential_store,
        transport_factory=transport_factory,
        reconnect_delay=0.05,
        call_timeout=1.0,
    )
    await controller.start()
    yield controller
    await controller.shutdown()


@pytest.fixture
def eventually():
    """Poll an async-updated condition until it holds."""

    async def _eventually(predicate, timeout: float = 2.0, interval: float = 0.01):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met in time")
            await asyncio.sleep(interval)

    return _eventually
