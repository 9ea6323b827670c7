"""Stub transport for development."""

from wa_sessions.transports.stub.client import StubTransportFactory, StubTransportHandle

__all__ = ["StubTransportFactory", "StubTransportHandle"]
