"""
Chat Transports

Transport implementations the lifecycle controller drives.
Supports Evolution API (production) and Stub (development).
"""

from wa_sessions.transports.base import EventSink, TransportFactory, TransportHandle

__all__ = [
    "EventSink",
    "TransportFactory",
    "TransportHandle",
]
