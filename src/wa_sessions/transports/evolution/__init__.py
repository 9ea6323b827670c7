"""Evolution API transport."""

from wa_sessions.transports.evolution.client import EvolutionApiClient
from wa_sessions.transports.evolution.handle import (
    EvolutionTransportFactory,
    EvolutionTransportHandle,
)

__all__ = [
    "EvolutionApiClient",
    "EvolutionTransportFactory",
    "EvolutionTransportHandle",
]
