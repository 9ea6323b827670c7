"""HTTP routes."""

from wapi_gateway.routes.evolution_webhook import router as evolution_webhook_router
from wapi_gateway.routes.health import router as health_router
from wapi_gateway.routes.instance import router as instance_router
from wapi_gateway.routes.message import router as message_router

__all__ = [
    "evolution_webhook_router",
    "health_router",
    "instance_router",
    "message_router",
]
