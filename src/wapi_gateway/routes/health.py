"""Health check."""

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request):
    """Health check endpoint with session counts per state."""
    controller = request.app.state.controller
    dispatcher = request.app.state.webhook_dispatcher
    return {
        "status": "healthy",
        "service": "wapi-gateway",
        "transport": request.app.state.settings.TRANSPORT,
        "sessions": controller.stats(),
        "webhook": {
            "enabled": dispatcher.enabled,
            "delivered": dispatcher.delivered,
            "failed": dispatcher.failed,
            "dropped": dispatcher.dropped,
        },
    }
