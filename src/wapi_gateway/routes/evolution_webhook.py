"""
Evolution API webhook ingestion.

Evolution posts instance events here (messages.upsert, qrcode.updated,
connection.update, logout.instance); they are routed to the live
transport handle of the instance.
"""

import json
import logging

from fastapi import APIRouter, HTTPException, Request

from wa_sessions.transports.evolution import EvolutionTransportFactory
from wa_sessions.transports.evolution.webhook import validate_api_key

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post("/webhook/evolution")
async def receive_evolution_webhook(request: Request):
    """Receive an Evolution API webhook. Always answers quickly."""
    factory = request.app.state.transport_factory
    if not isinstance(factory, EvolutionTransportFactory):
        return {"status": "ignored", "reason": "transport_disabled"}

    api_key = request.app.state.settings.EVOLUTION_API_KEY
    if api_key and not validate_api_key(dict(request.headers), api_key):
        logger.warning("Invalid Evolution API key")
        raise HTTPException(status_code=403, detail="Invalid API key")

    body = await request.body()
    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        logger.warning("Invalid JSON payload")
        raise HTTPException(status_code=400, detail="Invalid JSON")

    if not isinstance(payload, dict):
        return {"status": "ignored", "reason": "unexpected_payload"}

    if not await factory.route_webhook(payload):
        logger.debug(
            f"Evolution webhook not routed",
            extra={"event": payload.get("event"), "instance": payload.get("instance")},
        )
        return {"status": "ignored", "reason": "no_session"}

    return {"status": "ok"}
