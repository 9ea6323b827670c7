"""
Instance routes (W-API /v1/instance/*).

Every route takes the tenant from the instanceId query parameter.
"""

import logging

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from wa_sessions.errors import PairingNotReadyError
from wa_sessions.lifecycle import SessionLifecycleController
from wacore.settings import Settings
from wapi_gateway.deps import get_app_settings, get_controller, get_instance_id
from wapi_gateway.qr import render_qr_data_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/instance", tags=["instance"])


@router.get("/status-instance")
async def status_instance(
    instance_id: str = Depends(get_instance_id),
    controller: SessionLifecycleController = Depends(get_controller),
):
    """Connection status. Never opens a session."""
    return {
        "instanceId": instance_id,
        "connected": controller.is_connected(instance_id),
    }


@router.get("/qr-code")
async def qr_code(
    instance_id: str = Depends(get_instance_id),
    controller: SessionLifecycleController = Depends(get_controller),
    settings: Settings = Depends(get_app_settings),
):
    """
    Pairing QR for the instance.

    Opens the session on first use. Answers 404 with Retry-After until the
    transport issues a code.
    """
    status = await controller.pairing_status(instance_id)

    if status.connected:
        return {"error": False, "message": "Instância já conectada", "connected": True}

    if status.payload is None:
        raise PairingNotReadyError(
            "QR Code ainda não gerado. Aguarde...",
            details={"instance_id": instance_id, "retry_after": settings.PAIRING_RETRY_AFTER},
        )

    qrcode = await run_in_threadpool(render_qr_data_url, status.payload.code)
    return {"error": False, "instanceId": instance_id, "qrcode": qrcode}


@router.post("/reset")
async def reset_instance(
    instance_id: str = Depends(get_instance_id),
    controller: SessionLifecycleController = Depends(get_controller),
):
    """Hard reset: drop the connection and erase stored credentials."""
    await controller.reset(instance_id)
    return {"error": False, "instanceId": instance_id, "message": "Instância resetada"}


@router.post("/disconnect")
async def disconnect_instance(
    instance_id: str = Depends(get_instance_id),
    controller: SessionLifecycleController = Depends(get_controller),
):
    """Log out at the network, then clean up like reset."""
    await controller.logout(instance_id)
    return {"error": False, "instanceId": instance_id, "message": "Instância desconectada"}
