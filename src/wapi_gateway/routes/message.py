"""Message routes (W-API /v1/message/*)."""

import logging
import time

from fastapi import APIRouter, Depends

from wa_sessions.errors import TransportError
from wa_sessions.lifecycle import SessionLifecycleController
from wapi_gateway.deps import get_controller, get_instance_id
from wapi_gateway.schemas import SendTextRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/message", tags=["message"])


@router.post("/send-text")
async def send_text(
    body: SendTextRequest,
    instance_id: str = Depends(get_instance_id),
    controller: SessionLifecycleController = Depends(get_controller),
):
    """
    Send a text message.

    400 missing phone/message, 404 unknown instance, 503 not connected,
    500 when the transport rejects the message.
    """
    try:
        message_id = await controller.send_text(instance_id, body.phone, body.message)
    except TransportError as e:
        raise TransportError(
            "Erro ao enviar mensagem",
            code=e.code,
            details={"instance_id": instance_id},
            retryable=e.retryable,
        ) from e

    logger.info(
        "Text message sent",
        extra={"tenant_id": instance_id, "message_id": message_id},
    )

    return {
        "instanceId": instance_id,
        "messageId": message_id,
        "insertedId": f"local-id-{int(time.time() * 1000)}",
        "error": False,
    }
