"""
Exception handlers for the gateway.

Every error answer has the W-API shape {"error": true, "message": ...}.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from wa_sessions.errors import GatewayError, PairingNotReadyError

logger = logging.getLogger(__name__)


async def gateway_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Translate GatewayError subclasses to their status code."""
    if not isinstance(exc, GatewayError):
        return await unhandled_exception_handler(request, exc)

    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"{request.method} {request.url.path} failed: {exc.message}",
        extra={"code": exc.code, "status_code": exc.status_code, "details": exc.details},
    )

    headers = None
    if isinstance(exc, PairingNotReadyError):
        headers = {"Retry-After": str(exc.details.get("retry_after", 3))}

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": True, "message": exc.message, "code": exc.code},
        headers=headers,
    )


async def request_validation_handler(request: Request, exc: Exception) -> JSONResponse:
    """Malformed bodies answer 400 like any other invalid input."""
    errors = exc.errors() if isinstance(exc, RequestValidationError) else str(exc)
    logger.warning(f"Invalid request on {request.url.path}: {errors}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": True, "message": "Requisição inválida", "code": "VALIDATION_ERROR"},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": True, "message": "Erro interno", "code": "INTERNAL_ERROR"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
