"""
Session gateway errors.

Every failure the core reports to a caller is a GatewayError subclass
carrying the HTTP status the API layer answers with.
"""

from typing import Any


class GatewayError(Exception):
    """Base error for the session gateway."""

    status_code: int = 500
    default_code: str = "GATEWAY_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.retryable = retryable


class ValidationError(GatewayError):
    """Missing or invalid tenant id or message fields."""

    status_code = 400
    default_code = "VALIDATION_ERROR"


class NotConnectedError(GatewayError):
    """Operation needs a connected session for the tenant."""

    status_code = 503
    default_code = "NOT_CONNECTED"

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)


class UnknownTenantError(NotConnectedError):
    """No session exists for the tenant at all."""

    status_code = 404
    default_code = "UNKNOWN_INSTANCE"


class PairingNotReadyError(GatewayError):
    """No pairing code has been issued yet."""

    status_code = 404
    default_code = "QR_NOT_READY"

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)


class TransportError(GatewayError):
    """Transport factory or command failure."""

    status_code = 500
    default_code = "TRANSPORT_ERROR"


class CredentialStoreError(GatewayError):
    """Credential bundle could not be read, written or erased."""

    status_code = 500
    default_code = "CREDENTIAL_STORE_ERROR"


class WebhookDeliveryError(GatewayError):
    """Webhook endpoint rejected or never received a delivery. Never surfaced."""

    status_code = 502
    default_code = "WEBHOOK_DELIVERY_FAILED"
