"""
Input validation for tenant ids and outbound messages.

Tenant ids double as credential namespace keys (a directory name for the
file backend), so they are restricted to a filesystem-safe alphabet and
checked against names the operating system reserves.
"""

import re

from wa_sessions.errors import ValidationError

TENANT_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,63}$")

# Windows device names are reserved with or without an extension
RESERVED_TENANT_IDS = frozenset(
    {"con", "prn", "aux", "nul"}
    | {f"com{i}" for i in range(1, 10)}
    | {f"lpt{i}" for i in range(1, 10)}
)


def validate_tenant_id(tenant_id: str | None) -> str:
    """
    Validate a tenant id and return it stripped.

    Raises:
        ValidationError: if the id is missing, malformed or reserved
    """
    if tenant_id is None or not str(tenant_id).strip():
        raise ValidationError("instanceId é obrigatório", code="MISSING_INSTANCE_ID")

    tenant_id = str(tenant_id).strip()

    if not TENANT_ID_PATTERN.match(tenant_id):
        raise ValidationError(
            "instanceId inválido",
            code="INVALID_INSTANCE_ID",
            details={"instance_id": tenant_id},
        )

    stem = tenant_id.split(".", 1)[0].lower()
    if stem in RESERVED_TENANT_IDS or tenant_id.endswith("."):
        raise ValidationError(
            "instanceId reservado",
            code="RESERVED_INSTANCE_ID",
            details={"instance_id": tenant_id},
        )

    return tenant_id


def normalize_phone(phone: str | None) -> str:
    """
    Reduce a recipient phone to its digits.

    Raises:
        ValidationError: if no digits remain
    """
    digits = re.sub(r"\D", "", phone or "")
    if not digits:
        raise ValidationError("Phone e Message são obrigatórios", code="INVALID_PHONE")
    return digits


def validate_text(text: str | None) -> str:
    """Reject missing or empty message bodies; whitespace is sent as-is."""
    if not text:
        raise ValidationError("Phone e Message são obrigatórios", code="EMPTY_MESSAGE")
    return text
