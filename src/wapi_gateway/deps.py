"""Request dependencies. Components live on app.state, set up in main.create_app."""

from fastapi import Query, Request

from wa_sessions.lifecycle import SessionLifecycleController
from wa_sessions.validation import validate_tenant_id
from wacore.settings import Settings


def get_controller(request: Request) -> SessionLifecycleController:
    return request.app.state.controller


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_instance_id(instance_id: str | None = Query(None, alias="instanceId")) -> str:
    """Tenant id from the instanceId query parameter (400 when missing or invalid)."""
    return validate_tenant_id(instance_id)
