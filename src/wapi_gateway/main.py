"""
W-API Gateway Service

FastAPI app exposing the W-API compatible surface over the session core.

Responsibilities:
- Build the core components from settings (credential store, transport,
  webhook dispatcher, lifecycle controller)
- Restore tenants with stored credentials on startup
- Translate HTTP calls into controller operations
- Terminate every transport handle on shutdown
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from wa_sessions.credentials import (
    CredentialStore,
    FileCredentialStore,
    MemoryCredentialStore,
    RedisCredentialStore,
)
from wa_sessions.lifecycle import SessionLifecycleController
from wa_sessions.registry import PairingCodeCache, SessionRegistry
from wa_sessions.transports.base import TransportFactory
from wa_sessions.transports.evolution import EvolutionApiClient, EvolutionTransportFactory
from wa_sessions.transports.stub import StubTransportFactory
from wa_sessions.webhooks import WebhookDispatcher
from wacore.logging import setup_logging
from wacore.redis import get_redis_client
from wacore.settings import Settings, get_settings
from wapi_gateway.exception_handlers import register_exception_handlers
from wapi_gateway.qr import print_terminal_qr
from wapi_gateway.routes import (
    evolution_webhook_router,
    health_router,
    instance_router,
    message_router,
)

logger = logging.getLogger(__name__)


def build_credential_store(settings: Settings) -> CredentialStore:
    """Get the credential backend named by CREDENTIAL_BACKEND."""
    backend = settings.CREDENTIAL_BACKEND
    if backend == "redis":
        return RedisCredentialStore(
            get_redis_client(),
            key_prefix=settings.REDIS_KEY_PREFIX,
            encryption_key=settings.CREDENTIAL_ENCRYPTION_KEY,
        )
    if backend == "memory":
        return MemoryCredentialStore()
    if backend != "file":
        logger.warning(f"Unknown credential backend {backend!r}, using file")
    return FileCredentialStore(settings.AUTH_FOLDER, encryption_key=settings.CREDENTIAL_ENCRYPTION_KEY)


def build_transport_factory(settings: Settings) -> TransportFactory:
    """Get the transport named by TRANSPORT."""
    if settings.TRANSPORT == "evolution":
        api = EvolutionApiClient(
            api_url=settings.EVOLUTION_API_URL,
            api_key=settings.EVOLUTION_API_KEY,
            timeout=settings.TRANSPORT_CALL_TIMEOUT,
        )
        return EvolutionTransportFactory(
            api,
            instance_prefix=settings.EVOLUTION_INSTANCE_PREFIX,
            poll_interval=settings.EVOLUTION_POLL_INTERVAL,
        )
    if settings.TRANSPORT != "stub":
        logger.warning(f"Unknown transport {settings.TRANSPORT!r}, using stub")
    return StubTransportFactory(auto_connect_after=settings.STUB_AUTO_CONNECT_SECONDS)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Start the dispatch loop and webhook workers; tear everything down on exit."""
    settings: Settings = app.state.settings
    controller: SessionLifecycleController = app.state.controller
    dispatcher: WebhookDispatcher = app.state.webhook_dispatcher

    await dispatcher.start()
    await controller.start()

    if settings.RESTORE_SESSIONS_ON_STARTUP:
        await controller.restore_sessions()

    logger.info(
        "W-API gateway started",
        extra={
            "transport": settings.TRANSPORT,
            "credential_backend": settings.CREDENTIAL_BACKEND,
            "webhook_enabled": dispatcher.enabled,
        },
    )

    yield

    await controller.shutdown()
    await dispatcher.close()
    await app.state.transport_factory.close()
    logger.info("W-API gateway stopped")


def create_app(
    settings: Settings | None = None,
    credential_store: CredentialStore | None = None,
    transport_factory: TransportFactory | None = None,
    webhook_http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """
    Build the gateway app.

    Components not passed in are built from settings.
    """
    settings = settings or get_settings()
    credential_store = credential_store or build_credential_store(settings)
    transport_factory = transport_factory or build_transport_factory(settings)

    dispatcher = WebhookDispatcher(
        settings.WEBHOOK_URL,
        token=settings.WEBHOOK_TOKEN,
        timeout=settings.WEBHOOK_TIMEOUT,
        queue_size=settings.WEBHOOK_QUEUE_SIZE,
        workers=settings.WEBHOOK_WORKERS,
        http_client=webhook_http_client,
    )

    controller = SessionLifecycleController(
        registry=SessionRegistry(),
        pairing_cache=PairingCodeCache(),
        credential_store=credential_store,
        transport_factory=transport_factory,
        webhook_dispatcher=dispatcher,
        reconnect_delay=settings.RECONNECT_DELAY_SECONDS,
        call_timeout=settings.TRANSPORT_CALL_TIMEOUT,
        on_pairing_code=print_terminal_qr if settings.PRINT_QR_IN_TERMINAL else None,
    )

    app = FastAPI(
        title="W-API Gateway",
        description="Multi-tenant chat session gateway with a W-API compatible surface",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.credential_store = credential_store
    app.state.transport_factory = transport_factory
    app.state.webhook_dispatcher = dispatcher
    app.state.controller = controller

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(instance_router)
    app.include_router(message_router)
    app.include_router(evolution_webhook_router)

    return app


def run() -> None:
    """Run the gateway with uvicorn."""
    import uvicorn

    settings = get_settings()
    setup_logging()
    uvicorn.run(create_app(settings), host=settings.HOST, port=settings.PORT, log_config=None)


if __name__ == "__main__":
    run()
