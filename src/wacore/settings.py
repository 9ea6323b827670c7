"""
Gateway settings.

Loaded from environment variables (and an optional .env file) with
pydantic-settings. Use get_settings() instead of instantiating directly.
"""

import functools

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process-wide configuration."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # HTTP server
    HOST: str = Field("0.0.0.0", description="Bind address for the HTTP server")
    PORT: int = Field(3000, description="HTTP port")
    CORS_ORIGINS: list[str] = Field(default=["*"], description="Allowed CORS origins")

    # Logging
    LOG_LEVEL: str = Field("INFO", description="Root log level")
    LOG_FORMAT: str = Field("json", description="json or text")

    # Inbound message relay
    WEBHOOK_URL: str | None = Field(None, description="Endpoint that receives inbound messages")
    WEBHOOK_TOKEN: str | None = Field(None, description="Sent as X-Webhook-Token when set")
    WEBHOOK_TIMEOUT: float = Field(10.0, description="Webhook HTTP timeout in seconds")
    WEBHOOK_QUEUE_SIZE: int = Field(1000, description="Pending webhook deliveries before dropping")
    WEBHOOK_WORKERS: int = Field(2, description="Concurrent webhook delivery tasks")

    # Credential persistence
    CREDENTIAL_BACKEND: str = Field("file", description="file, redis or memory")
    AUTH_FOLDER: str = Field("auth_sessions", description="Root directory for file credentials")
    CREDENTIAL_ENCRYPTION_KEY: str | None = Field(None, description="Fernet key for credentials at rest")
    REDIS_URL: str = Field("redis://localhost:6379/0", description="Redis URL for the redis backend")
    REDIS_KEY_PREFIX: str = Field("wapi:creds:", description="Namespace prefix for redis credentials")

    # Transport
    TRANSPORT: str = Field("stub", description="stub or evolution")
    STUB_AUTO_CONNECT_SECONDS: float | None = Field(
        None, description="Stub transport pairs itself after this many seconds"
    )
    EVOLUTION_API_URL: str = Field("http://localhost:8080", description="Evolution API base URL")
    EVOLUTION_API_KEY: str = Field("", description="Evolution API global key")
    EVOLUTION_INSTANCE_PREFIX: str = Field("", description="Prefix for Evolution instance names")
    EVOLUTION_POLL_INTERVAL: float = Field(5.0, description="Connection state poll interval in seconds")

    # Lifecycle
    RECONNECT_DELAY_SECONDS: float = Field(3.0, description="Fixed delay before reconnecting")
    TRANSPORT_CALL_TIMEOUT: float = Field(10.0, description="Upper bound for logout/terminate calls")
    PAIRING_RETRY_AFTER: int = Field(3, description="Retry-After seconds when no QR is ready")
    PRINT_QR_IN_TERMINAL: bool = Field(False, description="Print pairing codes as terminal QR")
    RESTORE_SESSIONS_ON_STARTUP: bool = Field(
        True, description="Reopen tenants with stored credentials at startup"
    )

    @field_validator("CREDENTIAL_BACKEND", "TRANSPORT", "LOG_FORMAT")
    @classmethod
    def _lowercase(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("WEBHOOK_URL", "WEBHOOK_TOKEN", "CREDENTIAL_ENCRYPTION_KEY")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip()


@functools.lru_cache()
def get_settings() -> Settings:
    """Get settings (cached)."""
    return Settings()
