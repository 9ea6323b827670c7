"""
Redis Credential Store

One string key per tenant namespace (prefix + tenant id) holding the
JSON bundle, optionally Fernet-encrypted.
"""

import json
import logging

import redis
from cryptography.fernet import Fernet, InvalidToken

from wa_sessions.credentials.base import CredentialStore, Credentials
from wa_sessions.errors import CredentialStoreError

logger = logging.getLogger(__name__)


class RedisCredentialStore(CredentialStore):
    """Credential bundles in Redis, for gateways running on ephemeral disks."""

    def __init__(
        self,
        redis_client: redis.Redis,
        key_prefix: str = "wapi:creds:",
        encryption_key: str | None = None,
    ):
        self.redis = redis_client
        self.key_prefix = key_prefix
        self._fernet = Fernet(encryption_key.encode()) if encryption_key else None

    def _key(self, tenant_id: str) -> str:
        return f"{self.key_prefix}{tenant_id}"

    def load(self, tenant_id: str) -> Credentials | None:
        try:
            raw = self.redis.get(self._key(tenant_id))
        except redis.RedisError as e:
            raise CredentialStoreError(
                f"Failed to read credentials: {e}",
                details={"tenant_id": tenant_id},
                retryable=True,
            ) from e

        if raw is None:
            return None

        try:
            if self._fernet:
                raw = self._fernet.decrypt(raw.encode() if isinstance(raw, str) else raw)
            return json.loads(raw)
        except (InvalidToken, ValueError) as e:
            raise CredentialStoreError(
                "Stored credentials could not be decoded",
                code="CORRUPT_CREDENTIALS",
                details={"tenant_id": tenant_id},
            ) from e

    def save(self, tenant_id: str, credentials: Credentials) -> None:
        data = json.dumps(credentials, separators=(",", ":"))
        if self._fernet:
            data = self._fernet.encrypt(data.encode()).decode()
        try:
            self.redis.set(self._key(tenant_id), data)
        except redis.RedisError as e:
            raise CredentialStoreError(
                f"Failed to write credentials: {e}",
                details={"tenant_id": tenant_id},
                retryable=True,
            ) from e

    def erase(self, tenant_id: str) -> bool:
        try:
            return bool(self.redis.delete(self._key(tenant_id)))
        except redis.RedisError as e:
            raise CredentialStoreError(
                f"Failed to erase credentials: {e}",
                details={"tenant_id": tenant_id},
                retryable=True,
            ) from e

    def list_tenants(self) -> list[str]:
        prefix_len = len(self.key_prefix)
        keys = self.redis.scan_iter(match=f"{self.key_prefix}*")
        return sorted(
            (key.decode() if isinstance(key, bytes) else key)[prefix_len:] for key in keys
        )
