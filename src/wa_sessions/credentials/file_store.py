"""
File Credential Store

One directory per tenant under the auth folder:

    auth_sessions/
        shop-1/creds.json
        shop-2/creds.json

Bundles are Fernet-encrypted when an encryption key is configured.
"""

import json
import logging
import os
import shutil
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken

from wa_sessions.credentials.base import CredentialStore, Credentials
from wa_sessions.errors import CredentialStoreError

logger = logging.getLogger(__name__)

CREDS_FILENAME = "creds.json"


class FileCredentialStore(CredentialStore):
    """Credential bundles on local disk."""

    def __init__(self, root: str | Path, encryption_key: str | None = None):
        """
        Initialize file store.

        Args:
            root: Auth folder; created if missing
            encryption_key: Fernet key; bundles are stored in clear when None
        """
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._fernet = Fernet(encryption_key.encode()) if encryption_key else None

    def _tenant_dir(self, tenant_id: str) -> Path:
        path = (self.root / tenant_id).resolve()
        if path.parent != self.root.resolve():
            raise CredentialStoreError(
                "Tenant namespace escapes the auth folder",
                code="INVALID_NAMESPACE",
                details={"tenant_id": tenant_id},
            )
        return path

    def load(self, tenant_id: str) -> Credentials | None:
        path = self._tenant_dir(tenant_id) / CREDS_FILENAME
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CredentialStoreError(
                f"Failed to read credentials: {e}",
                details={"tenant_id": tenant_id},
            ) from e

        try:
            if self._fernet:
                raw = self._fernet.decrypt(raw)
            return json.loads(raw)
        except (InvalidToken, ValueError) as e:
            raise CredentialStoreError(
                "Stored credentials could not be decoded",
                code="CORRUPT_CREDENTIALS",
                details={"tenant_id": tenant_id},
            ) from e

    def save(self, tenant_id: str, credentials: Credentials) -> None:
        tenant_dir = self._tenant_dir(tenant_id)
        data = json.dumps(credentials, separators=(",", ":")).encode()
        if self._fernet:
            data = self._fernet.encrypt(data)

        try:
            tenant_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
            tmp_path = tenant_dir / f".{CREDS_FILENAME}.tmp"
            tmp_path.unlink(missing_ok=True)
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_path, tenant_dir / CREDS_FILENAME)
        except OSError as e:
            raise CredentialStoreError(
                f"Failed to write credentials: {e}",
                details={"tenant_id": tenant_id},
            ) from e

        logger.debug("Saved credentials", extra={"tenant_id": tenant_id})

    def erase(self, tenant_id: str) -> bool:
        tenant_dir = self._tenant_dir(tenant_id)
        if not tenant_dir.exists():
            return False
        try:
            shutil.rmtree(tenant_dir)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise CredentialStoreError(
                f"Failed to erase credentials: {e}",
                details={"tenant_id": tenant_id},
            ) from e
        return True

    def list_tenants(self) -> list[str]:
        return sorted(
            entry.name
            for entry in self.root.iterdir()
            if entry.is_dir() and (entry / CREDS_FILENAME).exists()
        )
