"""
Credential Store Base

Abstract interface for per-tenant credential persistence.
Implementations: file (directory per tenant), redis, memory.
"""

from abc import ABC, abstractmethod
from typing import Any

Credentials = dict[str, Any]


class CredentialStore(ABC):
    """
    Durable key material, one bundle per tenant namespace.

    Implementations must:
    - Keep tenants isolated (erasing one never touches another)
    - Treat erase of an unknown tenant as success
    - Raise CredentialStoreError on I/O or decoding failures
    """

    @abstractmethod
    def load(self, tenant_id: str) -> Credentials | None:
        """
        Load a tenant's credential bundle.

        Returns:
            The bundle, or None when the tenant has never been paired
        """
        ...

    @abstractmethod
    def save(self, tenant_id: str, credentials: Credentials) -> None:
        """Replace the tenant's credential bundle."""
        ...

    @abstractmethod
    def erase(self, tenant_id: str) -> bool:
        """
        Remove the tenant's whole namespace.

        Returns:
            True if anything was removed
        """
        ...

    @abstractmethod
    def list_tenants(self) -> list[str]:
        """Tenant ids that currently have a persisted bundle."""
        ...


class MemoryCredentialStore(CredentialStore):
    """Process-local store for development and tests."""

    def __init__(self) -> None:
        self._bundles: dict[str, Credentials] = {}

    def load(self, tenant_id: str) -> Credentials | None:
        bundle = self._bundles.get(tenant_id)
        return dict(bundle) if bundle is not None else None

    def save(self, tenant_id: str, credentials: Credentials) -> None:
        self._bundles[tenant_id] = dict(credentials)

    def erase(self, tenant_id: str) -> bool:
        return self._bundles.pop(tenant_id, None) is not None

    def list_tenants(self) -> list[str]:
        return sorted(self._bundles)
