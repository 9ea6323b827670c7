"""
Session Registry and Pairing Code Cache

In-memory per-tenant stores shared by HTTP handlers and transport event
processing. Every operation is a point operation under a lock; callers
never see the underlying dicts.
"""

import threading

from wa_sessions.contracts.session import PairingPayload, TenantSession


class SessionRegistry:
    """Tenant id -> TenantSession. Single authority for "is this tenant active"."""

    def __init__(self) -> None:
        self._sessions: dict[str, TenantSession] = {}
        self._lock = threading.Lock()

    def get(self, tenant_id: str) -> TenantSession | None:
        with self._lock:
            return self._sessions.get(tenant_id)

    def put(self, tenant_id: str, session: TenantSession) -> None:
        with self._lock:
            self._sessions[tenant_id] = session

    def remove(self, tenant_id: str) -> TenantSession | None:
        """Remove and return the tenant's session, if any."""
        with self._lock:
            return self._sessions.pop(tenant_id, None)

    def remove_if(self, tenant_id: str, session: TenantSession) -> bool:
        """Remove the entry only if it is still this exact session."""
        with self._lock:
            if self._sessions.get(tenant_id) is session:
                del self._sessions[tenant_id]
                return True
            return False

    def snapshot(self) -> list[TenantSession]:
        """Copy of the current sessions, safe to iterate while the registry changes."""
        with self._lock:
            return list(self._sessions.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, tenant_id: object) -> bool:
        with self._lock:
            return tenant_id in self._sessions


class PairingCodeCache:
    """
    Tenant id -> latest unconsumed pairing payload.

    An absent entry means either "not issued yet" or "already connected";
    only the session state tells the two apart.
    """

    def __init__(self) -> None:
        self._payloads: dict[str, PairingPayload] = {}
        self._lock = threading.Lock()

    def set(self, tenant_id: str, payload: PairingPayload) -> None:
        with self._lock:
            self._payloads[tenant_id] = payload

    def get(self, tenant_id: str) -> PairingPayload | None:
        with self._lock:
            return self._payloads.get(tenant_id)

    def clear(self, tenant_id: str) -> None:
        with self._lock:
            self._payloads.pop(tenant_id, None)

    def __contains__(self, tenant_id: object) -> bool:
        with self._lock:
            return tenant_id in self._payloads
