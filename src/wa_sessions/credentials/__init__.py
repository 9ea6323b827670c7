"""
Credential Stores

Per-tenant credential persistence backends.
"""

from wa_sessions.credentials.base import CredentialStore, Credentials, MemoryCredentialStore
from wa_sessions.credentials.file_store import FileCredentialStore
from wa_sessions.credentials.redis_store import RedisCredentialStore

__all__ = [
    "CredentialStore",
    "Credentials",
    "MemoryCredentialStore",
    "FileCredentialStore",
    "RedisCredentialStore",
]
