"""Two-phase restore and restore token stores."""

from .manager import RestoreOrchestrator
from .tokens import InMemoryRestoreTokenStore, RedisRestoreTokenStore, RestoreTokenStore

__all__ = [
    "RestoreOrchestrator",
    "RestoreTokenStore",
    "InMemoryRestoreTokenStore",
    "RedisRestoreTokenStore",
]
