"""
Storage collaborators for the matching engine.

The engine only depends on MatchStore; pick an implementation with
``get_store()`` (driven by ``STORE_BACKEND``) or construct one directly.
"""

from campusmatch.core.config import settings
from campusmatch.services.storage.base import MatchStore
from campusmatch.services.storage.memory import InMemoryMatchStore
from campusmatch.services.storage.redis_store import RedisMatchStore


def get_store(backend: str | None = None) -> MatchStore:
    backend = backend or settings.STORE_BACKEND
    if backend == "memory":
        return InMemoryMatchStore()
    if backend == "redis":
        return RedisMatchStore()
    raise ValueError(f"Unknown store backend: {backend}")


__all__ = [
    "MatchStore",
    "InMemoryMatchStore",
    "RedisMatchStore",
    "get_store",
]
