"""Registry store factory for hubmesh.

Usage::

    from hubmesh.stores import create_store
    store = create_store()                 # backend from HUBMESH_STORE
    store = create_store("memory")
    store = create_store("redis", url="redis://cache:6379/0")
"""

from __future__ import annotations

import os
from typing import Any

from hubmesh.config import Settings

from .base import RegistryStore
from .memory import MemoryRegistryStore
from .redis_store import RedisRegistryStore

__all__ = [
    "RegistryStore",
    "MemoryRegistryStore",
    "RedisRegistryStore",
    "create_store",
    "store_from_settings",
]

_STORES = {
    "memory": MemoryRegistryStore,
    "redis": RedisRegistryStore,
}


def create_store(backend: str | None = None, **kwargs: Any) -> RegistryStore:
    """Return a configured RegistryStore.

    If *backend* is omitted, reads ``HUBMESH_STORE`` from the environment
    (default: ``"redis"``). Extra keyword arguments go to the backend.
    """
    if backend is None:
        backend = os.environ.get("HUBMESH_STORE", "redis")

    backend = backend.lower()
    cls = _STORES.get(backend)
    if cls is None:
        raise ValueError(
            f"Unknown store backend '{backend}'. "
            f"Choose from: {list(_STORES)}"
        )
    return cls(**kwargs)


def store_from_settings(settings: Settings) -> RegistryStore:
    """Build the backend selected by ``settings.store``."""
    if settings.store.lower() == "redis":
        return create_store(
            "redis", url=settings.redis_url, socket_timeout=settings.redis_timeout
        )
    return create_store(settings.store)
