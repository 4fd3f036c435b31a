"""In-process registry store with TTL semantics.

Suitable for a single process (local development, tests). Expired keys are
evicted lazily whenever they are touched or enumerated.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Mapping

from .base import RegistryStore

logger = logging.getLogger(__name__)


class MemoryRegistryStore(RegistryStore):
    """Dict-backed store.

    Args:
        clock: Monotonic seconds source used for expiry bookkeeping.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: dict[str, dict[str, str]] = {}
        self._expires_at: dict[str, float] = {}

    async def write(self, key: str, fields: Mapping[str, str]) -> None:
        # A full overwrite drops any previous TTL, as DEL + HSET would.
        self._data[key] = dict(fields)
        self._expires_at.pop(key, None)

    async def set_expiry(self, key: str, seconds: float) -> bool:
        self._evict_if_expired(key)
        if key not in self._data:
            return False
        self._expires_at[key] = self._clock() + seconds
        return True

    async def upsert(self, key: str, fields: Mapping[str, str], ttl: float) -> None:
        self._data[key] = dict(fields)
        self._expires_at[key] = self._clock() + ttl

    async def delete(self, key: str) -> bool:
        self._evict_if_expired(key)
        self._expires_at.pop(key, None)
        return self._data.pop(key, None) is not None

    async def scan_keys(self, prefix: str) -> list[str]:
        for key in list(self._data):
            self._evict_if_expired(key)
        return [k for k in self._data if k.startswith(prefix)]

    async def read_fields(self, key: str) -> dict[str, str]:
        self._evict_if_expired(key)
        return dict(self._data.get(key, {}))

    async def ping(self) -> bool:
        return True

    def ttl(self, key: str) -> float | None:
        """Seconds left before *key* expires, ``None`` if it has no TTL or is gone."""
        self._evict_if_expired(key)
        expires_at = self._expires_at.get(key)
        if expires_at is None:
            return None
        return expires_at - self._clock()

    def _evict_if_expired(self, key: str) -> None:
        expires_at = self._expires_at.get(key)
        if expires_at is not None and expires_at <= self._clock():
            self._data.pop(key, None)
            del self._expires_at[key]
            logger.debug("Evicted expired key %s", key)
