"""Abstract registry store interface for hubmesh.

Any TTL-capable key/value backend (Redis, in-process memory, ...) implements
this interface. Keys map to flat ``str -> str`` field sets.
"""

from __future__ import annotations

import abc
from typing import Mapping


class RegistryStore(abc.ABC):
    """Abstract interface for the shared registry backend.

    All methods raise :class:`hubmesh.registry.errors.StoreUnavailable` when
    the backend cannot be reached.
    """

    @abc.abstractmethod
    async def write(self, key: str, fields: Mapping[str, str]) -> None:
        """Replace every field stored under *key* with *fields*."""
        raise NotImplementedError

    @abc.abstractmethod
    async def set_expiry(self, key: str, seconds: float) -> bool:
        """Reset the TTL of *key*. Returns False if the key does not exist."""
        raise NotImplementedError

    @abc.abstractmethod
    async def upsert(self, key: str, fields: Mapping[str, str], ttl: float) -> None:
        """Atomically replace *key*'s fields and set its TTL."""
        raise NotImplementedError

    @abc.abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove *key*. Returns True if it existed."""
        raise NotImplementedError

    @abc.abstractmethod
    async def scan_keys(self, prefix: str) -> list[str]:
        """Return every live key starting with *prefix*, in no particular order."""
        raise NotImplementedError

    @abc.abstractmethod
    async def read_fields(self, key: str) -> dict[str, str]:
        """Return the full field set of *key*, or ``{}`` if absent or expired.

        Raises:
            RecordMalformed: if *key* holds a value the store cannot read as a
                field set.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def ping(self) -> bool:
        """Check if the backend is reachable."""
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release any connections held by the store."""
        return None
