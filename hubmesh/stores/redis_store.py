"""Redis-backed registry store.

Each key is a Redis hash. ``upsert`` runs ``DEL``/``HSET``/``PEXPIRE`` inside
one ``MULTI``/``EXEC`` transaction so a record can never be left behind
without a TTL.
"""

from __future__ import annotations

import contextlib
import logging
from typing import Iterator, Mapping

import redis.asyncio as aioredis
from redis.exceptions import RedisError, ResponseError

from hubmesh.registry.errors import RecordMalformed, StoreUnavailable

from .base import RegistryStore

logger = logging.getLogger(__name__)

_GLOB_SPECIAL = "\\*?[]"


def _escape_glob(text: str) -> str:
    return "".join(f"\\{c}" if c in _GLOB_SPECIAL else c for c in text)


@contextlib.contextmanager
def _unavailable_on_error(operation: str, key: str) -> Iterator[None]:
    try:
        yield
    except (RedisError, OSError) as exc:
        raise StoreUnavailable(f"redis {operation} {key!r} failed: {exc}") from exc


class RedisRegistryStore(RegistryStore):
    """Registry store on top of :mod:`redis.asyncio`.

    Args:
        url:            Redis connection URL.
        socket_timeout: Per-command socket timeout in seconds.
        client:         Pre-built client (takes precedence over *url*).
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        socket_timeout: float = 5.0,
        client: aioredis.Redis | None = None,
    ) -> None:
        self._url = url
        if client is None:
            client = aioredis.from_url(
                url,
                decode_responses=True,
                socket_timeout=socket_timeout,
                socket_connect_timeout=socket_timeout,
            )
        self._client = client

    async def write(self, key: str, fields: Mapping[str, str]) -> None:
        with _unavailable_on_error("write", key):
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                pipe.hset(key, mapping=dict(fields))
                await pipe.execute()

    async def set_expiry(self, key: str, seconds: float) -> bool:
        with _unavailable_on_error("expire", key):
            return bool(await self._client.pexpire(key, int(seconds * 1000)))

    async def upsert(self, key: str, fields: Mapping[str, str], ttl: float) -> None:
        with _unavailable_on_error("upsert", key):
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                pipe.hset(key, mapping=dict(fields))
                pipe.pexpire(key, int(ttl * 1000))
                await pipe.execute()

    async def delete(self, key: str) -> bool:
        with _unavailable_on_error("delete", key):
            return bool(await self._client.delete(key))

    async def scan_keys(self, prefix: str) -> list[str]:
        pattern = f"{_escape_glob(prefix)}*"
        with _unavailable_on_error("scan", pattern):
            return [key async for key in self._client.scan_iter(match=pattern, count=100)]

    async def read_fields(self, key: str) -> dict[str, str]:
        try:
            data = await self._client.hgetall(key)
        except ResponseError as exc:
            # WRONGTYPE: something other than a hash lives under the namespace.
            raise RecordMalformed(key, str(exc)) from exc
        except (RedisError, OSError) as exc:
            raise StoreUnavailable(f"redis hgetall {key!r} failed: {exc}") from exc
        return dict(data)

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except (RedisError, OSError) as exc:
            logger.debug("Redis ping to %s failed: %s", self._url, exc)
            return False

    async def aclose(self) -> None:
        await self._client.aclose()
