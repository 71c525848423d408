"""Key-value store: plain string keys plus sets of strings.

Holds the status index and, with the ``redis`` job backend, the job records
themselves. Every operation is a single-key operation; nothing here assumes
multi-key transactions.
"""
from __future__ import annotations

import fnmatch
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Protocol

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from jobtracker.errors import StorageError

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    async def ping(self) -> bool: ...

    async def get(self, key: str) -> str | None: ...

    async def get_many(self, keys: list[str]) -> list[str | None]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> int: ...

    async def add_to_set(self, set_key: str, member: str) -> int: ...

    async def remove_from_set(self, set_key: str, member: str) -> int: ...

    async def members_of(self, set_key: str) -> set[str]: ...

    async def scan_keys(self, pattern: str) -> list[str]: ...

    async def close(self) -> None: ...


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except RedisError as e:
        logger.error("Redis %s failed: %s", action, e)
        raise StorageError(f"Redis {action} failed: {e}") from e


class RedisKeyValueStore:
    """KeyValueStore backed by a Redis server (redis-py asyncio client)."""

    def __init__(self, client: aioredis.Redis) -> None:
        self._client = client

    @classmethod
    def from_settings(
        cls, host: str, port: int, password: str | None = None, db: int = 0
    ) -> RedisKeyValueStore:
        client = aioredis.Redis(
            host=host,
            port=port,
            password=password,
            db=db,
            decode_responses=True,
        )
        return cls(client)

    async def ping(self) -> bool:
        with _storage_errors("PING"):
            return bool(await self._client.ping())

    async def get(self, key: str) -> str | None:
        with _storage_errors(f"GET {key}"):
            return await self._client.get(key)

    async def get_many(self, keys: list[str]) -> list[str | None]:
        if not keys:
            return []
        with _storage_errors(f"MGET ({len(keys)} keys)"):
            return await self._client.mget(keys)

    async def set(self, key: str, value: str) -> None:
        with _storage_errors(f"SET {key}"):
            await self._client.set(key, value)

    async def delete(self, key: str) -> int:
        with _storage_errors(f"DEL {key}"):
            return await self._client.delete(key)

    async def add_to_set(self, set_key: str, member: str) -> int:
        with _storage_errors(f"SADD {set_key}"):
            return await self._client.sadd(set_key, member)

    async def remove_from_set(self, set_key: str, member: str) -> int:
        with _storage_errors(f"SREM {set_key}"):
            return await self._client.srem(set_key, member)

    async def members_of(self, set_key: str) -> set[str]:
        with _storage_errors(f"SMEMBERS {set_key}"):
            return set(await self._client.smembers(set_key))

    async def scan_keys(self, pattern: str) -> list[str]:
        with _storage_errors(f"SCAN {pattern}"):
            return [key async for key in self._client.scan_iter(match=pattern)]

    async def close(self) -> None:
        await self._client.aclose()


class MemoryKeyValueStore:
    """In-process KeyValueStore for tests and single-process development."""

    def __init__(self) -> None:
        self._values: dict[str, str] = {}
        self._sets: dict[str, set[str]] = {}

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> str | None:
        return self._values.get(key)

    async def get_many(self, keys: list[str]) -> list[str | None]:
        return [self._values.get(key) for key in keys]

    async def set(self, key: str, value: str) -> None:
        self._values[key] = value

    async def delete(self, key: str) -> int:
        removed = int(key in self._values) + int(key in self._sets)
        self._values.pop(key, None)
        self._sets.pop(key, None)
        return removed

    async def add_to_set(self, set_key: str, member: str) -> int:
        members = self._sets.setdefault(set_key, set())
        if member in members:
            return 0
        members.add(member)
        return 1

    async def remove_from_set(self, set_key: str, member: str) -> int:
        members = self._sets.get(set_key)
        if not members or member not in members:
            return 0
        members.discard(member)
        if not members:
            del self._sets[set_key]
        return 1

    async def members_of(self, set_key: str) -> set[str]:
        return set(self._sets.get(set_key, ()))

    async def scan_keys(self, pattern: str) -> list[str]:
        keys = list(self._values) + list(self._sets)
        return [k for k in keys if fnmatch.fnmatchcase(k, pattern)]

    async def close(self) -> None:
        pass
