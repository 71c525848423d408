"""Persistence for memoized AI responses (table ``ai_response_cache``)."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Protocol, TypeVar

import duckdb

from jobtracker.db import from_db_time, to_db_time
from jobtracker.errors import StorageError
from jobtracker.models.knowledge import CacheEntry, CacheType

logger = logging.getLogger(__name__)

T = TypeVar("T")

CACHE_COLUMNS = [
    "cache_key",
    "cache_type",
    "input_hash",
    "job_id",
    "knowledge_item",
    "proficiency_level",
    "response_content",
    "ai_model",
    "tokens_used",
    "response_time_ms",
    "created_at",
    "updated_at",
    "expires_at",
]
_TIME_COLUMNS = ("created_at", "updated_at", "expires_at")


class CacheStore(Protocol):
    async def find_fresh(self, cache_type: CacheType, cache_key: str, now: datetime) -> CacheEntry | None:
        """Return the entry only if ``now < expires_at``."""
        ...

    async def upsert(self, entry: CacheEntry) -> None: ...

    async def purge_expired(self, now: datetime) -> int: ...


class DuckDBCacheStore:
    def __init__(self, con: duckdb.DuckDBPyConnection) -> None:
        self._con = con

    async def _run(self, action: str, fn: Callable[[duckdb.DuckDBPyConnection], T]) -> T:
        def call() -> T:
            with self._con.cursor() as cur:
                return fn(cur)

        try:
            return await asyncio.to_thread(call)
        except duckdb.Error as e:
            raise StorageError(f"Failed to {action}: {e}") from e

    async def find_fresh(self, cache_type: CacheType, cache_key: str, now: datetime) -> CacheEntry | None:
        def query(cur: duckdb.DuckDBPyConnection) -> tuple | None:
            return cur.execute(
                f"SELECT {', '.join(CACHE_COLUMNS)} FROM ai_response_cache "
                "WHERE cache_key = ? AND cache_type = ? AND expires_at > ?",
                [cache_key, cache_type.value, to_db_time(now)],
            ).fetchone()

        row = await self._run(f"look up cache key {cache_key}", query)
        if row is None:
            return None
        data = dict(zip(CACHE_COLUMNS, row))
        for col in _TIME_COLUMNS:
            data[col] = from_db_time(data[col])
        return CacheEntry.model_validate(data)

    async def upsert(self, entry: CacheEntry) -> None:
        data = entry.model_dump()
        data["cache_type"] = entry.cache_type.value
        for col in _TIME_COLUMNS:
            data[col] = to_db_time(data[col])
        values = [data[col] for col in CACHE_COLUMNS]
        # created_at keeps the first write; everything else is overwritten
        overwrite = ", ".join(
            f"{col} = excluded.{col}" for col in CACHE_COLUMNS if col not in ("cache_key", "created_at")
        )

        def query(cur: duckdb.DuckDBPyConnection) -> None:
            cur.execute(
                f"INSERT INTO ai_response_cache ({', '.join(CACHE_COLUMNS)}) "
                f"VALUES ({', '.join('?' for _ in CACHE_COLUMNS)}) "
                f"ON CONFLICT (cache_key) DO UPDATE SET {overwrite}",
                values,
            )

        await self._run(f"save cache key {entry.cache_key}", query)

    async def purge_expired(self, now: datetime) -> int:
        def query(cur: duckdb.DuckDBPyConnection) -> int:
            rows = cur.execute(
                "DELETE FROM ai_response_cache WHERE expires_at <= ? RETURNING cache_key",
                [to_db_time(now)],
            ).fetchall()
            return len(rows)

        removed = await self._run("purge expired cache entries", query)
        if removed:
            logger.info("Purged %d expired AI cache entries", removed)
        return removed

    async def count(self, cache_key: str | None = None) -> int:
        def query(cur: duckdb.DuckDBPyConnection) -> int:
            if cache_key is None:
                return cur.execute("SELECT count(*) FROM ai_response_cache").fetchone()[0]
            return cur.execute(
                "SELECT count(*) FROM ai_response_cache WHERE cache_key = ?", [cache_key]
            ).fetchone()[0]

        return await self._run("count cache entries", query)
