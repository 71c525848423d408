"""Primary record store for jobs.

Two interchangeable implementations; one is picked per deployment with the
``job_backend`` setting:

* ``DuckDBJobStore``: rows in the ``jobs`` table.
* ``KeyValueJobStore``: JSON documents under ``job:{id}`` in the key-value store.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from enum import Enum
from typing import Any, Protocol, TypeVar

import duckdb
from pydantic import ValidationError as PydanticValidationError

from jobtracker.db import from_db_time, to_db_time
from jobtracker.errors import StorageError
from jobtracker.keys import is_valid_job_key, job_id_from_key, job_key
from jobtracker.models.job import Job
from jobtracker.stores.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

JOB_COLUMNS = [
    "id",
    "job_title",
    "company_name",
    "application_link",
    "company_link",
    "requirements",
    "job_description",
    "status",
    "notes",
    "applied_date",
    "created_at",
    "updated_at",
]
_UPDATABLE = set(JOB_COLUMNS) - {"id", "created_at"}


class JobStore(Protocol):
    async def get(self, job_id: str) -> Job | None: ...

    async def get_many(self, job_ids: list[str]) -> list[Job | None]:
        """Fetch several jobs; the result lines up with ``job_ids``."""
        ...

    async def insert(self, job: Job) -> None: ...

    async def update_fields(self, job_id: str, fields: dict[str, Any]) -> Job | None: ...

    async def delete(self, job_id: str) -> bool: ...

    async def list_all(self, offset: int = 0, limit: int | None = None) -> list[Job]:
        """Jobs ordered newest first by creation time."""
        ...

    async def count(self) -> int: ...


def _db_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return to_db_time(value)
    return value


def _row_to_job(row: tuple) -> Job:
    data = dict(zip(JOB_COLUMNS, row))
    data["created_at"] = from_db_time(data["created_at"])
    data["updated_at"] = from_db_time(data["updated_at"])
    return Job.model_validate(data)


class DuckDBJobStore:
    """JobStore over the DuckDB ``jobs`` table.

    DuckDB calls block, so each one runs in a worker thread on its own cursor.
    """

    def __init__(self, con: duckdb.DuckDBPyConnection) -> None:
        self._con = con

    async def _run(self, action: str, fn: Callable[[duckdb.DuckDBPyConnection], T]) -> T:
        def call() -> T:
            with self._con.cursor() as cur:
                return fn(cur)

        try:
            return await asyncio.to_thread(call)
        except duckdb.Error as e:
            logger.error("DuckDB %s failed: %s", action, e)
            raise StorageError(f"Failed to {action}: {e}") from e

    async def get(self, job_id: str) -> Job | None:
        cols = ", ".join(JOB_COLUMNS)

        def query(cur: duckdb.DuckDBPyConnection) -> tuple | None:
            return cur.execute(f"SELECT {cols} FROM jobs WHERE id = ?", [job_id]).fetchone()

        row = await self._run(f"get job {job_id}", query)
        return _row_to_job(row) if row else None

    async def get_many(self, job_ids: list[str]) -> list[Job | None]:
        if not job_ids:
            return []
        cols = ", ".join(JOB_COLUMNS)
        placeholders = ", ".join("?" for _ in job_ids)

        def query(cur: duckdb.DuckDBPyConnection) -> list[tuple]:
            return cur.execute(
                f"SELECT {cols} FROM jobs WHERE id IN ({placeholders})", list(job_ids)
            ).fetchall()

        rows = await self._run(f"get {len(job_ids)} jobs", query)
        by_id = {job.id: job for job in map(_row_to_job, rows)}
        return [by_id.get(job_id) for job_id in job_ids]

    async def insert(self, job: Job) -> None:
        data = job.model_dump()
        values = [_db_value(data[col]) for col in JOB_COLUMNS]
        placeholders = ", ".join("?" for _ in JOB_COLUMNS)

        def query(cur: duckdb.DuckDBPyConnection) -> None:
            cur.execute(
                f"INSERT INTO jobs ({', '.join(JOB_COLUMNS)}) VALUES ({placeholders})", values
            )

        await self._run(f"insert job {job.id}", query)

    async def update_fields(self, job_id: str, fields: dict[str, Any]) -> Job | None:
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update job columns: {sorted(unknown)}")
        if not fields:
            return await self.get(job_id)
        assignments = ", ".join(f"{col} = ?" for col in fields)
        values = [_db_value(v) for v in fields.values()] + [job_id]

        def query(cur: duckdb.DuckDBPyConnection) -> tuple | None:
            return cur.execute(
                f"UPDATE jobs SET {assignments} WHERE id = ? RETURNING {', '.join(JOB_COLUMNS)}",
                values,
            ).fetchone()

        row = await self._run(f"update job {job_id}", query)
        return _row_to_job(row) if row else None

    async def delete(self, job_id: str) -> bool:
        def query(cur: duckdb.DuckDBPyConnection) -> list[tuple]:
            return cur.execute("DELETE FROM jobs WHERE id = ? RETURNING id", [job_id]).fetchall()

        return bool(await self._run(f"delete job {job_id}", query))

    async def list_all(self, offset: int = 0, limit: int | None = None) -> list[Job]:
        sql = f"SELECT {', '.join(JOB_COLUMNS)} FROM jobs ORDER BY created_at DESC, id"
        params: list[Any] = []
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params = [limit, offset]
        elif offset:
            sql += " OFFSET ?"
            params = [offset]

        def query(cur: duckdb.DuckDBPyConnection) -> list[tuple]:
            return cur.execute(sql, params).fetchall()

        rows = await self._run("list jobs", query)
        return [_row_to_job(row) for row in rows]

    async def count(self) -> int:
        def query(cur: duckdb.DuckDBPyConnection) -> int:
            return cur.execute("SELECT count(*) FROM jobs").fetchone()[0]

        return await self._run("count jobs", query)


class KeyValueJobStore:
    """JobStore keeping each job as a JSON document under ``job:{id}``."""

    def __init__(self, kv: KeyValueStore) -> None:
        self._kv = kv

    @staticmethod
    def _decode(job_id: str, raw: str | None) -> Job | None:
        if raw is None:
            return None
        try:
            return Job.model_validate_json(raw)
        except PydanticValidationError as e:
            raise StorageError(f"Failed to parse job data for {job_id}: {e}") from e

    async def get(self, job_id: str) -> Job | None:
        return self._decode(job_id, await self._kv.get(job_key(job_id)))

    async def get_many(self, job_ids: list[str]) -> list[Job | None]:
        raws = await self._kv.get_many([job_key(job_id) for job_id in job_ids])
        return [self._decode(job_id, raw) for job_id, raw in zip(job_ids, raws)]

    async def insert(self, job: Job) -> None:
        await self._kv.set(job_key(job.id), job.model_dump_json())

    async def update_fields(self, job_id: str, fields: dict[str, Any]) -> Job | None:
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update job fields: {sorted(unknown)}")
        existing = await self.get(job_id)
        if existing is None:
            return None
        updated = Job.model_validate({**existing.model_dump(), **fields})
        await self._kv.set(job_key(job_id), updated.model_dump_json())
        return updated

    async def delete(self, job_id: str) -> bool:
        return await self._kv.delete(job_key(job_id)) > 0

    async def _all_ids(self) -> list[str]:
        keys = await self._kv.scan_keys(job_key("*"))
        return [job_id_from_key(key) for key in keys if is_valid_job_key(key)]

    async def list_all(self, offset: int = 0, limit: int | None = None) -> list[Job]:
        jobs = [job for job in await self.get_many(await self._all_ids()) if job is not None]
        jobs.sort(key=lambda j: (-j.created_at.timestamp(), j.id))
        end = None if limit is None else offset + limit
        return jobs[offset:end]

    async def count(self) -> int:
        return len(await self._all_ids())

