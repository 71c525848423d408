"""Job lifecycle: the only writer of job records, keeping the status index in step."""
from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from jobtracker.errors import StorageError, ValidationError
from jobtracker.models.job import Job, JobCreate, JobStatus, JobUpdate
from jobtracker.models.response import IndexRebuildReport, Pagination
from jobtracker.services.index_service import StatusIndex
from jobtracker.stores.job_store import JobStore

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
_READ_ONLY_FIELDS = {"id", "created_at", "updated_at"}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_validation_error(exc: PydanticValidationError) -> ValidationError:
    details = [
        {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return ValidationError("; ".join(d["message"] for d in details), details)


class JobService:
    def __init__(
        self,
        store: JobStore,
        index: StatusIndex,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._index = index
        self._clock = clock

    def _next_timestamp(self, previous: datetime | None = None) -> datetime:
        now = self._clock()
        if previous is not None and now <= previous:
            now = previous + timedelta(microseconds=1)
        return now

    async def create(self, data: JobCreate | dict[str, Any], job_id: str | None = None) -> Job:
        record = data.to_record() if isinstance(data, JobCreate) else dict(data)
        for key in _READ_ONLY_FIELDS:
            record.pop(key, None)
        now = self._next_timestamp()
        try:
            job = Job.model_validate(
                {**record, "id": job_id or str(uuid.uuid4()), "created_at": now, "updated_at": now}
            )
        except PydanticValidationError as e:
            raise _to_validation_error(e) from e

        await self._store.insert(job)
        try:
            await self._index.on_create(job.id, job.status)
        except StorageError as e:
            logger.error("Job %s created but not indexed: %s", job.id, e)
        logger.info("Created job %s (%s at %s)", job.id, job.job_title, job.company_name)
        return job

    async def get(self, job_id: str) -> Job | None:
        return await self._store.get(job_id)

    async def update(self, job_id: str, changes: JobUpdate | dict[str, Any]) -> Job | None:
        """Merge ``changes`` over the stored job. Returns None if the job does not exist."""
        fields = changes.changes() if isinstance(changes, JobUpdate) else dict(changes)
        for key in _READ_ONLY_FIELDS:
            fields.pop(key, None)

        existing = await self._store.get(job_id)
        if existing is None:
            return None
        old_status = existing.status

        try:
            merged = Job.model_validate(
                {**existing.model_dump(), **fields, "updated_at": self._next_timestamp(existing.updated_at)}
            )
        except PydanticValidationError as e:
            raise _to_validation_error(e) from e

        updates = {key: getattr(merged, key) for key in fields}
        updates["updated_at"] = merged.updated_at
        updated = await self._store.update_fields(job_id, updates)
        if updated is None:
            # deleted between the read and the write
            return None

        if updated.status != old_status:
            try:
                await self._index.on_status_change(job_id, old_status, updated.status)
            except StorageError as e:
                logger.error(
                    "Job %s moved %s -> %s but the status index was not updated: %s",
                    job_id,
                    old_status.value,
                    updated.status.value,
                    e,
                )
        return updated

    async def delete(self, job_id: str) -> bool:
        existing = await self._store.get(job_id)
        if existing is None:
            return False
        deleted = await self._store.delete(job_id)
        try:
            await self._index.on_delete(job_id, existing.status)
        except StorageError as e:
            logger.error("Job %s deleted but still indexed: %s", job_id, e)
        if deleted:
            logger.info("Deleted job %s", job_id)
        return deleted

    async def list_by_status(self, status: JobStatus) -> list[Job]:
        ids = sorted(await self._index.members(status))
        jobs: list[Job] = []
        for job_id, job in zip(ids, await self._store.get_many(ids)):
            if job is None:
                logger.debug("Index lists job %s under %s but it no longer exists", job_id, status.value)
            elif job.status != status:
                logger.debug("Index lists job %s under %s but it is %s", job_id, status.value, job.status.value)
            else:
                jobs.append(job)
        return jobs

    async def list_jobs(self, page: int = 1, limit: int = 10) -> tuple[list[Job], Pagination]:
        page = max(1, page)
        limit = max(1, min(MAX_PAGE_SIZE, limit))
        total = await self._store.count()
        jobs = await self._store.list_all(offset=(page - 1) * limit, limit=limit)
        return jobs, Pagination.build(page, limit, total)

    async def all_jobs(self) -> list[Job]:
        return await self._store.list_all()

    async def rebuild_index(self) -> IndexRebuildReport:
        return await self._index.rebuild(await self.all_jobs())
