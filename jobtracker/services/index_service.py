"""Status index: a set of job ids per status plus a set of every job id.

The index is derived from the primary job records and lets "jobs by status"
read one set instead of scanning every record. Each set operation is
idempotent, so a partially applied update can be retried, and ``rebuild``
recomputes everything from the primary records.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable

from jobtracker.errors import StorageError
from jobtracker.keys import all_jobs_set_key, status_set_key
from jobtracker.models.job import Job, JobStatus
from jobtracker.models.response import IndexRebuildReport
from jobtracker.stores.kv_store import KeyValueStore

logger = logging.getLogger(__name__)


class StatusIndex:
    def __init__(self, kv: KeyValueStore) -> None:
        self._kv = kv

    async def on_create(self, job_id: str, status: JobStatus) -> None:
        await self._kv.add_to_set(all_jobs_set_key(), job_id)
        await self._kv.add_to_set(status_set_key(status), job_id)

    async def on_status_change(self, job_id: str, old: JobStatus, new: JobStatus) -> None:
        """Move ``job_id`` from the ``old`` status set to the ``new`` one.

        The add happens first. If it fails nothing has changed. If the add
        succeeds and the remove fails, the id sits in both sets until a retry
        or a rebuild; that state is logged before the error is re-raised.
        """
        if old == new:
            return
        await self._kv.add_to_set(status_set_key(new), job_id)
        try:
            await self._kv.remove_from_set(status_set_key(old), job_id)
        except StorageError:
            logger.warning(
                "Job %s is now indexed under both %s and %s; run an index rebuild",
                job_id,
                old.value,
                new.value,
            )
            raise

    async def on_delete(self, job_id: str, status: JobStatus) -> None:
        await self._kv.remove_from_set(status_set_key(status), job_id)
        await self._kv.remove_from_set(all_jobs_set_key(), job_id)

    async def members(self, status: JobStatus) -> set[str]:
        return await self._kv.members_of(status_set_key(status))

    async def all_ids(self) -> set[str]:
        return await self._kv.members_of(all_jobs_set_key())

    async def find_conflicts(self) -> dict[str, list[JobStatus]]:
        """Ids that appear in more than one status set."""
        seen: dict[str, list[JobStatus]] = {}
        for status in JobStatus:
            for job_id in await self.members(status):
                seen.setdefault(job_id, []).append(status)
        return {job_id: statuses for job_id, statuses in seen.items() if len(statuses) > 1}

    async def _sync_set(self, set_key: str, wanted: set[str], report: IndexRebuildReport) -> None:
        current = await self._kv.members_of(set_key)
        for job_id in wanted - current:
            await self._kv.add_to_set(set_key, job_id)
            report.added += 1
        for job_id in current - wanted:
            await self._kv.remove_from_set(set_key, job_id)
            report.removed += 1

    async def rebuild(self, jobs: Iterable[Job]) -> IndexRebuildReport:
        """Make every set match ``jobs`` exactly."""
        by_status: dict[JobStatus, set[str]] = {status: set() for status in JobStatus}
        all_ids: set[str] = set()
        for job in jobs:
            all_ids.add(job.id)
            by_status[job.status].add(job.id)

        report = IndexRebuildReport(jobs_scanned=len(all_ids))
        await self._sync_set(all_jobs_set_key(), all_ids, report)
        for status, ids in by_status.items():
            await self._sync_set(status_set_key(status), ids, report)
        logger.info(
            "Status index rebuilt: %d jobs, %d entries added, %d removed",
            report.jobs_scanned,
            report.added,
            report.removed,
        )
        return report
