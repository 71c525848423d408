"""CSV import/export for jobs.

Import keeps the ``id`` column: a known id updates that job, an unknown one
creates a job with that id, a missing one creates a job with a fresh id. All
writes go through JobService so the status index stays in step.
"""
from __future__ import annotations

import csv
import io
import logging
import uuid
from datetime import date

from pydantic import AnyHttpUrl, Field
from pydantic import ValidationError as PydanticValidationError

from jobtracker.errors import StorageError, ValidationError
from jobtracker.keys import is_uuid
from jobtracker.models.base import CamelModel
from jobtracker.models.job import Job, JobStatus
from jobtracker.models.response import ImportResult, ImportRowError
from jobtracker.services.job_service import JobService

logger = logging.getLogger(__name__)

CSV_COLUMNS = [
    "id",
    "jobTitle",
    "companyName",
    "applicationLink",
    "companyLink",
    "requirements",
    "jobDescription",
    "status",
    "notes",
    "appliedDate",
    "createdAt",
    "updatedAt",
]


class ImportRow(CamelModel):
    """One CSV row; looser than JobCreate (only title, company and link are required)."""

    job_title: str = Field(min_length=1, max_length=200)
    company_name: str = Field(min_length=1, max_length=200)
    application_link: AnyHttpUrl
    company_link: AnyHttpUrl | None = None
    requirements: str = ""
    job_description: str = ""
    status: JobStatus = JobStatus.PENDING
    notes: str = ""
    applied_date: date = Field(default_factory=date.today)


def _job_to_row(job: Job) -> dict[str, str]:
    data = job.model_dump(mode="json", by_alias=True)
    return {col: "" if data.get(col) is None else str(data[col]) for col in CSV_COLUMNS}


def _row_error(exc: PydanticValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
    )


class CsvService:
    def __init__(self, jobs: JobService) -> None:
        self._jobs = jobs

    async def export_csv(self) -> str:
        jobs = await self._jobs.all_jobs()
        buf = io.StringIO()
        writer = csv.DictWriter(buf, fieldnames=CSV_COLUMNS)
        writer.writeheader()
        for job in jobs:
            writer.writerow(_job_to_row(job))
        logger.info("Exported %d jobs to CSV", len(jobs))
        return buf.getvalue()

    def parse(self, text: str) -> list[dict[str, str]]:
        """Parse CSV text into trimmed rows, skipping blank lines."""
        try:
            reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")))
            rows = []
            for raw in reader:
                row = {
                    (k or "").strip(): (v or "").strip() if isinstance(v, str) else ""
                    for k, v in raw.items()
                    if k is not None
                }
                if any(row.values()):
                    rows.append(row)
        except csv.Error as e:
            raise ValidationError(f"CSV parsing failed: {e}") from e
        if not rows:
            raise ValidationError(
                "CSV contains no job rows",
                [{"field": "file", "message": "CSV contains no job rows"}],
            )
        return rows

    async def import_csv(self, text: str) -> ImportResult:
        rows = self.parse(text)
        result = ImportResult()

        for number, row in enumerate(rows, start=1):
            job_id = row.pop("id", "") or row.pop("_id", "")
            for key in ("createdAt", "updatedAt"):
                row.pop(key, None)
            if job_id and not is_uuid(job_id):
                result.failed += 1
                result.errors.append(ImportRowError(row=number, error=f"Invalid id format: {job_id}"))
                continue
            if job_id:
                job_id = str(uuid.UUID(job_id))
            try:
                present = {k: v for k, v in row.items() if v}
                record = ImportRow.model_validate(present).model_dump(mode="json")
            except PydanticValidationError as e:
                result.failed += 1
                result.errors.append(ImportRowError(row=number, error=_row_error(e)))
                continue

            try:
                if job_id and await self._jobs.get(job_id) is not None:
                    await self._jobs.update(job_id, record)
                    result.updated += 1
                else:
                    await self._jobs.create(record, job_id=job_id or None)
                    result.created += 1
            except (StorageError, ValidationError) as e:
                logger.error("CSV row %d failed to import: %s", number, e)
                result.failed += 1
                result.errors.append(ImportRowError(row=number, error=str(e)))

        result.success = result.failed < len(rows)
        logger.info(
            "CSV import: %d created, %d updated, %d failed",
            result.created,
            result.updated,
            result.failed,
        )
        return result
