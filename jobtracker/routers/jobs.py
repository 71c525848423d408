"""Job REST endpoints."""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile, status

from jobtracker.dependencies import get_csv_service, get_job_service
from jobtracker.errors import NotFoundError, ValidationError
from jobtracker.models.job import Job, JobCreate, JobStatus, JobUpdate
from jobtracker.models.response import ApiResponse, ImportResult, IndexRebuildReport
from jobtracker.services.csv_service import CsvService
from jobtracker.services.job_service import JobService

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model_exclude_none=True)
async def create_job(
    body: JobCreate, jobs: JobService = Depends(get_job_service)
) -> ApiResponse[Job]:
    job = await jobs.create(body)
    return ApiResponse(success=True, data=job, message="Job created successfully")


@router.get("", response_model_exclude_none=True)
async def list_jobs(
    page: int = Query(1, description="Page number, starts at 1"),
    limit: int = Query(10, description="Items per page, clamped to 1-100"),
    jobs: JobService = Depends(get_job_service),
) -> ApiResponse[list[Job]]:
    items, pagination = await jobs.list_jobs(page, limit)
    return ApiResponse(
        success=True,
        data=items,
        message=f"Retrieved {len(items)} job(s) from page {pagination.current_page}",
        pagination=pagination,
    )


# Fixed paths must be registered before /{job_id}.
@router.get("/status/{job_status}", response_model_exclude_none=True)
async def list_jobs_by_status(
    job_status: JobStatus, jobs: JobService = Depends(get_job_service)
) -> ApiResponse[list[Job]]:
    items = await jobs.list_by_status(job_status)
    return ApiResponse(
        success=True,
        data=items,
        message=f"Retrieved {len(items)} job(s) with status {job_status.value}",
    )


@router.get("/export")
async def export_jobs(csv_service: CsvService = Depends(get_csv_service)) -> Response:
    content = await csv_service.export_csv()
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=jobs.csv"},
    )


@router.post("/import", response_model_exclude_none=True)
async def import_jobs(
    file: UploadFile | None = File(None),
    csv_service: CsvService = Depends(get_csv_service),
) -> ApiResponse[ImportResult]:
    if file is None:
        raise ValidationError("No file uploaded", [{"field": "file", "message": "No file uploaded"}])
    raw = await file.read()
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ValidationError("CSV file must be UTF-8 encoded") from e

    result = await csv_service.import_csv(text)
    return ApiResponse(
        success=result.success,
        data=result,
        message=(
            f"Import completed: {result.created} created, "
            f"{result.updated} updated, {result.failed} failed"
        ),
    )


@router.post("/index/rebuild", response_model_exclude_none=True)
async def rebuild_index(jobs: JobService = Depends(get_job_service)) -> ApiResponse[IndexRebuildReport]:
    report = await jobs.rebuild_index()
    return ApiResponse(success=True, data=report, message="Status index rebuilt")


@router.get("/{job_id}", response_model_exclude_none=True)
async def get_job(job_id: UUID, jobs: JobService = Depends(get_job_service)) -> ApiResponse[Job]:
    job = await jobs.get(str(job_id))
    if job is None:
        raise NotFoundError("Job not found")
    return ApiResponse(success=True, data=job, message="Job retrieved successfully")


@router.put("/{job_id}", response_model_exclude_none=True)
async def update_job(
    job_id: UUID, body: JobUpdate, jobs: JobService = Depends(get_job_service)
) -> ApiResponse[Job]:
    job = await jobs.update(str(job_id), body)
    if job is None:
        raise NotFoundError("Job not found")
    return ApiResponse(success=True, data=job, message="Job updated successfully")


@router.delete("/{job_id}", response_model_exclude_none=True)
async def delete_job(job_id: UUID, jobs: JobService = Depends(get_job_service)) -> ApiResponse[None]:
    if not await jobs.delete(str(job_id)):
        raise NotFoundError("Job not found")
    return ApiResponse(success=True, message="Job deleted successfully")
