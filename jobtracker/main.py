"""FastAPI entry point for the job tracker backend."""
from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from jobtracker.config import settings
from jobtracker.dependencies import Services, build_services, get_services
from jobtracker.errors import NotFoundError, RemoteServiceError, StorageError, ValidationError
from jobtracker.routers import jobs, knowledge
from jobtracker.services.job_service import utcnow

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting job tracker backend on %s:%d (%s)", settings.host, settings.port, settings.environment)
    services = await build_services(settings)
    app.state.services = services

    try:
        purged = await services.cache.purge_expired(utcnow())
        logger.info("Purged %d expired cache entries", purged)
    except StorageError as e:
        logger.warning("Cache cleanup failed at startup: %s", e)

    if settings.rebuild_index_on_startup:
        report = await services.jobs.rebuild_index()
        logger.info("Status index rebuilt at startup: %s", report.model_dump())

    yield

    # Shutdown
    await services.close()
    logger.info("Job tracker backend stopped")


app = FastAPI(
    title="Job Tracker",
    description="Job application tracking backend",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.environment != "production":

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.monotonic()
        response = await call_next(request)
        logger.info(
            "%s %s -> %d (%dms)",
            request.method,
            request.url.path,
            response.status_code,
            int((time.monotonic() - started) * 1000),
        )
        return response


def _error(status_code: int, error: str, details: list[dict[str, str]] | None = None) -> JSONResponse:
    body: dict = {"success": False, "error": error}
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body)


def _field_name(loc: tuple) -> str:
    parts = [str(p) for p in loc]
    if len(parts) > 1 and parts[0] in ("body", "query", "path"):
        parts = parts[1:]
    return ".".join(parts)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [{"field": _field_name(err["loc"]), "message": err["msg"]} for err in exc.errors()]
    return _error(400, "Validation failed", details)


@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return _error(400, str(exc), exc.details)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return _error(404, str(exc))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(StorageError)
async def storage_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    return _error(503, "Storage unavailable")


@app.exception_handler(RemoteServiceError)
async def remote_service_handler(request: Request, exc: RemoteServiceError) -> JSONResponse:
    logger.error("AI service failure on %s %s: %s", request.method, request.url.path, exc)
    return _error(502, f"AI service request failed: {exc}")


@app.exception_handler(Exception)
async def unhandled_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error(500, "Internal server error")


# Register routers
app.include_router(jobs.router)
app.include_router(knowledge.router)


@app.get("/api/health")
async def health(services: Services = Depends(get_services)) -> dict:
    try:
        kv_connected = await services.kv.ping()
    except StorageError:
        kv_connected = False
    active = services.settings
    return {
        "success": True,
        "message": "Job tracker backend is running",
        "environment": active.environment,
        "jobBackend": active.job_backend,
        "kvBackend": active.kv_backend,
        "kvConnected": kv_connected,
        "llmMode": active.llm_mode,
        "timestamp": utcnow().isoformat(),
    }


if __name__ == "__main__":
    uvicorn.run(
        "jobtracker.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
    )
