"""Image labeler backend service."""

from __future__ import annotations

import logging
import re
import time
import uuid
from contextlib import asynccontextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool

import config
from image_processor import ImageProcessor
from job_store import JobNotFoundError, JobStore
from models import Job
from orchestrator import EmptyBatchError, JobOrchestrator
from storage_client import StorageError, build_storage, discard_stored
from vision_client import VisionService

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "X-Request-ID"
HTTP_ERROR_CODE_MAP = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    413: "FILE_TOO_LARGE",
    422: "VALIDATION_ERROR",
    503: "SERVICE_UNAVAILABLE",
}
MEDIA_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
}


def current_request_id() -> str:
    """Return current request ID from context."""
    request_id = (request_id_ctx.get() or "").strip()
    return request_id or "unknown"


def build_error_payload(
    *,
    code: str,
    message: str,
    request_id: str | None = None,
    details: Dict[str, Any] | None = None,
) -> Dict[str, Any]:
    """Build structured error response payload."""
    error: Dict[str, Any] = {
        "code": code,
        "message": message,
        "request_id": request_id or current_request_id(),
    }
    if details is not None:
        error["details"] = details
    return {"error": error}


def error_response(request: Request, status_code: int, code: str, message: str, details: Dict[str, Any] | None = None) -> JSONResponse:
    request_id = getattr(request.state, "request_id", current_request_id())
    response = JSONResponse(
        status_code=status_code,
        content=build_error_payload(code=code, message=message, request_id=request_id, details=details),
    )
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


def original_filename(filename: Optional[str]) -> str:
    """Keep the client name for display, minus any directory part and control characters."""
    name = re.sub(r"[\x00-\x1f]", "", Path(filename or "").name)
    return name or "unnamed_image"


async def request_context_middleware(request: Request, call_next: Callable[[Request], Any]) -> Any:
    """Attach request IDs and log requests."""
    request_id = (request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex).strip()[:128]
    context_token = request_id_ctx.set(request_id)
    request.state.request_id = request_id

    started_at = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        status_code = response.status_code
        return response
    finally:
        duration_ms = (time.perf_counter() - started_at) * 1000
        logger.info(
            "request_id=%s method=%s path=%s status=%s duration_ms=%.2f",
            request_id,
            request.method,
            request.url.path,
            status_code,
            duration_ms,
        )
        request_id_ctx.reset(context_token)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return structured payloads for HTTP errors."""
    error_code = HTTP_ERROR_CODE_MAP.get(exc.status_code, "HTTP_ERROR")
    return error_response(request, exc.status_code, error_code, str(exc.detail), {"status_code": exc.status_code})


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return structured payloads for validation errors."""
    return error_response(
        request,
        422,
        "VALIDATION_ERROR",
        "Request validation failed.",
        {"status_code": 422, "errors": exc.errors()},
    )


async def job_not_found_handler(request: Request, exc: JobNotFoundError) -> JSONResponse:
    logger.info("Job not found job_id=%s", exc.job_id)
    return error_response(request, 404, "NOT_FOUND", "Job not found.", {"status_code": 404, "job_id": exc.job_id})


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all error handler for consistent API error responses."""
    request_id = getattr(request.state, "request_id", current_request_id())
    logger.exception("Unhandled exception request_id=%s path=%s", request_id, request.url.path)
    return error_response(request, 500, "INTERNAL_ERROR", "Internal server error.")


def create_app(
    store: Optional[JobStore] = None,
    storage: Optional[Any] = None,
    detector: Optional[Any] = None,
    job_workers: int = config.JOB_WORKERS,
    image_workers: int = config.IMAGE_WORKERS,
) -> FastAPI:
    """Build the API with its job store, storage and detection provider."""
    store = store if store is not None else JobStore()
    storage = storage if storage is not None else build_storage()
    detector = detector if detector is not None else VisionService()
    orchestrator = JobOrchestrator(
        store,
        ImageProcessor(storage, detector),
        job_workers=job_workers,
        image_workers=image_workers,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        orchestrator.shutdown(wait=True)

    app = FastAPI(title="Image Labeler", version="1.0.0", lifespan=lifespan)
    app.state.store = store
    app.state.storage = storage
    app.state.detector = detector
    app.state.orchestrator = orchestrator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.ALLOWED_ORIGINS,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(request_context_middleware)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(JobNotFoundError, job_not_found_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.get("/health")
    def health() -> Dict[str, Any]:
        """Health endpoint with non-sensitive service status."""
        snapshot = getattr(detector, "health_snapshot", None)
        return {
            "message": "Image labeler backend is running.",
            "jobs": len(store),
            "pending_batches": orchestrator.pending_batches(),
            "storage": storage.health_snapshot(),
            "vision": snapshot() if snapshot else None,
            "workers": {
                "job_workers": orchestrator.job_workers,
                "image_workers": orchestrator.image_workers,
            },
            "limits": {
                "max_files": config.MAX_FILES,
                "max_file_size_mb": config.MAX_FILE_SIZE_MB,
            },
        }

    @app.post("/api/", response_model=Job)
    @app.post("/api/jobs", response_model=Job)
    async def upload_images(images: List[UploadFile] = File(...)) -> Job:
        """Store the uploaded files and return the pending job immediately."""
        if not images:
            raise HTTPException(status_code=400, detail="No files uploaded.")
        if len(images) > config.MAX_FILES:
            raise HTTPException(status_code=400, detail=f"Too many files. Maximum allowed is {config.MAX_FILES}.")

        # Every file is read and size-checked before anything is stored.
        payloads = []
        for upload in images:
            name = original_filename(upload.filename)
            raw_bytes = await upload.read()
            if len(raw_bytes) > config.MAX_FILE_SIZE_BYTES:
                raise HTTPException(
                    status_code=413,
                    detail=f"File {name} exceeds {config.MAX_FILE_SIZE_MB} MB.",
                )
            payloads.append((name, raw_bytes))

        uploads = []
        try:
            for name, raw_bytes in payloads:
                storage_ref = await run_in_threadpool(storage.save, name, raw_bytes)
                uploads.append((name, storage_ref))
        except StorageError as exc:
            logger.exception("Storing upload failed for %s: %s", name, exc)
            await run_in_threadpool(discard_stored, storage, [ref for _, ref in uploads])
            raise HTTPException(status_code=503, detail="Could not store uploaded file.") from exc

        try:
            return orchestrator.submit(uploads)
        except EmptyBatchError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.get("/api/", response_model=List[Job])
    @app.get("/api/jobs", response_model=List[Job])
    def list_jobs() -> List[Job]:
        """Return every job, newest first."""
        jobs = orchestrator.fetch_all()
        logger.info("Retrieved %d jobs.", len(jobs))
        return jobs

    @app.get("/jobs/{job_id}", response_model=Job)
    @app.get("/api/jobs/{job_id}", response_model=Job)
    def get_job(job_id: str) -> Job:
        """Return the current job snapshot for polling clients."""
        return orchestrator.fetch_one(job_id)

    @app.get("/storage/{storage_ref}")
    def get_stored_image(storage_ref: str) -> Response:
        """Serve stored raw bytes back to clients."""
        try:
            data = storage.read(storage_ref)
        except StorageError as exc:
            raise HTTPException(status_code=404, detail="Image not found.") from exc
        media_type = MEDIA_TYPES.get(Path(storage_ref).suffix.lower(), "application/octet-stream")
        return Response(content=data, media_type=media_type)

    return app


_default_app: Optional[FastAPI] = None


def __getattr__(name: str) -> Any:
    """Build `main:app` for uvicorn on first access instead of at import."""
    global _default_app
    if name != "app":
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    if _default_app is None:
        _default_app = create_app()
    return _default_app
