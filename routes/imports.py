"""
Import API routes.

Both endpoints only enqueue work; progress and results are read from
GET /api/jobs/{job_id}.
"""

import uuid
from pathlib import Path

from fastapi import APIRouter, UploadFile, File
from fastapi.responses import JSONResponse
import structlog

from config import settings
from exceptions import AppError, ImportSourceError
from jobs.queue import get_job_queue
from models.jobs import ImportUrlJob, QUEUE_IMPORT, JOB_IMPORT_CSV, JOB_IMPORT_URL
from parsers.catalog_parser import SUPPORTED_EXTENSIONS

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/imports", tags=["Imports"])

UPLOAD_CHUNK_BYTES = 1024 * 1024


def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(status_code=e.status_code, content=e.to_dict())
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


@router.post("/csv", status_code=202)
async def import_file(file: UploadFile = File(..., description="CSV or XLSX product sheet")):
    """
    Upload a product sheet and queue it for import.

    The file is stored under upload_dir as <batch_id><ext>.

    Returns:
        job_id and batch_id of the queued import
    """
    try:
        suffix = Path(file.filename or "").suffix.lower()
        if suffix not in SUPPORTED_EXTENSIONS:
            raise ImportSourceError(
                f"Unsupported import file type '{suffix or file.filename}'",
                details={"supported": sorted(SUPPORTED_EXTENSIONS)}
            )

        batch_id = str(uuid.uuid4())
        settings.upload_dir.mkdir(parents=True, exist_ok=True)
        target = settings.upload_dir / f"{batch_id}{suffix}"

        size = 0
        with target.open("wb") as out:
            while True:
                chunk = await file.read(UPLOAD_CHUNK_BYTES)
                if not chunk:
                    break
                out.write(chunk)
                size += len(chunk)

        logger.info(
            "import_file_uploaded",
            batch_id=batch_id,
            filename=file.filename,
            size_bytes=size
        )

        job = get_job_queue().enqueue(
            QUEUE_IMPORT,
            JOB_IMPORT_CSV,
            {"csvPath": str(target), "batchId": batch_id}
        )
        return {"job_id": job.id, "batch_id": batch_id, "status": job.status.value}

    except Exception as e:
        return handle_error(e)


@router.post("/url", status_code=202)
async def import_url(data: ImportUrlJob):
    """
    Queue a single-product import from a source URL.

    Returns:
        job_id of the queued import
    """
    try:
        job = get_job_queue().enqueue(
            QUEUE_IMPORT,
            JOB_IMPORT_URL,
            data.model_dump(by_alias=True, exclude_none=True)
        )
        return {"job_id": job.id, "status": job.status.value}

    except Exception as e:
        return handle_error(e)
