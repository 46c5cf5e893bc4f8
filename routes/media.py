"""
Media sync routes.
"""

from typing import Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
import structlog

from exceptions import AppError
from jobs.queue import get_job_queue
from models.jobs import QUEUE_MEDIA, JOB_SYNC_MEDIA

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/media", tags=["Media"])


class MediaSyncRequest(BaseModel):
    prefer_url: Optional[str] = Field(None, description="Image that should lead the gallery")


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


@router.post("/{sku}/sync", status_code=202)
async def sync_media(sku: str, data: Optional[MediaSyncRequest] = None):
    """
    Queue a gallery re-sync for one SKU.

    Returns:
        job_id of the queued sync
    """
    try:
        prefer_url = data.prefer_url if data else None
        job = get_job_queue().enqueue(
            QUEUE_MEDIA,
            JOB_SYNC_MEDIA,
            {"sku": sku, "preferUrl": prefer_url}
        )
        return {"job_id": job.id, "status": job.status.value}
    except Exception as e:
        return handle_error(e)
