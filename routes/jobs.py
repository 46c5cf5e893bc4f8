"""
Job status routes.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
import structlog

from exceptions import AppError
from jobs.queue import get_job_queue
from models.jobs import JobState

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/jobs", tags=["Jobs"])


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


@router.get("/{job_id}", response_model=JobState)
async def get_job(job_id: str):
    """
    Get status, attempts, progress and result of a job.

    Raises:
        404: Job not found
    """
    try:
        return get_job_queue().get(job_id).to_state()
    except Exception as e:
        return handle_error(e)
