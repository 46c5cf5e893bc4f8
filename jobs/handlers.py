"""
Job handlers for the import and media queues.

Import queue:
    csv  {csvPath, batchId}  → ingest to staging, merge, upload error report
    url  {sourceUrl, sku?, price?, ...} → single-product upsert
Media queue:
    sync-media {sku, preferUrl?} → per-SKU gallery reconciliation

Handlers return a JSON-friendly dict stored as the job result. Every
handler is safe to re-run from scratch.
"""

from typing import Any, Type, TypeVar
import structlog
from pydantic import BaseModel, ValidationError as PydanticValidationError

from exceptions import InvalidJobPayloadError, UnknownJobError
from jobs.queue import Job
from models.jobs import (
    ImportCsvJob,
    ImportUrlJob,
    MediaJob,
    JOB_IMPORT_CSV,
    JOB_IMPORT_URL,
    JOB_SYNC_MEDIA,
    QUEUE_IMPORT,
    QUEUE_MEDIA,
)
from services.catalog_merge_service import CatalogMergeService
from services.media_sync_service import MediaSyncService
from services.report_service import ReportService
from services.staging_service import StagingService

logger = structlog.get_logger(__name__)

PayloadT = TypeVar("PayloadT", bound=BaseModel)

# Share of progress reported once staging is done; merge fills the rest
INGEST_PROGRESS = 0.2


def parse_payload(model: Type[PayloadT], job: Job) -> PayloadT:
    """Validate a job payload, raising InvalidJobPayloadError."""
    try:
        return model.model_validate(job.data)
    except PydanticValidationError as e:
        raise InvalidJobPayloadError(
            job.name,
            e.errors(include_url=False, include_context=False)
        ) from e


def run_csv_import(job: Job) -> dict[str, Any]:
    """Ingest, merge and report one CSV/XLSX batch."""
    payload = parse_payload(ImportCsvJob, job)
    batch_id = payload.batch_id

    ingest = StagingService().ingest(payload.csv_path, batch_id)
    job.update_progress(INGEST_PROGRESS)

    merge = CatalogMergeService().merge_batch(
        batch_id,
        on_progress=lambda f: job.update_progress(INGEST_PROGRESS + (1 - INGEST_PROGRESS) * f)
    )

    errors = ingest.errors + merge.errors
    report_url = ReportService().write_error_report(batch_id, errors)

    logger.info(
        "csv_import_finished",
        batch_id=batch_id,
        rows_read=ingest.rows_read,
        upserted=merge.upserted,
        errors=len(errors),
        report_url=report_url
    )

    return {
        "batch_id": batch_id,
        "rows_read": ingest.rows_read,
        "rows_staged": ingest.rows_staged,
        "upserted": merge.upserted,
        "errors": len(errors),
        "media_jobs": merge.media_jobs,
        "view_refreshed": merge.view_refreshed,
        "report_url": report_url,
    }


def run_url_import(job: Job) -> dict[str, Any]:
    """Create or update one product from a URL submission."""
    payload = parse_payload(ImportUrlJob, job)
    result = CatalogMergeService().upsert_from_url(payload)
    return result.model_dump()


def handle_import_job(job: Job) -> dict[str, Any]:
    """Dispatch an import-queue job by name."""
    if job.name == JOB_IMPORT_CSV:
        return run_csv_import(job)
    if job.name == JOB_IMPORT_URL:
        return run_url_import(job)
    raise UnknownJobError(QUEUE_IMPORT, job.name)


def handle_media_job(job: Job) -> dict[str, Any]:
    """Run one per-SKU media sync."""
    if job.name != JOB_SYNC_MEDIA:
        raise UnknownJobError(QUEUE_MEDIA, job.name)

    payload = parse_payload(MediaJob, job)
    result = MediaSyncService().sync_media(payload.sku, payload.prefer_url)
    return result.model_dump()


HANDLERS = {
    QUEUE_IMPORT: handle_import_job,
    QUEUE_MEDIA: handle_media_job,
}
