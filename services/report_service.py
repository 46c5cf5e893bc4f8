"""
Import error reports.

Row-level errors of an import are written as CSV to Supabase Storage at
<reports_bucket>/<batch_id>-errors.csv. Columns: row, sku, field, error,
raw (the source row as JSON).
"""

import json
from typing import Optional
import structlog

import pandas as pd

from config import get_supabase_client, settings
from exceptions import ReportUploadError
from models.imports import RowError

logger = structlog.get_logger(__name__)

REPORT_COLUMNS = ["row", "sku", "field", "error", "raw"]


def render_error_csv(errors: list[RowError]) -> str:
    """Render row errors as CSV text (header included)."""
    frame = pd.DataFrame(
        [
            {
                "row": e.row_number,
                "sku": e.sku or "",
                "field": e.field,
                "error": e.error,
                "raw": json.dumps(e.raw, ensure_ascii=False, default=str) if e.raw else "",
            }
            for e in errors
        ],
        columns=REPORT_COLUMNS,
    )
    return frame.to_csv(index=False)


class ReportService:
    """Uploads error reports and returns their public URL."""

    def __init__(self, bucket: Optional[str] = None):
        self.db = get_supabase_client()
        self.bucket = bucket or settings.reports_bucket

    def report_path(self, batch_id: str) -> str:
        return f"{batch_id}-errors.csv"

    def write_error_report(self, batch_id: str, errors: list[RowError]) -> Optional[str]:
        """
        Upload the error report for a batch.

        Args:
            batch_id: Import batch
            errors: Row errors from ingest and merge

        Returns:
            Public URL of the report, or None when there are no errors

        Raises:
            ReportUploadError: If the upload fails
        """
        if not errors:
            return None

        path = self.report_path(batch_id)
        content = render_error_csv(errors).encode("utf-8")

        logger.debug(
            "uploading_error_report",
            bucket=self.bucket,
            path=path,
            errors=len(errors),
            size_bytes=len(content)
        )

        try:
            storage = self.db.storage.from_(self.bucket)
            storage.upload(
                path,
                content,
                file_options={"content-type": "text/csv", "upsert": "true"}
            )
            url = storage.get_public_url(path)
        except Exception as e:
            logger.error(
                "error_report_upload_failed",
                bucket=self.bucket,
                path=path,
                error=str(e)
            )
            raise ReportUploadError(f"{self.bucket}/{path}", str(e)) from e

        logger.info("error_report_uploaded", batch_id=batch_id, path=path, errors=len(errors))
        return url
