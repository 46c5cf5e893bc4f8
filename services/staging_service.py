"""
Staging Ingestor.

Streams a CSV/XLSX source into the `staging_products` landing table under
a batch id. Rows are written in chunks as upserts on
(import_batch_id, row_number), so re-running an ingest for the same batch
rewrites the same rows instead of multiplying them.

Malformed rows (extra fields on the line, no SKU, unparseable price,
values that do not fit the products columns) are logged with their raw
content and returned as RowError entries; only I/O problems abort.
"""

from pathlib import Path
from typing import Optional, Union
import structlog

from config import get_supabase_client, settings
from exceptions import DatabaseError
from models.imports import IngestReport, RowError
from models.staging import StagingRow
from parsers.catalog_parser import iter_source_rows, normalize_row

logger = structlog.get_logger(__name__)

STAGING_TABLE = "staging_products"
STAGING_CONFLICT_KEY = "import_batch_id,row_number"


class StagingService:
    """
    Staging table access.

    Core methods:
    - ingest: Source file → staging rows for one batch
    - get_batch_rows: All staged rows of a batch, in source order
    """

    def __init__(self, chunk_size: Optional[int] = None):
        self.db = get_supabase_client()
        self.table = STAGING_TABLE
        self.chunk_size = chunk_size or settings.staging_chunk_size

    # ===================
    # WRITE
    # ===================

    def ingest(self, source: Union[str, Path], batch_id: str) -> IngestReport:
        """
        Read a source file into staging.

        Args:
            source: CSV or XLSX path
            batch_id: Batch identifier the rows are tagged with

        Returns:
            IngestReport with counts and row-level errors

        Raises:
            ImportSourceError: Unsupported format
            ImportSourceReadError: Unreadable or truncated file
            DatabaseError: Staging write failed
        """
        logger.info("staging_ingest_started", batch_id=batch_id, source=str(source))

        report = IngestReport(batch_id=batch_id)
        pending: list[dict] = []

        for raw in iter_source_rows(source, chunk_size=self.chunk_size):
            report.rows_read += 1
            normalized = normalize_row(raw, batch_id)

            if isinstance(normalized, RowError):
                logger.warning(
                    "staging_row_rejected",
                    batch_id=batch_id,
                    row_number=normalized.row_number,
                    field=normalized.field,
                    error=normalized.error,
                    raw=raw.values
                )
                report.errors.append(normalized)
                continue

            pending.append(normalized.to_record())
            if len(pending) >= self.chunk_size:
                report.rows_staged += self._write_chunk(batch_id, pending)
                pending = []

        if pending:
            report.rows_staged += self._write_chunk(batch_id, pending)

        logger.info(
            "staging_ingest_complete",
            batch_id=batch_id,
            rows_read=report.rows_read,
            rows_staged=report.rows_staged,
            errors=len(report.errors)
        )

        return report

    def _write_chunk(self, batch_id: str, records: list[dict]) -> int:
        try:
            self.db.table(self.table).upsert(
                records,
                on_conflict=STAGING_CONFLICT_KEY
            ).execute()
        except Exception as e:
            logger.error(
                "staging_write_failed",
                batch_id=batch_id,
                rows=len(records),
                error=str(e)
            )
            raise DatabaseError("upsert", str(e), {"table": self.table, "batch_id": batch_id})

        logger.debug("staging_chunk_written", batch_id=batch_id, rows=len(records))
        return len(records)

    # ===================
    # READ
    # ===================

    def get_batch_rows(self, batch_id: str, page_size: int = 1000) -> list[StagingRow]:
        """
        Get every staged row of a batch, ordered by source row.

        Pages through the table so large batches are not limited by the
        API's default row cap.
        """
        rows: list[StagingRow] = []
        offset = 0

        try:
            while True:
                result = (
                    self.db.table(self.table)
                    .select("*")
                    .eq("import_batch_id", batch_id)
                    .order("row_number")
                    .range(offset, offset + page_size - 1)
                    .execute()
                )
                page = result.data or []
                rows.extend(StagingRow.model_validate(r) for r in page)
                if len(page) < page_size:
                    break
                offset += page_size
        except Exception as e:
            logger.error("staging_read_failed", batch_id=batch_id, error=str(e))
            raise DatabaseError("select", str(e), {"table": self.table, "batch_id": batch_id})

        logger.debug("staging_rows_loaded", batch_id=batch_id, rows=len(rows))
        return rows
