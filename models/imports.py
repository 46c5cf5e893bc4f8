"""
Import and sync report schemas.
"""

from typing import Any, Literal, Optional
from pydantic import BaseModel, Field


class RowError(BaseModel):
    """
    A single row-level data problem.

    Collected instead of raised; surfaced in the CSV error report.
    """
    row_number: int = Field(0, ge=0, description="Source row (0 when unknown)")
    sku: Optional[str] = None
    field: str
    error: str
    raw: Optional[dict[str, Any]] = None


class IngestReport(BaseModel):
    """Result of reading one source file into staging."""
    batch_id: str
    rows_read: int = 0
    rows_staged: int = 0
    errors: list[RowError] = Field(default_factory=list)


class MergeReport(BaseModel):
    """Result of merging one staging batch into the catalog."""
    batch_id: str
    rows: int = 0
    upserted: int = 0
    errors: list[RowError] = Field(default_factory=list)
    media_jobs: int = 0
    view_refreshed: bool = False


class UrlImportResult(BaseModel):
    """Result of the single-product URL import path."""
    product_id: int
    sku: str
    image_url: Optional[str] = None
    model_url: Optional[str] = None


class MediaSyncResult(BaseModel):
    """Outcome of one per-SKU media reconciliation."""
    sku: str
    status: Literal["synced", "product_missing"] = "synced"
    candidates: list[str] = Field(default_factory=list)
    removed: int = 0
    inserted: int = 0
    reindexed: int = 0
    primary_image: Optional[str] = None
