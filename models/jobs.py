"""
Job payloads and job state.

Payload field names follow the queue wire format (camelCase aliases),
e.g. {"csvPath": "...", "batchId": "..."}.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


QUEUE_IMPORT = "ingester_import"
QUEUE_MEDIA = "ingester_media"

JOB_IMPORT_CSV = "csv"
JOB_IMPORT_URL = "url"
JOB_SYNC_MEDIA = "sync-media"


class JobPayload(BaseModel):
    """Accept both camelCase (wire) and snake_case field names."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ImportCsvJob(JobPayload):
    csv_path: str = Field(..., alias="csvPath", min_length=1)
    batch_id: str = Field(..., alias="batchId", min_length=1)


class ImportUrlJob(JobPayload):
    source_url: str = Field(..., alias="sourceUrl", min_length=1)
    sku: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    stock: Optional[int] = None
    categories: list[str] = Field(default_factory=list)
    image_url: Optional[str] = Field(None, alias="imageUrl")
    model_url: Optional[str] = Field(None, alias="modelUrl")
    attributes: dict[str, Any] = Field(default_factory=dict)

    @field_validator("categories", mode="before")
    @classmethod
    def categories_default(cls, v: Any) -> Any:
        return v if v is not None else []

    @field_validator("attributes", mode="before")
    @classmethod
    def attributes_default(cls, v: Any) -> Any:
        return v if v is not None else {}


class MediaJob(JobPayload):
    sku: str = Field(..., min_length=1)
    prefer_url: Optional[str] = Field(None, alias="preferUrl")


class JobStatus(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class JobState(BaseModel):
    """Snapshot of a job for status endpoints."""
    id: str
    queue: str
    name: str
    data: dict[str, Any]
    status: JobStatus
    attempts: int = 0
    progress: float = Field(0.0, ge=0.0, le=1.0)
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    created_at: datetime
    finished_at: Optional[datetime] = None
