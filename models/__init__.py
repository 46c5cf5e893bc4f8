"""
Pydantic models for validation and serialization.
"""

from models.base import BaseSchema, ValueSchema
from models.pricing import (
    RoundingStrategy,
    PricingMethod,
    PricingConfig,
    PricingInput,
    PricingBreakdown,
    FeeBreakdown,
    RepriceReport,
)
from models.staging import StagingRow, STAGING_COLUMNS
from models.product import ProductRecord, CategoryRecord, ProductImageRecord
from models.jobs import (
    ImportCsvJob,
    ImportUrlJob,
    MediaJob,
    JobStatus,
    JobState,
)
from models.imports import (
    RowError,
    IngestReport,
    MergeReport,
    UrlImportResult,
    MediaSyncResult,
)

__all__ = [
    # Base
    "BaseSchema",
    "ValueSchema",

    # Pricing
    "RoundingStrategy",
    "PricingMethod",
    "PricingConfig",
    "PricingInput",
    "PricingBreakdown",
    "FeeBreakdown",
    "RepriceReport",

    # Staging
    "StagingRow",
    "STAGING_COLUMNS",

    # Catalog
    "ProductRecord",
    "CategoryRecord",
    "ProductImageRecord",

    # Jobs
    "ImportCsvJob",
    "ImportUrlJob",
    "MediaJob",
    "JobStatus",
    "JobState",

    # Reports
    "RowError",
    "IngestReport",
    "MergeReport",
    "UrlImportResult",
    "MediaSyncResult",
]
