"""
Business logic services.

Each service handles one stage of the import pipeline.
"""

from services.staging_service import StagingService
from services.pricing_service import (
    PricingService,
    get_pricing_service,
    compute_cost_plus,
    round_price,
)
from services.catalog_merge_service import (
    CatalogMergeService,
    generate_sku,
)
from services.media_sync_service import MediaSyncService
from services.lock_service import (
    LockRegistry,
    get_lock_registry,
    stable_lock_key,
    SCHEMA_BOOTSTRAP_LOCK,
)
from services.report_service import ReportService, render_error_csv
from services.schema_service import SchemaService, ensure_schema

__all__ = [
    "StagingService",
    "PricingService",
    "get_pricing_service",
    "compute_cost_plus",
    "round_price",
    "CatalogMergeService",
    "generate_sku",
    "MediaSyncService",
    "LockRegistry",
    "get_lock_registry",
    "stable_lock_key",
    "SCHEMA_BOOTSTRAP_LOCK",
    "ReportService",
    "render_error_csv",
    "SchemaService",
    "ensure_schema",
]
