"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ExternalServiceError,
    DatabaseError,

    # Import
    ImportSourceError,
    ImportSourceReadError,
    ReportUploadError,

    # Pricing
    PricingConfigError,

    # Jobs
    JobNotFoundError,
    InvalidJobPayloadError,
    UnknownJobError,

    # Schema
    MigrationError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ExternalServiceError",
    "DatabaseError",

    # Import
    "ImportSourceError",
    "ImportSourceReadError",
    "ReportUploadError",

    # Pricing
    "PricingConfigError",

    # Jobs
    "JobNotFoundError",
    "InvalidJobPayloadError",
    "UnknownJobError",

    # Schema
    "MigrationError",
]
