"""
Custom exception classes for the application.

Row-level data problems are not exceptions: they are collected as
RowError entries. The classes here are for failures that end a request
or a job (and let the queue retry it).
"""

from typing import Optional, Any
from datetime import datetime


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "PRODUCT_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.utcnow().isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# IMPORT ERRORS
# ===================

class ImportSourceError(ValidationError):
    """Import source has an unsupported format or no header."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="IMPORT_SOURCE_INVALID",
            message=message,
            details=details
        )


class ImportSourceReadError(AppError):
    """Import source is unreadable or truncated (fatal for the job)."""

    def __init__(self, path: str, message: str):
        super().__init__(
            code="IMPORT_SOURCE_UNREADABLE",
            message=f"Cannot read import source: {message}",
            status_code=500,
            details={"path": path}
        )


class ReportUploadError(ExternalServiceError):
    """Error report could not be written to object storage."""

    def __init__(self, path: str, message: str):
        super().__init__(
            service="storage",
            message=f"Failed to upload error report: {message}",
            details={"path": path}
        )


# ===================
# PRICING ERRORS
# ===================

class PricingConfigError(ValidationError):
    """Pricing configuration missing or invalid."""

    def __init__(self, path: str, message: str):
        super().__init__(
            code="PRICING_CONFIG_INVALID",
            message=f"Invalid pricing configuration: {message}",
            details={"path": path}
        )


# ===================
# JOB ERRORS
# ===================

class JobNotFoundError(NotFoundError):
    """Job id unknown to the queue."""

    def __init__(self, job_id: str):
        super().__init__(
            resource="Job",
            identifier=job_id,
            code="JOB_NOT_FOUND"
        )


class InvalidJobPayloadError(ValidationError):
    """Job payload does not match its schema."""

    def __init__(self, job_name: str, errors: list[dict]):
        super().__init__(
            code="INVALID_JOB_PAYLOAD",
            message=f"Invalid payload for job '{job_name}'",
            details={"job": job_name, "errors": errors}
        )


class UnknownJobError(ValidationError):
    """No handler registered for the job name."""

    def __init__(self, queue: str, job_name: str):
        super().__init__(
            code="UNKNOWN_JOB",
            message=f"Unknown job '{job_name}' on queue '{queue}'",
            details={"queue": queue, "job": job_name}
        )


# ===================
# SCHEMA ERRORS
# ===================

class MigrationError(AppError):
    """A schema migration failed to apply."""

    def __init__(self, version: str, message: str):
        super().__init__(
            code="MIGRATION_FAILED",
            message=f"Migration {version} failed: {message}",
            status_code=500,
            details={"version": version}
        )
