"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # SUPABASE
    # ===================
    supabase_url: str = Field(
        ...,
        description="Supabase project URL"
    )
    supabase_key: str = Field(
        ...,
        description="Supabase anon/public key"
    )
    supabase_service_key: Optional[str] = Field(
        None,
        description="Supabase service role key (for admin operations)"
    )
    reports_bucket: str = Field(
        default="import-reports",
        description="Storage bucket for import error reports"
    )

    # ===================
    # MEDIA
    # ===================
    media_root: Path = Field(
        default=Path("media"),
        description="Directory that holds product images (one subdirectory per SKU)"
    )
    public_base_url: str = Field(
        default="http://localhost:8000",
        description="Base URL used to build externally servable media links"
    )
    media_url_prefix: str = Field(
        default="uploads",
        description="Path prefix under which media_root is served"
    )
    upload_dir: Path = Field(
        default=Path("uploads/imports"),
        description="Where uploaded CSV/XLSX import files are stored"
    )

    # ===================
    # IMPORT PIPELINE
    # ===================
    pricing_config_path: Path = Field(
        default=Path("data/pricing.json"),
        description="Cost-plus pricing configuration document"
    )
    import_chunk_size: int = Field(
        default=1000,
        ge=1,
        le=10000,
        description="Rows merged per transaction"
    )
    staging_chunk_size: int = Field(
        default=1000,
        ge=1,
        le=10000,
        description="Rows written to staging per request"
    )
    create_missing_categories: bool = Field(
        default=False,
        description="Create unknown category slugs during merge instead of skipping them"
    )
    catalog_view_name: str = Field(
        default="catalog_items",
        description="Materialized view refreshed after a full merge"
    )

    # ===================
    # WORKERS
    # ===================
    import_concurrency: int = Field(
        default=2,
        ge=1,
        le=32,
        description="Worker threads for the import queue"
    )
    media_concurrency: int = Field(
        default=2,
        ge=1,
        le=32,
        description="Worker threads for the media queue"
    )
    job_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per job before it is marked failed"
    )
    job_backoff_seconds: float = Field(
        default=2.0,
        ge=0,
        le=300,
        description="Base delay between attempts (doubles per retry)"
    )
    job_completed_retention: int = Field(
        default=1000,
        ge=0,
        description="Completed jobs kept in memory for status lookups"
    )
    job_failed_ttl_seconds: float = Field(
        default=7 * 24 * 3600,
        ge=0,
        description="Seconds a failed job is kept for status lookups"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def media_base_url(self) -> str:
        """Public URL that maps onto media_root."""
        base = self.public_base_url.rstrip("/")
        prefix = self.media_url_prefix.strip("/")
        return f"{base}/{prefix}" if prefix else base


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If required env vars are missing or invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
