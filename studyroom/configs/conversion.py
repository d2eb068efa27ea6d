"""
Page conversion settings.

Rendering quality, cache TTL, retry budget and timing knobs for the
conversion orchestrator.

Dependencies: pydantic_settings
System role: Conversion pipeline configuration
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConversionSettings(BaseSettings):
    """Settings for PDF to page-image conversion."""

    model_config = SettingsConfigDict(
        env_prefix="CONVERSION_",
        case_sensitive=False,
        extra="ignore",
    )

    dpi: int = Field(default=150, description="Render resolution")
    image_format: str = Field(default="jpeg", description="Output format: jpeg or png")
    jpeg_quality: int = Field(default=85, ge=1, le=100, description="JPEG quality (1-100)")
    quality_level: str = Field(default="standard", description="Quality tag: standard or high")
    max_width: int = Field(default=1200, description="Maximum page width in pixels")
    max_height: int = Field(default=1600, description="Maximum page height in pixels")

    cache_ttl_days: int = Field(default=7, description="Page cache lifetime in days")
    max_retries: int = Field(default=3, description="Failed attempts allowed per document")
    timeout_seconds: float = Field(default=300.0, description="Rasterization timeout")

    blank_page_threshold_bytes: int = Field(
        default=10_000,
        description="Pages smaller than this are flagged as likely blank",
    )
    blank_retry_fraction: float = Field(
        default=0.5,
        description="Re-render once when more than this fraction of pages is flagged",
    )

    job_poll_interval_seconds: float = Field(
        default=1.0,
        description="Poll interval when waiting on another process's job",
    )
    job_wait_timeout_seconds: float = Field(
        default=600.0,
        description="How long to wait on another process's job",
    )
    stale_job_seconds: float = Field(
        default=900.0,
        description="Active jobs untouched for this long are treated as abandoned",
    )

    job_retention_days: int = Field(
        default=7,
        description="Finished jobs older than this are purged (the latest per document is kept)",
    )
    maintenance_batch_size: int = Field(
        default=100,
        ge=1,
        description="Documents or jobs handled per maintenance query",
    )
    maintenance_interval_seconds: float = Field(
        default=3600.0,
        description="Beat schedule for the maintenance task",
    )
