"""
Object storage configuration.

Settings for the original-documents bucket, the rendered-pages bucket,
and signed URL generation.

Dependencies: pydantic_settings
System role: Blob store configuration
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    """Settings for S3 bucket operations."""

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        case_sensitive=False,
        extra="ignore",
    )

    region: str = Field(
        default="ap-southeast-2",
        description="AWS region for both buckets",
    )
    endpoint_url: str | None = Field(
        default=None,
        description="Custom endpoint for S3-compatible stores",
    )
    documents_bucket: str = Field(
        default="studyroom-dev-documents",
        description="Bucket holding original uploaded documents",
    )
    pages_bucket: str = Field(
        default="studyroom-dev-document-pages",
        description="Bucket holding rendered page images",
    )
    pages_bucket_public: bool = Field(
        default=False,
        description="Whether the pages bucket allows public reads",
    )
    signed_url_ttl_seconds: int = Field(
        default=3600,
        description="Signed URL expiry in seconds (default 1 hour)",
    )
    max_file_size_bytes: int = Field(
        default=50 * 1024 * 1024,
        description="Largest object accepted by put (default 50MB)",
    )
    allowed_mime_types: list[str] = Field(
        default=["image/jpeg", "image/png"],
        description="Content types accepted by the pages bucket",
    )
