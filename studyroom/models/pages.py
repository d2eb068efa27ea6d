"""
Page domain schemas.

Response schemas for page retrieval and cache maintenance.

Dependencies: pydantic
System role: Page API contracts
"""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import Field

from studyroom.models.common import CamelModel


class PageUrlResponse(CamelModel):
    """One page and its time-limited signed URL."""

    page_number: int
    url: str


class DocumentPagesResponse(CamelModel):
    """Canonical pages payload."""

    document_id: uuid.UUID
    total_pages: int
    pages: list[PageUrlResponse]
    cached: bool = Field(description="True when served from an existing page set")


class ConversionPendingResponse(CamelModel):
    """Returned with 202 when pages are being converted in the background."""

    status: Literal["converting"] = "converting"
    document_id: uuid.UUID
    job_id: uuid.UUID
    job_status: str
    pending_real_conversion: bool = Field(
        default=False,
        description="Only placeholder pages exist; a real conversion is running",
    )


class CacheStatsResponse(CamelModel):
    """Aggregate page cache totals for one document."""

    document_id: uuid.UUID
    total_pages: int
    total_size_bytes: int
    newest_page_timestamp: datetime | None = None
    latest_version: int | None = None
    expires_at: datetime | None = None
    cache_hit_count: int = 0
    fresh: bool = False


class InvalidateResponse(CamelModel):
    """Result of dropping a document's cached pages."""

    document_id: uuid.UUID
    deleted_pages: int
