"""
Conversion job schemas.

Request/response schemas for triggering and polling conversions.

Dependencies: pydantic
System role: Conversion job API contracts
"""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import Field

from studyroom.models.common import CamelModel


class ConvertRequest(CamelModel):
    """Request schema for a manual conversion."""

    force: bool = Field(
        default=False,
        description="Reconvert even if fresh pages exist; resets the retry budget",
    )


class ConvertResponse(CamelModel):
    """Response schema for a conversion request."""

    status: Literal["queued", "processing", "cached"]
    document_id: uuid.UUID
    job_id: uuid.UUID | None = None
    message: str


class JobStatusResponse(CamelModel):
    """Response schema for job status polling."""

    id: uuid.UUID
    document_id: uuid.UUID
    status: str
    progress: int
    retry_count: int
    max_retries: int
    total_pages: int
    processed_pages: int
    error_kind: str | None = None
    error_message: str | None = None
    user_message: str | None = None
    forced: bool = False
    result: dict = Field(default_factory=dict)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class BatchConvertRequest(CamelModel):
    """Request schema for queueing several documents at once."""

    document_ids: list[uuid.UUID] = Field(min_length=1, max_length=50)
    force: bool = Field(
        default=False,
        description="Reconvert even if fresh pages exist; resets the retry budget",
    )


class BatchConvertItem(CamelModel):
    """Per-document outcome of a batch request."""

    document_id: uuid.UUID
    status: Literal["queued", "processing", "cached", "rejected"]
    job_id: uuid.UUID | None = None
    error_kind: str | None = None
    message: str


class BatchConvertResponse(CamelModel):
    """Response schema for a batch conversion request."""

    items: list[BatchConvertItem]
    queued: int
    rejected: int
