"""
Diagnostics schema.

Dependencies: pydantic
System role: Diagnostics API contract
"""

import uuid

from pydantic import Field

from studyroom.models.common import CamelModel
from studyroom.models.job import JobStatusResponse


class DiagnosticsResponse(CamelModel):
    """Read-only health report for a document's page cache."""

    document_id: uuid.UUID
    healthy: bool
    has_pages: bool
    storage_accessible: bool
    source_accessible: bool | None = None
    total_pages: int
    expected_pages: int | None = None
    fresh: bool
    missing_files: list[int] = Field(default_factory=list)
    placeholder_pages: list[int] = Field(default_factory=list)
    expired_pages: list[int] = Field(default_factory=list)
    suspicious_pages: list[int] = Field(default_factory=list)
    blank_page_status: str | None = None
    latest_job: JobStatusResponse | None = None
    issues: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
