"""
Conversion job ORM model.

Tracks one conversion attempt for one document. The partial unique index
on active jobs is the cross-process gate that keeps at most one
conversion of a document in flight.

Dependencies: sqlalchemy, studyroom.boundary.db.base
System role: Conversion state machine persistence
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Index, Integer, JSON, String, text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from studyroom.boundary.db.base import Base, UUIDMixin, TimestampMixin
from studyroom.boundary.db.models.page_cache_model import enum_values
from studyroom.core.exceptions import ErrorKind


class ConversionStatus(str, enum.Enum):
    """
    Conversion job states.

    QUEUED: Job requested, waiting for a runner
    PROCESSING: Rasterizer running / pages being written
    COMPLETED: Pages written; job closed
    FAILED: Error recorded; retry_count incremented
    CANCELLED: Withdrawn while still QUEUED; never ran
    """

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        return self in (ConversionStatus.QUEUED, ConversionStatus.PROCESSING)


ACTIVE_STATUSES = (ConversionStatus.QUEUED, ConversionStatus.PROCESSING)

TERMINAL_STATUSES = (
    ConversionStatus.COMPLETED,
    ConversionStatus.FAILED,
    ConversionStatus.CANCELLED,
)

_ACTIVE_PREDICATE = text("status IN ('queued', 'processing')")


class ConversionJobModel(Base, UUIDMixin, TimestampMixin):
    """
    Conversion job ORM model.

    Workflow:
        1. Request inserts a QUEUED row (fails on the partial unique index
           when another active job exists; the caller attaches to it)
        2. Runner moves it to PROCESSING and records total_pages
        3. Runner closes it as COMPLETED, or FAILED with error_kind/message
           (a QUEUED job may instead be CANCELLED before any runner claims it)
        4. A new request after FAILED inherits retry_count until max_retries

    Attributes:
        id: UUID primary key
        document_id: Document being converted
        status: QUEUED/PROCESSING/COMPLETED/FAILED/CANCELLED
        progress: Percentage complete (0-100)
        retry_count: Failed attempts so far in this retry budget
        total_pages: Pages in the source (0 until known)
        processed_pages: Pages written
        error_kind: ErrorKind of the failure, if any
        error_message: Human-readable failure, if any
        result: JSON payload (version written, blank-page report)
        forced: Manual reconversion that bypassed the fresh-cache check
        started_at: When processing began
        completed_at: When the job reached a terminal state

    Constraints:
        document_id: UNIQUE among rows with status in (queued, processing)
    """

    __tablename__ = "conversion_jobs"
    __table_args__ = (
        Index(
            "uq_conversion_jobs_active_document",
            "document_id",
            unique=True,
            postgresql_where=_ACTIVE_PREDICATE,
            sqlite_where=_ACTIVE_PREDICATE,
        ),
    )

    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status: Mapped[ConversionStatus] = mapped_column(
        Enum(ConversionStatus, native_enum=False, values_callable=enum_values),
        nullable=False,
        default=ConversionStatus.QUEUED,
    )

    progress: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Progress percentage (0-100)",
    )

    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    total_pages: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    processed_pages: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    error_kind: Mapped[ErrorKind | None] = mapped_column(
        Enum(ErrorKind, native_enum=False, values_callable=enum_values, length=64),
        nullable=True,
    )

    error_message: Mapped[str | None] = mapped_column(
        String(2048),
        nullable=True,
        doc="Error details if conversion failed",
    )

    result: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        doc="Version written and blank-page report",
    )

    forced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
