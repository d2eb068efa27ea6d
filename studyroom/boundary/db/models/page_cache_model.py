"""
Page cache ORM model.

One rendered page of one document: where its bytes live, how it was
produced and until when it may be served.

Dependencies: sqlalchemy, studyroom.boundary.db.base, studyroom.core.pages
System role: Authoritative record of cached page images
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from studyroom.boundary.db.base import Base, UUIDMixin, TimestampMixin, ensure_utc, utc_now
from studyroom.core.pages import GenerationMethod, ImageFormat, QualityLevel


def enum_values(enum_cls) -> list[str]:
    """Persist enum values ("jpeg") rather than member names ("JPEG")."""
    return [member.value for member in enum_cls]


class PageCacheModel(Base, UUIDMixin, TimestampMixin):
    """
    Page cache ORM model.

    Rows for a document are written as a complete set by one conversion and
    replaced as a set by the next one, so page numbers are always 1..N.

    Attributes:
        id: UUID primary key
        document_id: Document the page belongs to (cascade delete)
        page_number: 1-based page index
        total_pages: Page count of the conversion that wrote this row
        blob_path: Object key in the pages bucket
        file_size_bytes: Stored image size
        image_format: jpeg or png
        quality_level: standard or high
        version: Conversion generation; previous max + 1
        generation_method: standard, rerendered or placeholder
        expires_at: Row is fresh while expires_at > now
        cache_hit_count: Successful reads served from this row
        processing_time_ms: Conversion wall time, diagnostic only

    Constraints:
        (document_id, page_number): UNIQUE
    """

    __tablename__ = "page_cache"
    __table_args__ = (
        UniqueConstraint("document_id", "page_number", name="uq_page_cache_document_page"),
        CheckConstraint("page_number >= 1", name="ck_page_cache_page_number_positive"),
        CheckConstraint("file_size_bytes >= 0", name="ck_page_cache_size_non_negative"),
    )

    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    page_number: Mapped[int] = mapped_column(Integer, nullable=False)

    total_pages: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="Expected page count recorded at conversion time",
    )

    blob_path: Mapped[str] = mapped_column(
        String(1024),
        nullable=False,
        doc="Object key, e.g. {owner_id}/{document_id}/v{version}/page-{n}.jpg",
    )

    file_size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    image_format: Mapped[ImageFormat] = mapped_column(
        Enum(ImageFormat, native_enum=False, values_callable=enum_values),
        nullable=False,
        default=ImageFormat.JPEG,
    )

    quality_level: Mapped[QualityLevel] = mapped_column(
        Enum(QualityLevel, native_enum=False, values_callable=enum_values),
        nullable=False,
        default=QualityLevel.STANDARD,
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    generation_method: Mapped[GenerationMethod] = mapped_column(
        Enum(GenerationMethod, native_enum=False, values_callable=enum_values),
        nullable=False,
        default=GenerationMethod.STANDARD,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    cache_hit_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    processing_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    def is_fresh(self, now: datetime | None = None) -> bool:
        """Fresh iff not expired and not a placeholder."""
        now = now or utc_now()
        return self.generation_method.is_real and ensure_utc(self.expires_at) > now
