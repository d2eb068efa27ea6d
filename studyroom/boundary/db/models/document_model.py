"""
Document ORM model.

Uploaded documents owned by the upload subsystem. The page service only
reads them to locate the original blob and the owner used in page paths.

Dependencies: sqlalchemy, studyroom.boundary.db.base
System role: Source document lookup for conversion
"""

import uuid

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from studyroom.boundary.db.base import Base, UUIDMixin, TimestampMixin


class DocumentModel(Base, UUIDMixin, TimestampMixin):
    """
    Document ORM model (read-only for this service).

    Attributes:
        id: UUID primary key
        owner_id: Uploading user; first segment of every page path
        title: Display title in the bookshop / study room
        filename: Original filename
        content_type: MIME type of the original upload
        storage_path: Key of the original file in the documents bucket
        file_size_bytes: Size of the original file
    """

    __tablename__ = "documents"

    owner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        index=True,
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    filename: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Original filename",
    )

    content_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        default="application/pdf",
    )

    storage_path: Mapped[str] = mapped_column(
        String(1024),
        nullable=False,
        doc="Key of the original file in the documents bucket",
    )

    file_size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    @property
    def is_pdf(self) -> bool:
        return "pdf" in (self.content_type or "").lower()
