"""
Study room item ORM model.

A member's shelf entry pointing at a document they bought or were given.
Viewers address pages through either the item or the document.

Dependencies: sqlalchemy, studyroom.boundary.db.base
System role: Item-to-document mapping for the page read path
"""

import uuid

from sqlalchemy import ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from studyroom.boundary.db.base import Base, UUIDMixin, TimestampMixin


class StudyRoomItemModel(Base, UUIDMixin, TimestampMixin):
    """
    Study room item ORM model.

    Attributes:
        id: UUID primary key
        member_id: Member who owns the shelf entry
        document_id: Document shown when the item is opened

    Constraints:
        (member_id, document_id): UNIQUE; one shelf entry per document per member
    """

    __tablename__ = "study_room_items"
    __table_args__ = (
        UniqueConstraint("member_id", "document_id", name="uq_study_room_member_document"),
    )

    member_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        index=True,
    )

    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
    )
