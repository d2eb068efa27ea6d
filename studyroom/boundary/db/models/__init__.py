"""
Database models package.

Exports:
  - DocumentModel: Uploaded document (read-only here)
  - StudyRoomItemModel: Member shelf entry pointing at a document
  - PageCacheModel: One cached page image
  - ConversionJobModel, ConversionStatus: Conversion attempt and its state

Dependencies: sqlalchemy, studyroom.boundary.db.base
System role: Database model definitions for domain entities
"""

from studyroom.boundary.db.models.document_model import DocumentModel
from studyroom.boundary.db.models.study_room_item_model import StudyRoomItemModel
from studyroom.boundary.db.models.page_cache_model import PageCacheModel
from studyroom.boundary.db.models.conversion_job_model import (
    ACTIVE_STATUSES,
    ConversionJobModel,
    ConversionStatus,
    TERMINAL_STATUSES,
)

__all__ = [
    "DocumentModel",
    "StudyRoomItemModel",
    "PageCacheModel",
    "ConversionJobModel",
    "ConversionStatus",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
]
