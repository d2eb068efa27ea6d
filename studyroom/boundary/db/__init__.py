"""
Database boundary layer: ORM models, CRUD operations, and connection management.

Exports:
  - Base, UUIDMixin, TimestampMixin: Model building blocks
  - get_async_engine(), get_async_session_factory(), get_async_db(): Async connection management
  - DocumentModel, StudyRoomItemModel, PageCacheModel, ConversionJobModel: Domain entities
  - ConversionStatus: Job state enum
  - document_crud, study_room_item_crud, page_cache_crud, conversion_job_crud: CRUD singletons

Dependencies: sqlalchemy, studyroom.configs
System role: Database adapter for cached pages and conversion jobs
"""

from studyroom.boundary.db.base import Base, TimestampMixin, UUIDMixin, ensure_utc, utc_now
from studyroom.boundary.db.connection import (
    get_async_db,
    get_async_engine,
    get_async_session_factory,
)
from studyroom.boundary.db.models import (
    ConversionJobModel,
    ConversionStatus,
    DocumentModel,
    PageCacheModel,
    StudyRoomItemModel,
)
from studyroom.boundary.db.CRUD import (
    conversion_job_crud,
    document_crud,
    page_cache_crud,
    study_room_item_crud,
)

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    "utc_now",
    "ensure_utc",
    # Connection
    "get_async_db",
    "get_async_engine",
    "get_async_session_factory",
    # Models
    "DocumentModel",
    "StudyRoomItemModel",
    "PageCacheModel",
    "ConversionJobModel",
    "ConversionStatus",
    # CRUD singletons
    "document_crud",
    "study_room_item_crud",
    "page_cache_crud",
    "conversion_job_crud",
]
