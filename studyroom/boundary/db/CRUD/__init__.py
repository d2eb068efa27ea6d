"""
CRUD operations for database models.

Exports base CRUD class and model-specific CRUD implementations
with pre-instantiated singletons for direct use.

Usage:
    from studyroom.boundary.db.CRUD import page_cache_crud, conversion_job_crud

    pages = await page_cache_crud.get_fresh_pages(db, document_id, now)
"""

from studyroom.boundary.db.CRUD.base_crud import BaseCRUD
from studyroom.boundary.db.CRUD.document_crud import (
    DocumentCRUD,
    StudyRoomItemCRUD,
    document_crud,
    study_room_item_crud,
)
from studyroom.boundary.db.CRUD.page_cache_crud import (
    CacheAggregate,
    FreshSummary,
    PageCacheCRUD,
    RemovedPage,
    page_cache_crud,
)
from studyroom.boundary.db.CRUD.conversion_job_crud import (
    ConversionJobCRUD,
    conversion_job_crud,
)

__all__ = [
    "BaseCRUD",
    "DocumentCRUD",
    "document_crud",
    "StudyRoomItemCRUD",
    "study_room_item_crud",
    "PageCacheCRUD",
    "page_cache_crud",
    "FreshSummary",
    "CacheAggregate",
    "RemovedPage",
    "ConversionJobCRUD",
    "conversion_job_crud",
]
