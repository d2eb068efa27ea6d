"""
Maintenance Celery task.

Periodic task: purge_expired_cache()
Flow: purge fully expired page sets -> purge old finished jobs

Scheduled by celery beat (see beat_schedule in studyroom.workers).

Dependencies: celery, studyroom.dependencies, studyroom.boundary.db
System role: Background cleanup
"""

import asyncio
import logging

from studyroom.boundary.db import get_async_engine
from studyroom.dependencies import get_service_cache
from studyroom.observability import correlation_scope
from studyroom.workers import celery_app

logger = logging.getLogger(__name__)


async def _run_maintenance() -> dict:
    maintenance = get_service_cache().maintenance
    try:
        pages = await maintenance.purge_expired_pages()
        jobs_deleted = await maintenance.purge_old_jobs()
    finally:
        # Pooled connections belong to this event loop; drop them before it closes
        await get_async_engine().dispose()

    return {
        "status": "completed",
        "documents_purged": pages.documents_purged,
        "rows_deleted": pages.rows_deleted,
        "documents_skipped": pages.documents_skipped,
        "jobs_deleted": jobs_deleted,
    }


@celery_app.task(acks_late=True)
def purge_expired_cache() -> dict:
    """
    Remove expired page sets and old job history.

    Returns:
        dict: Counts of documents purged, rows and jobs deleted
    """
    with correlation_scope():
        logger.info("Maintenance task started")
        return asyncio.run(_run_maintenance())
