"""
Cache and job maintenance.

Periodic housekeeping run by the Celery beat schedule:
    - purge_expired_pages: drop rows and blobs of documents whose whole
      page set has expired, through the orchestrator's invalidation gate
    - purge_old_jobs: delete finished jobs past the retention window,
      keeping each document's latest job (it holds the retry budget)

Dependencies: sqlalchemy, studyroom.boundary.db, studyroom.application.services
System role: Background cleanup of the page cache and job history
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studyroom.application.services.conversion_service import ConversionOrchestrator
from studyroom.boundary.db.base import utc_now
from studyroom.boundary.db.CRUD.conversion_job_crud import conversion_job_crud
from studyroom.boundary.db.CRUD.document_crud import document_crud
from studyroom.boundary.db.CRUD.page_cache_crud import page_cache_crud
from studyroom.configs.conversion import ConversionSettings
from studyroom.core.exceptions import ConversionInProgressError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PagePurge:
    """Outcome of one purge_expired_pages run."""

    documents_purged: int
    rows_deleted: int
    documents_skipped: int


class MaintenanceService:
    """
    Maintenance service.

    Shares the orchestrator with the API so an expired-page purge can never
    race a conversion of the same document in this process.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        orchestrator: ConversionOrchestrator,
        settings: ConversionSettings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Initialize maintenance service.

        Args:
            session_factory: Async session factory
            orchestrator: Conversion orchestrator owning the invalidation gate
            settings: Conversion settings (retention and batch size)
            clock: Source of "now"
        """
        self._session_factory = session_factory
        self._orchestrator = orchestrator
        self._settings = settings or ConversionSettings()
        self._clock = clock

    async def purge_expired_pages(self) -> PagePurge:
        """
        Remove page sets that expired entirely.

        Documents with a conversion running are skipped and picked up on a
        later run.

        Returns:
            PagePurge with counts for this run
        """
        batch_size = self._settings.maintenance_batch_size
        seen: set[UUID] = set()
        purged = rows = skipped = 0

        while True:
            async with self._session_factory() as session:
                document_ids = await page_cache_crud.get_expired_document_ids(
                    session, self._clock(), batch_size
                )
            pending = [document_id for document_id in document_ids if document_id not in seen]
            if not pending:
                break

            for document_id in pending:
                seen.add(document_id)
                async with self._session_factory() as session:
                    document = await document_crud.get_by_id(session, document_id)
                if document is None:
                    continue
                try:
                    rows += await self._orchestrator.invalidate(document)
                except ConversionInProgressError:
                    skipped += 1
                    continue
                purged += 1

            if len(document_ids) < batch_size:
                break

        logger.info(
            "Expired page sets purged",
            extra={"documents_purged": purged, "rows_deleted": rows, "documents_skipped": skipped},
        )
        return PagePurge(documents_purged=purged, rows_deleted=rows, documents_skipped=skipped)

    async def purge_old_jobs(self) -> int:
        """
        Delete finished jobs older than job_retention_days.

        Returns:
            int: Jobs deleted
        """
        cutoff = self._clock() - timedelta(days=self._settings.job_retention_days)
        batch_size = self._settings.maintenance_batch_size
        total = 0
        while True:
            async with self._session_factory() as session:
                deleted = await conversion_job_crud.delete_terminal_before(
                    session, cutoff, batch_size
                )
                await session.commit()
            total += deleted
            if deleted < batch_size:
                break

        logger.info(
            "Old conversion jobs purged",
            extra={"jobs_deleted": total, "cutoff": cutoff.isoformat()},
        )
        return total
