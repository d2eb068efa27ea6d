"""
Conversion job CRUD operations.

Provides Create, Read, Update operations for ConversionJobModel with
state-machine helpers for the conversion orchestrator and job polling.

Dependencies: sqlalchemy, studyroom.boundary.db.models
System role: Conversion job persistence
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, desc, exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from studyroom.boundary.db.base import utc_now
from studyroom.boundary.db.CRUD.base_crud import BaseCRUD
from studyroom.boundary.db.models.conversion_job_model import (
    ACTIVE_STATUSES,
    ConversionJobModel,
    ConversionStatus,
    TERMINAL_STATUSES,
)
from studyroom.core.exceptions import ErrorKind


class ConversionJobCRUD(BaseCRUD[ConversionJobModel]):
    """
    CRUD operations for ConversionJobModel.

    Extends BaseCRUD with per-document job lookups and status transitions.
    """

    def __init__(self) -> None:
        """Initialize ConversionJobCRUD with ConversionJobModel."""
        super().__init__(ConversionJobModel)

    async def get_active_for_document(
        self,
        session: AsyncSession,
        document_id: UUID,
    ) -> ConversionJobModel | None:
        """
        Retrieve the QUEUED or PROCESSING job for a document.

        Args:
            session: Async database session
            document_id: Document UUID

        Returns:
            Active job if any (at most one exists), None otherwise
        """
        stmt = (
            select(ConversionJobModel)
            .where(ConversionJobModel.document_id == document_id)
            .where(ConversionJobModel.status.in_(ACTIVE_STATUSES))
            .order_by(desc(ConversionJobModel.created_at))
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_latest_for_document(
        self,
        session: AsyncSession,
        document_id: UUID,
    ) -> ConversionJobModel | None:
        """Retrieve the most recently created job for a document, any status."""
        stmt = (
            select(ConversionJobModel)
            .where(ConversionJobModel.document_id == document_id)
            .order_by(desc(ConversionJobModel.created_at))
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def mark_processing(
        self,
        session: AsyncSession,
        id: UUID,
        started_at: datetime | None = None,
    ) -> ConversionJobModel | None:
        """
        Claim a QUEUED job by moving it to PROCESSING.

        The status check and update run as one statement, so two workers
        handed the same job cannot both claim it.

        Returns:
            Updated job, or None when the job was not QUEUED
        """
        stmt = (
            update(ConversionJobModel)
            .where(ConversionJobModel.id == id)
            .where(ConversionJobModel.status == ConversionStatus.QUEUED)
            .values(
                status=ConversionStatus.PROCESSING,
                started_at=started_at or utc_now(),
                progress=5,
            )
            .returning(ConversionJobModel)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def update_progress(
        self,
        session: AsyncSession,
        id: UUID,
        progress: int,
        total_pages: int | None = None,
        processed_pages: int | None = None,
    ) -> ConversionJobModel | None:
        """
        Update progress counters.

        Args:
            session: Async database session
            id: Job UUID
            progress: Percentage (clamped to 0-100)
            total_pages: Page count once known
            processed_pages: Pages written so far

        Returns:
            Updated job if found, None otherwise
        """
        fields: dict = {"progress": max(0, min(100, progress))}
        if total_pages is not None:
            fields["total_pages"] = total_pages
        if processed_pages is not None:
            fields["processed_pages"] = processed_pages
        return await self.update_by_id(session, id, **fields)

    async def mark_completed(
        self,
        session: AsyncSession,
        id: UUID,
        processed_pages: int,
        result_data: dict,
    ) -> ConversionJobModel | None:
        """
        Close a PROCESSING job as COMPLETED with its output.

        Returns:
            Updated job, or None when the job is no longer PROCESSING
            (crash recovery already failed it)
        """
        stmt = (
            update(ConversionJobModel)
            .where(ConversionJobModel.id == id)
            .where(ConversionJobModel.status == ConversionStatus.PROCESSING)
            .values(
                status=ConversionStatus.COMPLETED,
                progress=100,
                total_pages=processed_pages,
                processed_pages=processed_pages,
                result=result_data,
                error_kind=None,
                error_message=None,
                completed_at=utc_now(),
            )
            .returning(ConversionJobModel)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def mark_failed(
        self,
        session: AsyncSession,
        id: UUID,
        error_kind: ErrorKind,
        error_message: str,
        retry_count: int,
        processed_pages: int | None = None,
    ) -> ConversionJobModel | None:
        """
        Close an active job as FAILED.

        Args:
            session: Async database session
            id: Job UUID
            error_kind: Classified failure
            error_message: Human-readable failure (truncated to column size)
            retry_count: Retry count after this failure
            processed_pages: Partial progress, if any

        Returns:
            Updated job, or None when the job was already terminal
        """
        fields: dict = {
            "status": ConversionStatus.FAILED,
            "error_kind": error_kind,
            "error_message": error_message[:2048],
            "retry_count": retry_count,
            "completed_at": utc_now(),
        }
        if processed_pages is not None:
            fields["processed_pages"] = processed_pages
        stmt = (
            update(ConversionJobModel)
            .where(ConversionJobModel.id == id)
            .where(ConversionJobModel.status.in_(ACTIVE_STATUSES))
            .values(**fields)
            .returning(ConversionJobModel)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def mark_cancelled(self, session: AsyncSession, id: UUID) -> ConversionJobModel | None:
        """
        Withdraw a QUEUED job before any runner claims it.

        Returns:
            Updated job, or None when the job was not QUEUED
        """
        stmt = (
            update(ConversionJobModel)
            .where(ConversionJobModel.id == id)
            .where(ConversionJobModel.status == ConversionStatus.QUEUED)
            .values(status=ConversionStatus.CANCELLED, completed_at=utc_now())
            .returning(ConversionJobModel)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def delete_terminal_before(
        self,
        session: AsyncSession,
        cutoff: datetime,
        limit: int,
    ) -> int:
        """
        Delete old terminal jobs that have a newer job for the same document.

        The latest job of each document is kept: it carries the retry budget
        and the last failure shown by diagnostics.

        Args:
            session: Async database session
            cutoff: Only jobs last updated before this are removed
            limit: Maximum rows removed in one call

        Returns:
            int: Rows deleted
        """
        newer = aliased(ConversionJobModel)
        ids = (
            select(ConversionJobModel.id)
            .where(ConversionJobModel.status.in_(TERMINAL_STATUSES))
            .where(ConversionJobModel.updated_at < cutoff)
            .where(
                exists().where(
                    newer.document_id == ConversionJobModel.document_id,
                    newer.created_at > ConversionJobModel.created_at,
                )
            )
            .order_by(ConversionJobModel.updated_at)
            .limit(limit)
        )
        victims = list((await session.execute(ids)).scalars().all())
        if not victims:
            return 0
        result = await session.execute(
            delete(ConversionJobModel).where(ConversionJobModel.id.in_(victims))
        )
        return result.rowcount


conversion_job_crud = ConversionJobCRUD()
