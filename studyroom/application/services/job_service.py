"""
Conversion job service.

Read side of the ConversionJob state machine for status polling, plus
withdrawal of jobs no runner has claimed yet.

Dependencies: studyroom.boundary.db.CRUD, studyroom.boundary.db.models
System role: Job status reporting
"""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studyroom.boundary.db.base import ensure_utc
from studyroom.boundary.db.CRUD.conversion_job_crud import conversion_job_crud
from studyroom.boundary.db.models.conversion_job_model import ConversionJobModel
from studyroom.core.exceptions import JobNotCancellableError, JobNotFoundError, USER_MESSAGES

logger = logging.getLogger(__name__)


def _isoformat(value) -> str | None:
    value = ensure_utc(value)
    return value.isoformat() if value else None


def job_to_dict(job: ConversionJobModel, max_retries: int) -> dict:
    """
    Serialize a job for polling clients.

    Args:
        job: Conversion job
        max_retries: Retry budget, reported so clients can show it

    Returns:
        dict: Job status information
    """
    return {
        "id": str(job.id),
        "document_id": str(job.document_id),
        "status": job.status.value,
        "progress": job.progress,
        "retry_count": job.retry_count,
        "max_retries": max_retries,
        "total_pages": job.total_pages,
        "processed_pages": job.processed_pages,
        "error_kind": job.error_kind.value if job.error_kind else None,
        "error_message": job.error_message,
        "user_message": USER_MESSAGES.get(job.error_kind) if job.error_kind else None,
        "forced": job.forced,
        "result": job.result or {},
        "started_at": _isoformat(job.started_at),
        "completed_at": _isoformat(job.completed_at),
        "created_at": _isoformat(job.created_at),
        "updated_at": _isoformat(job.updated_at),
    }


class ConversionJobService:
    """
    Conversion job service.

    Provides abstraction over ConversionJobCRUD for polling and cancellation.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_retries: int = 3,
    ) -> None:
        """
        Initialize job service.

        Args:
            session_factory: Async session factory
            max_retries: Retry budget reported alongside each job
        """
        self._session_factory = session_factory
        self._max_retries = max_retries

    async def get_job_status(self, job_id: UUID) -> dict:
        """
        Get job status details for polling.

        Args:
            job_id: Job UUID

        Returns:
            dict: Job status information

        Raises:
            JobNotFoundError: If job doesn't exist
        """
        async with self._session_factory() as session:
            job = await conversion_job_crud.get_by_id(session, job_id)
        if job is None:
            raise JobNotFoundError(str(job_id))
        return job_to_dict(job, self._max_retries)

    async def get_latest_for_document(self, document_id: UUID) -> dict | None:
        """Most recent job for a document, or None when it was never converted."""
        async with self._session_factory() as session:
            job = await conversion_job_crud.get_latest_for_document(session, document_id)
        return job_to_dict(job, self._max_retries) if job else None

    async def cancel_job(self, job_id: UUID) -> dict:
        """
        Withdraw a QUEUED job.

        A worker that later receives the job skips it, and the next
        conversion request for the document inherits its retry count.

        Args:
            job_id: Job UUID

        Returns:
            dict: Job status information, status "cancelled"

        Raises:
            JobNotFoundError: If job doesn't exist
            JobNotCancellableError: A runner already claimed it, or it finished
        """
        async with self._session_factory() as session:
            cancelled = await conversion_job_crud.mark_cancelled(session, job_id)
            if cancelled is None:
                job = await conversion_job_crud.get_by_id(session, job_id)
                if job is None:
                    raise JobNotFoundError(str(job_id))
                raise JobNotCancellableError(str(job_id), job.status.value)
            await session.commit()

        logger.info(
            "Conversion job cancelled",
            extra={"job_id": str(job_id), "document_id": str(cancelled.document_id)},
        )
        return job_to_dict(cancelled, self._max_retries)
