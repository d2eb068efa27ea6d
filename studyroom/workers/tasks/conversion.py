"""
Page conversion Celery task.

Async task: convert_document(job_id)
Flow: claim job -> fetch source -> rasterize -> write pages -> close job

Retryable failures (timeouts, storage errors) queue a follow-up job that
inherits the retry count and re-dispatch this task with exponential
backoff. The job's retry budget, not Celery's, decides when to stop.

Dependencies: celery, studyroom.dependencies, studyroom.boundary.db
System role: Background page conversion
"""

import asyncio
import logging
from uuid import UUID

from studyroom.boundary.db import get_async_engine
from studyroom.core.exceptions import ConversionExhausted, StudyRoomException
from studyroom.dependencies import get_service_cache
from studyroom.observability import correlation_scope
from studyroom.workers import celery_app, celery_config

logger = logging.getLogger(__name__)


def retry_countdown(retries: int) -> int:
    """Exponential backoff capped at task_retry_backoff_max."""
    return min(
        celery_config.task_retry_backoff * (2 ** retries),
        celery_config.task_retry_backoff_max,
    )


async def _run_job(job_id: UUID) -> dict:
    """
    Run one job and, on a retryable failure, queue its follow-up.

    Returns:
        dict: {"status": ..., ...}; status "retry" carries next_job_id and
        the original error
    """
    orchestrator = get_service_cache().orchestrator
    try:
        try:
            outcome = await orchestrator.run_job(job_id)
        except StudyRoomException as e:
            if not e.retryable:
                raise
            try:
                follow_up = await orchestrator.requeue(job_id)
            except ConversionExhausted:
                logger.error(
                    "Conversion retries exhausted",
                    extra={"job_id": str(job_id), "error_kind": e.kind.value},
                )
                raise
            if not follow_up.created:
                return {"status": "attached", "job_id": str(follow_up.job.id)}
            return {"status": "retry", "next_job_id": str(follow_up.job.id), "error": e}
    finally:
        # Pooled connections belong to this event loop; drop them before it closes
        await get_async_engine().dispose()

    if outcome is None:
        return {"status": "skipped", "job_id": str(job_id)}
    return {
        "status": "completed",
        "job_id": str(job_id),
        "document_id": str(outcome.document_id),
        "version": outcome.version,
        "total_pages": outcome.total_pages,
        "blank_page_status": outcome.blank_report.status.value if outcome.blank_report else None,
    }


@celery_app.task(bind=True, max_retries=None, acks_late=True)
def convert_document(self, job_id: str) -> dict:
    """
    Convert a document for a QUEUED job.

    Args:
        job_id: ConversionJob UUID as string

    Returns:
        dict: Conversion result with status, version and page count
    """
    with correlation_scope(job_id):
        logger.info(
            "Conversion task received",
            extra={"job_id": job_id, "attempt": self.request.retries + 1},
        )
        result = asyncio.run(_run_job(UUID(job_id)))

    if result["status"] == "retry":
        error = result.pop("error")
        countdown = retry_countdown(self.request.retries)
        logger.warning(
            "Conversion failed; retrying with follow-up job",
            extra={
                "job_id": job_id,
                "next_job_id": result["next_job_id"],
                "error_kind": error.kind.value,
                "countdown": countdown,
            },
        )
        raise self.retry(exc=error, args=[result["next_job_id"]], countdown=countdown)

    return result
