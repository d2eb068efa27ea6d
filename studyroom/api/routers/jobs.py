"""
Job API endpoints.

Routes: GET /jobs/{id}, POST /jobs/{id}/cancel

Dependencies: studyroom.application.services.job_service, studyroom.models
System role: Conversion job status HTTP API
"""

from uuid import UUID

from fastapi import APIRouter, Depends

from studyroom.api.deps import get_job_service
from studyroom.api.routers.router_utils import handle_page_errors
from studyroom.application.services.job_service import ConversionJobService
from studyroom.models.job import JobStatusResponse

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("/{job_id}", response_model=JobStatusResponse)
@handle_page_errors
async def get_job_status(
    job_id: UUID,
    job_service: ConversionJobService = Depends(get_job_service),
) -> dict:
    """
    Get conversion job status and progress for frontend polling.

    Frontend should poll this endpoint every 1-2 seconds while the job is
    queued or processing.

    Args:
        job_id: Job UUID
        job_service: Injected ConversionJobService

    Returns:
        dict: Job status information with:
            - status: queued, processing, completed, failed or cancelled
            - progress: Progress percentage (0-100)
            - retryCount / maxRetries: Retry budget
            - errorKind / errorMessage / userMessage: Set when failed
            - result: Version written and blank-page report when completed

    Raises:
        HTTPException(404): Job not found

    Example Response:
        {
            "id": "123e4567-e89b-12d3-a456-426614174000",
            "documentId": "9b2f...",
            "status": "completed",
            "progress": 100,
            "retryCount": 0,
            "maxRetries": 3,
            "totalPages": 5,
            "processedPages": 5,
            "result": {"version": 2, "blank_page_report": {"status": "ok"}}
        }
    """
    return await job_service.get_job_status(job_id)


@router.post("/{job_id}/cancel", response_model=JobStatusResponse)
@handle_page_errors
async def cancel_job(
    job_id: UUID,
    job_service: ConversionJobService = Depends(get_job_service),
) -> dict:
    """
    Withdraw a conversion job that no worker has started.

    Raises:
        HTTPException(404): Job not found
        HTTPException(409): Job already processing or finished
    """
    return await job_service.cancel_job(job_id)
