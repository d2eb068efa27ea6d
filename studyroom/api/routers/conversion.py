"""
Conversion API endpoints.

Routes: POST /documents/{document_id}/convert, POST /documents/convert/batch

Dependencies: studyroom.application.services, studyroom.models
System role: Manual / background conversion trigger
"""

import logging
from typing import Callable
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status

from studyroom.api.deps import get_dispatcher, get_orchestrator
from studyroom.api.routers.router_utils import handle_page_errors
from studyroom.application.services import ConversionOrchestrator
from studyroom.core.exceptions import USER_MESSAGES
from studyroom.models.job import (
    BatchConvertItem,
    BatchConvertRequest,
    BatchConvertResponse,
    ConvertRequest,
    ConvertResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["conversion"])


@router.post(
    "/{document_id}/convert",
    response_model=ConvertResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
@handle_page_errors
async def convert_document(
    document_id: UUID,
    response: Response,
    request: ConvertRequest | None = None,
    orchestrator: ConversionOrchestrator = Depends(get_orchestrator),
    dispatch: Callable[[UUID], None] = Depends(get_dispatcher),
) -> ConvertResponse:
    """
    Queue a background conversion.

    Returns 202 with the job to poll via GET /jobs/{job_id}. If a
    conversion is already active, that job is returned instead of a new
    one. Without force, a document with fresh pages returns 200 and no job.

    Args:
        document_id: Document UUID
        request: {"force": bool}; force reconverts and resets the retry budget
        orchestrator: Injected ConversionOrchestrator
        dispatch: Injected worker dispatcher

    Raises:
        HTTPException(404): Document not found
        HTTPException(422): Document is not a PDF
        HTTPException(409): Retry budget spent (use force to reset)
    """
    force = request.force if request else False
    result = await orchestrator.enqueue(document_id, force=force)

    if result.already_cached:
        response.status_code = status.HTTP_200_OK
        return ConvertResponse(
            status="cached",
            document_id=document_id,
            message="Document already has fresh pages",
        )

    job = result.job
    if result.created:
        dispatch(job.id)
        message = "Conversion queued"
    else:
        message = "Conversion already in progress"

    logger.info(
        message,
        extra={"document_id": str(document_id), "job_id": str(job.id), "forced": force},
    )
    return ConvertResponse(
        status=job.status.value,
        document_id=document_id,
        job_id=job.id,
        message=message,
    )


@router.post(
    "/convert/batch",
    response_model=BatchConvertResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
@handle_page_errors
async def convert_documents(
    request: BatchConvertRequest,
    orchestrator: ConversionOrchestrator = Depends(get_orchestrator),
    dispatch: Callable[[UUID], None] = Depends(get_dispatcher),
) -> BatchConvertResponse:
    """
    Queue background conversions for up to 50 documents.

    Each document is handled like POST /documents/{id}/convert; a document
    that cannot be queued is reported as "rejected" with its error kind
    and does not fail the request.

    Args:
        request: {"documentIds": [...], "force": bool}
        orchestrator: Injected ConversionOrchestrator
        dispatch: Injected worker dispatcher
    """
    entries = await orchestrator.enqueue_batch(request.document_ids, force=request.force)

    items: list[BatchConvertItem] = []
    for entry in entries:
        if entry.error is not None:
            items.append(
                BatchConvertItem(
                    document_id=entry.document_id,
                    status="rejected",
                    error_kind=entry.error.kind.value,
                    message=USER_MESSAGES.get(entry.error.kind, entry.error.message),
                )
            )
            continue

        result = entry.result
        if result.already_cached:
            items.append(
                BatchConvertItem(
                    document_id=entry.document_id,
                    status="cached",
                    message="Document already has fresh pages",
                )
            )
            continue

        if result.created:
            dispatch(result.job.id)
        items.append(
            BatchConvertItem(
                document_id=entry.document_id,
                status=result.job.status.value,
                job_id=result.job.id,
                message="Conversion queued" if result.created else "Conversion already in progress",
            )
        )

    rejected = sum(1 for item in items if item.status == "rejected")
    queued = sum(1 for item in items if item.job_id is not None)
    logger.info(
        "Batch conversion requested",
        extra={"documents": len(items), "queued": queued, "rejected": rejected},
    )
    return BatchConvertResponse(items=items, queued=queued, rejected=rejected)
