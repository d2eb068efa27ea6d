"""
Page API endpoints.

Routes:
    GET    /documents/{document_id}/pages
    GET    /documents/{document_id}/pages/{page_number}
    DELETE /documents/{document_id}/pages
    GET    /documents/{document_id}/cache-stats
    GET    /documents/{document_id}/diagnose
    GET    /study-room/items/{item_id}/pages

Dependencies: studyroom.application.services, studyroom.models
System role: Viewer page HTTP API
"""

import math
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, Response, status
from fastapi.responses import JSONResponse

from studyroom.api.deps import (
    get_diagnostics_service,
    get_retrieval_service,
)
from studyroom.api.routers.router_utils import handle_page_errors
from studyroom.application.services import (
    ByDocumentId,
    ByStudyRoomItemId,
    DiagnosticsService,
    DocumentPages,
    DocumentRef,
    PageRetrievalService,
)
from studyroom.boundary.db.base import utc_now
from studyroom.models.diagnostics import DiagnosticsResponse
from studyroom.models.pages import (
    CacheStatsResponse,
    ConversionPendingResponse,
    DocumentPagesResponse,
    InvalidateResponse,
    PageUrlResponse,
)

router = APIRouter(prefix="/documents", tags=["pages"])
study_room_router = APIRouter(prefix="/study-room", tags=["pages"])


def _pages_response(result) -> DocumentPagesResponse | JSONResponse:
    if isinstance(result, DocumentPages):
        return DocumentPagesResponse(
            document_id=result.document_id,
            total_pages=result.total_pages,
            pages=[
                PageUrlResponse(page_number=page.page_number, url=page.url)
                for page in result.pages
            ],
            cached=result.cached,
        )

    pending = ConversionPendingResponse(
        document_id=result.document_id,
        job_id=result.job_id,
        job_status=result.status.value,
        pending_real_conversion=result.pending_real_conversion,
    )
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content=pending.model_dump(mode="json", by_alias=True),
    )


async def _get_pages(
    retrieval: PageRetrievalService,
    ref: DocumentRef,
    wait: bool,
    download: bool,
):
    result = await retrieval.get_pages(ref, wait=wait, force_download=download)
    return _pages_response(result)


@router.get(
    "/{document_id}/pages",
    response_model=DocumentPagesResponse,
    responses={202: {"model": ConversionPendingResponse}},
)
@handle_page_errors
async def get_document_pages(
    document_id: UUID,
    wait: bool = Query(default=True, description="Convert synchronously on a cache miss"),
    download: bool = Query(default=False, description="Sign URLs as attachments"),
    retrieval: PageRetrievalService = Depends(get_retrieval_service),
):
    """
    Get every page of a document as a signed URL.

    Serves the cached page set when it is fresh and complete. On a miss,
    converts the document first (cached=false), or with wait=false
    queues a background conversion and returns 202 with a job to poll.

    Args:
        document_id: Document UUID
        wait: Block on conversion when pages are missing
        download: Sign URLs with an attachment disposition
        retrieval: Injected PageRetrievalService

    Returns:
        DocumentPagesResponse, or 202 ConversionPendingResponse

    Raises:
        HTTPException(404): Document not found
        HTTPException(422): Source missing, corrupt or not a PDF
        HTTPException(409): Retry budget spent
        HTTPException(502/503): Retryable conversion failure

    Example Response:
        {
            "documentId": "123e4567-e89b-12d3-a456-426614174000",
            "totalPages": 2,
            "pages": [
                {"pageNumber": 1, "url": "https://..."},
                {"pageNumber": 2, "url": "https://..."}
            ],
            "cached": true
        }
    """
    return await _get_pages(retrieval, ByDocumentId(document_id), wait, download)


@router.get(
    "/{document_id}/pages/{page_number}",
    response_class=Response,
    responses={200: {"content": {"image/jpeg": {}, "image/png": {}}}},
)
@handle_page_errors
async def get_document_page(
    document_id: UUID,
    page_number: int = Path(ge=1),
    retrieval: PageRetrievalService = Depends(get_retrieval_service),
) -> Response:
    """
    Stream one page image.

    Content type matches the stored format; Cache-Control max-age is the
    page's remaining cache lifetime.
    """
    page = await retrieval.get_page(ByDocumentId(document_id), page_number)
    remaining = (page.expires_at - utc_now()).total_seconds()
    max_age = max(0, math.floor(remaining))
    return Response(
        content=page.content,
        media_type=page.content_type,
        headers={"Cache-Control": f"private, max-age={max_age}"},
    )


@router.delete("/{document_id}/pages", response_model=InvalidateResponse)
@handle_page_errors
async def invalidate_document_pages(
    document_id: UUID,
    retrieval: PageRetrievalService = Depends(get_retrieval_service),
) -> InvalidateResponse:
    """Remove every cached page record and blob for a document."""
    deleted = await retrieval.invalidate(ByDocumentId(document_id))
    return InvalidateResponse(document_id=document_id, deleted_pages=deleted)


@router.get("/{document_id}/cache-stats", response_model=CacheStatsResponse)
@handle_page_errors
async def get_cache_stats(
    document_id: UUID,
    retrieval: PageRetrievalService = Depends(get_retrieval_service),
) -> CacheStatsResponse:
    """Aggregate page cache totals for monitoring."""
    stats = await retrieval.get_cache_stats(ByDocumentId(document_id))
    return CacheStatsResponse(
        document_id=stats.document_id,
        total_pages=stats.total_pages,
        total_size_bytes=stats.total_size_bytes,
        newest_page_timestamp=stats.newest_page_timestamp,
        latest_version=stats.latest_version,
        expires_at=stats.expires_at,
        cache_hit_count=stats.cache_hit_count,
        fresh=stats.fresh,
    )


@router.get("/{document_id}/diagnose", response_model=DiagnosticsResponse)
@handle_page_errors
async def diagnose_document(
    document_id: UUID,
    diagnostics: DiagnosticsService = Depends(get_diagnostics_service),
) -> DiagnosticsResponse:
    """
    Read-only health report for a document's page cache.

    Checks record/blob agreement, contiguity, placeholders, expiry,
    likely-blank pages and the last conversion's outcome.
    """
    report = await diagnostics.diagnose(document_id)
    return DiagnosticsResponse.model_validate(report.to_dict())


@study_room_router.get(
    "/items/{item_id}/pages",
    response_model=DocumentPagesResponse,
    responses={202: {"model": ConversionPendingResponse}},
)
@handle_page_errors
async def get_study_room_item_pages(
    item_id: UUID,
    wait: bool = Query(default=True, description="Convert synchronously on a cache miss"),
    download: bool = Query(default=False, description="Sign URLs as attachments"),
    retrieval: PageRetrievalService = Depends(get_retrieval_service),
):
    """Get pages for the document behind a member's study room item."""
    return await _get_pages(retrieval, ByStudyRoomItemId(item_id), wait, download)
