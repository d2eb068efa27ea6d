"""
Page retrieval service.

Single read-path entry point for viewers. Serves signed URLs from the
page cache when a fresh, complete set exists; otherwise converts (or, for
non-blocking callers, queues a conversion and hands back a job to poll).

Placeholder rows are never served: a document whose only pages are
placeholders is reported as pending a real conversion.

Dependencies: studyroom.application.services, studyroom.core
System role: Viewer-facing page access
"""

import logging
from dataclasses import dataclass
from typing import Callable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studyroom.application.services.conversion_service import ConversionOrchestrator
from studyroom.application.services.document_resolver import DocumentRef, resolve_document
from studyroom.application.services.page_cache_service import (
    CacheStats,
    PageCacheService,
    PageContent,
)
from studyroom.boundary.db.models.conversion_job_model import ConversionStatus
from studyroom.boundary.db.models.document_model import DocumentModel
from studyroom.core.exceptions import (
    PagesNotFoundError,
    StaleCacheIgnored,
    UnsupportedFormatError,
)
from studyroom.core.pages import PageUrl

logger = logging.getLogger(__name__)

JobDispatcher = Callable[[UUID], None]


@dataclass(frozen=True)
class DocumentPages:
    """Ordered page URLs for one document."""

    document_id: UUID
    total_pages: int
    pages: list[PageUrl]
    cached: bool


@dataclass(frozen=True)
class PendingConversion:
    """Returned to non-blocking callers while a conversion runs."""

    document_id: UUID
    job_id: UUID
    status: ConversionStatus
    pending_real_conversion: bool = False


class PageRetrievalService:
    """
    Page retrieval service.

    Never returns an empty or placeholder page list as success; every
    miss ends in fresh URLs, a pending job, or a raised error.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        page_cache: PageCacheService,
        orchestrator: ConversionOrchestrator,
        dispatcher: JobDispatcher | None = None,
    ) -> None:
        """
        Initialize page retrieval service.

        Args:
            session_factory: Async session factory
            page_cache: Page cache store
            orchestrator: Conversion orchestrator
            dispatcher: Hands newly queued job ids to a background worker
                (required for non-blocking reads)
        """
        self._session_factory = session_factory
        self._page_cache = page_cache
        self._orchestrator = orchestrator
        self._dispatcher = dispatcher

    async def resolve(self, ref: DocumentRef | UUID) -> DocumentModel:
        """Load the document a reference points at."""
        async with self._session_factory() as session:
            return await resolve_document(session, ref)

    async def get_pages(
        self,
        ref: DocumentRef | UUID,
        wait: bool = True,
        force_download: bool = False,
    ) -> DocumentPages | PendingConversion:
        """
        Return every page of a document as a signed URL.

        Args:
            ref: Document or study room item reference
            wait: Convert synchronously on a miss; when False, queue a
                background conversion and return PendingConversion
            force_download: Sign URLs with an attachment disposition

        Returns:
            DocumentPages (cached=True on the fast path), or PendingConversion

        Raises:
            DocumentNotFoundError: Reference points at nothing
            UnsupportedFormatError: Document is not a PDF
            ConversionError: Conversion failed (subclass names the cause)
        """
        document = await self.resolve(ref)
        if not document.is_pdf:
            raise UnsupportedFormatError(
                f"Document {document.id} is not a PDF ({document.content_type})",
                str(document.id),
            )

        pending_real_conversion = False
        try:
            urls = await self._page_cache.get_page_urls(document.id, force_download=force_download)
            return DocumentPages(
                document_id=document.id,
                total_pages=len(urls),
                pages=urls,
                cached=True,
            )
        except StaleCacheIgnored as e:
            pending_real_conversion = "placeholder" in e.reason
            logger.info(
                "Cached pages ignored",
                extra={"document_id": str(document.id), "reason": e.reason},
            )
        except PagesNotFoundError:
            logger.info("Page cache miss", extra={"document_id": str(document.id)})

        if not wait:
            pending = await self._queue_conversion(document, pending_real_conversion)
            if pending is not None:
                return pending
            # Became fresh while queueing
            urls = await self._page_cache.get_page_urls(document.id, force_download=force_download)
            return DocumentPages(document.id, len(urls), urls, cached=True)

        outcome = await self._orchestrator.convert(document.id)
        urls = await self._page_cache.get_page_urls(document.id, force_download=force_download)
        logger.info(
            "Pages served after conversion",
            extra={
                "document_id": str(document.id),
                "total_pages": len(urls),
                "version": outcome.version,
            },
        )
        return DocumentPages(
            document_id=document.id,
            total_pages=len(urls),
            pages=urls,
            cached=False,
        )

    async def get_page(self, ref: DocumentRef | UUID, page_number: int) -> PageContent:
        """
        Return one page's bytes, converting first on a miss.

        Args:
            ref: Document or study room item reference
            page_number: 1-based page number

        Returns:
            PageContent with the stored content type

        Raises:
            DocumentNotFoundError: Reference points at nothing
            PagesNotFoundError: Page number outside the converted document
            ConversionError: Conversion failed
        """
        document = await self.resolve(ref)
        try:
            return await self._page_cache.get_page_content(document.id, page_number)
        except PagesNotFoundError:
            if await self._page_cache.has_fresh_pages(document.id):
                raise

        await self._orchestrator.convert(document.id)
        return await self._page_cache.get_page_content(document.id, page_number)

    async def get_cache_stats(self, ref: DocumentRef | UUID) -> CacheStats:
        """Aggregate cache totals for a document."""
        document = await self.resolve(ref)
        return await self._page_cache.get_cache_stats(document.id)

    async def invalidate(self, ref: DocumentRef | UUID) -> int:
        """
        Drop a document's cached pages; returns rows removed.

        Raises:
            ConversionInProgressError: A conversion holds the document's gate
        """
        document = await self.resolve(ref)
        return await self._orchestrator.invalidate(document)

    async def _queue_conversion(
        self,
        document: DocumentModel,
        pending_real_conversion: bool,
    ) -> PendingConversion | None:
        if self._dispatcher is None:
            raise RuntimeError("Non-blocking reads need a job dispatcher")

        enqueued = await self._orchestrator.enqueue(document.id)
        if enqueued.already_cached:
            return None

        job = enqueued.job
        if enqueued.created:
            self._dispatcher(job.id)
        return PendingConversion(
            document_id=document.id,
            job_id=job.id,
            status=job.status,
            pending_real_conversion=pending_real_conversion,
        )
