"""
Conversion orchestrator.

Coordinates one document's conversion end-to-end:
    1. Acquire the per-document gate (one QUEUED/PROCESSING job)
    2. Load the original PDF from the documents bucket
    3. Rasterize under a timeout in a worker thread
    4. Run the blank-page check; re-render once when most pages look blank
    5. Write the page set through the page cache store
    6. Close the job as COMPLETED, or FAILED with a classified error

Two layers keep conversions single-flight. Within a process, concurrent
callers share one asyncio task per document. Across processes, the
partial unique index on conversion_jobs rejects a second active job and
the loser polls the winner's row until it is terminal.

Dependencies: sqlalchemy, studyroom.boundary, studyroom.core
System role: Conversion state machine and retry policy
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Sequence
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studyroom.application.services.page_cache_service import PageCacheService
from studyroom.boundary.db.base import ensure_utc, utc_now
from studyroom.boundary.db.CRUD.conversion_job_crud import conversion_job_crud
from studyroom.boundary.db.CRUD.document_crud import document_crud
from studyroom.boundary.db.models.conversion_job_model import (
    ConversionJobModel,
    ConversionStatus,
)
from studyroom.boundary.db.models.document_model import DocumentModel
from studyroom.boundary.storage.blob_store import BlobStore
from studyroom.configs.conversion import ConversionSettings
from studyroom.core.blank_page import BlankPageReport, classify_pages, log_report
from studyroom.core.exceptions import (
    BlobNotFoundError,
    ConversionExhausted,
    ConversionFailed,
    ConversionInProgressError,
    DocumentNotFoundError,
    ErrorKind,
    JobNotFoundError,
    ResourceExhaustedError,
    SourceNotFoundError,
    StudyRoomException,
    UnsupportedFormatError,
    exception_for_kind,
)
from studyroom.core.pages import (
    GenerationMethod,
    ImageFormat,
    QualityLevel,
    RasterOptions,
    RenderedPage,
)
from studyroom.core.rasterizer import Rasterizer
from studyroom.observability.log_utils import log_exception_with_context

logger = logging.getLogger(__name__)

# Source problems that no amount of retrying will fix
FATAL_KINDS = frozenset(
    {
        ErrorKind.SOURCE_NOT_FOUND,
        ErrorKind.CORRUPT_SOURCE,
        ErrorKind.UNSUPPORTED_FORMAT,
    }
)

_ACQUIRE_ATTEMPTS = 3

# A cancelled job keeps the budget of the failure it was queued after
_BUDGET_STATUSES = (ConversionStatus.FAILED, ConversionStatus.CANCELLED)


@dataclass(frozen=True)
class ConversionOutcome:
    """
    Result of convert().

    rasterized is False when the call was served by an existing fresh
    cache or by attaching to another caller's job.
    """

    document_id: UUID
    job_id: UUID | None
    version: int | None
    total_pages: int
    rasterized: bool
    blank_report: BlankPageReport | None = None
    generation_method: GenerationMethod | None = None


@dataclass(frozen=True)
class EnqueueResult:
    """Result of enqueue(): the job to poll, or a fresh cache."""

    job: ConversionJobModel | None
    created: bool
    already_cached: bool = False


@dataclass(frozen=True)
class BatchEnqueueItem:
    """One entry of enqueue_batch(): a result or the error that stopped it."""

    document_id: UUID
    result: EnqueueResult | None = None
    error: StudyRoomException | None = None


def raster_options_from_settings(settings: ConversionSettings) -> RasterOptions:
    """Build rasterizer options from conversion settings."""
    return RasterOptions(
        dpi=settings.dpi,
        image_format=ImageFormat(settings.image_format.lower()),
        jpeg_quality=settings.jpeg_quality,
        max_width=settings.max_width,
        max_height=settings.max_height,
    )


class ConversionOrchestrator:
    """
    Conversion orchestrator.

    Owns the ConversionJob state machine:
        IDLE -> QUEUED -> PROCESSING -> COMPLETED | FAILED
        QUEUED -> CANCELLED (withdrawn before a runner claims it)
    A new request after FAILED inherits retry_count and is refused with
    ConversionExhausted once retry_count reaches max_retries.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        page_cache: PageCacheService,
        source_store: BlobStore,
        rasterizer: Rasterizer,
        settings: ConversionSettings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Initialize conversion orchestrator.

        Args:
            session_factory: Async session factory
            page_cache: Page cache store the pages are written through
            source_store: Blob store holding original uploads
            rasterizer: PDF to image renderer
            settings: Conversion settings (defaults when omitted)
            clock: Source of "now" for stale-job detection
        """
        self._session_factory = session_factory
        self._page_cache = page_cache
        self._source_store = source_store
        self._rasterizer = rasterizer
        self._settings = settings or ConversionSettings()
        self._clock = clock
        self._raster_options = raster_options_from_settings(self._settings)
        self._inflight: dict[UUID, asyncio.Task] = {}

    @property
    def settings(self) -> ConversionSettings:
        return self._settings

    async def convert(self, document_id: UUID, force: bool = False) -> ConversionOutcome:
        """
        Ensure a document has a fresh page set, converting if needed.

        Concurrent calls for the same document share one conversion; a
        cancelled caller does not cancel the shared work.

        Args:
            document_id: Document UUID
            force: Reconvert even when fresh pages exist; resets the retry budget

        Returns:
            ConversionOutcome for the page set now in the cache

        Raises:
            DocumentNotFoundError: No such document
            UnsupportedFormatError: Document is not a PDF, or is encrypted
            SourceNotFoundError: Original file missing
            CorruptSourceError: Original file unreadable
            ResourceExhaustedError: Rasterization timed out or ran out of memory
            ConversionFailed: Page set could not be written
            ConversionExhausted: Retry budget spent
        """
        task = self._inflight.get(document_id)
        if task is None:
            task = asyncio.ensure_future(self._convert(document_id, force))
            self._inflight[document_id] = task
            task.add_done_callback(lambda done: self._forget(document_id, done))
        else:
            logger.debug(
                "Joining in-flight conversion",
                extra={"document_id": str(document_id)},
            )
        return await asyncio.shield(task)

    async def enqueue(self, document_id: UUID, force: bool = False) -> EnqueueResult:
        """
        Create a QUEUED job for a background worker, or return the active one.

        Args:
            document_id: Document UUID
            force: Queue even when fresh pages exist; resets the retry budget

        Returns:
            EnqueueResult: created is True only when the caller must dispatch
            the job to a worker

        Raises:
            DocumentNotFoundError: No such document
            UnsupportedFormatError: Document is not a PDF
            ConversionExhausted: Retry budget spent
        """
        document = await self._load_document(document_id)
        if not force and await self._page_cache.has_fresh_pages(document_id):
            return EnqueueResult(job=None, created=False, already_cached=True)

        job, owned = await self._acquire_job(document, force)
        return EnqueueResult(job=job, created=owned)

    async def requeue(self, job_id: UUID) -> EnqueueResult:
        """
        Queue the follow-up attempt for a failed job.

        Args:
            job_id: The FAILED job

        Returns:
            EnqueueResult: created is True when a new QUEUED job must be dispatched

        Raises:
            JobNotFoundError: Job not found
            ConversionExhausted: Retry budget spent
        """
        async with self._session_factory() as session:
            job = await conversion_job_crud.get_by_id(session, job_id)
        if job is None:
            raise JobNotFoundError(str(job_id))

        document = await self._load_document(job.document_id)
        new_job, owned = await self._acquire_job(document, force=False)
        return EnqueueResult(job=new_job, created=owned)

    async def enqueue_batch(
        self,
        document_ids: Sequence[UUID],
        force: bool = False,
    ) -> list[BatchEnqueueItem]:
        """
        enqueue() each document; one document's error does not stop the rest.

        Args:
            document_ids: Documents to queue, duplicates ignored
            force: Passed through to every enqueue

        Returns:
            list[BatchEnqueueItem] in request order
        """
        items: list[BatchEnqueueItem] = []
        for document_id in dict.fromkeys(document_ids):
            try:
                result = await self.enqueue(document_id, force=force)
            except StudyRoomException as e:
                logger.warning(
                    "Batch conversion entry rejected",
                    extra={"document_id": str(document_id), "error_kind": e.kind.value},
                )
                items.append(BatchEnqueueItem(document_id=document_id, error=e))
                continue
            items.append(BatchEnqueueItem(document_id=document_id, result=result))
        return items

    async def invalidate(self, document: DocumentModel) -> int:
        """
        Drop a document's cached pages while no conversion holds its gate.

        Args:
            document: Document to purge

        Returns:
            int: Rows deleted

        Raises:
            ConversionInProgressError: A QUEUED or PROCESSING job exists
        """
        if document.id in self._inflight:
            raise ConversionInProgressError(str(document.id))

        async with self._session_factory() as session:
            active = await conversion_job_crud.get_active_for_document(session, document.id)
            if active is not None and self._is_abandoned(active):
                await self._expire_abandoned(session, active)
                active = None
        if active is not None:
            raise ConversionInProgressError(str(document.id), str(active.id))

        return await self._page_cache.invalidate(document)

    async def run_job(self, job_id: UUID) -> ConversionOutcome | None:
        """
        Run a QUEUED job created by enqueue().

        Jobs that are no longer QUEUED (already run, or failed by crash
        recovery) are skipped.

        Args:
            job_id: Job UUID

        Returns:
            ConversionOutcome, or None when the job was skipped

        Raises:
            Any conversion error, after it is recorded on the job
        """
        async with self._session_factory() as session:
            job = await conversion_job_crud.get_by_id(session, job_id)

        if job is None:
            logger.warning("Conversion job not found", extra={"job_id": str(job_id)})
            return None
        if job.status != ConversionStatus.QUEUED:
            logger.info(
                "Skipping conversion job that is not queued",
                extra={"job_id": str(job_id), "status": job.status.value},
            )
            return None

        try:
            document = await self._load_document(job.document_id)
        except StudyRoomException as e:
            await self._record_failure(job, e)
            raise

        return await self._run(document, job)

    async def _convert(self, document_id: UUID, force: bool) -> ConversionOutcome:
        document = await self._load_document(document_id)

        if not force:
            cached = await self._cached_outcome(document_id)
            if cached is not None:
                return cached

        job, owned = await self._acquire_job(document, force)
        if not owned:
            logger.info(
                "Attaching to active conversion job",
                extra={"document_id": str(document_id), "job_id": str(job.id)},
            )
            return await self._wait_for_job(job.id, document_id)

        outcome = await self._run(document, job)
        if outcome is None:
            return await self._wait_for_job(job.id, document_id)
        return outcome

    async def _load_document(self, document_id: UUID) -> DocumentModel:
        async with self._session_factory() as session:
            document = await document_crud.get_by_id(session, document_id)
        if document is None:
            raise DocumentNotFoundError(str(document_id))
        if not document.is_pdf:
            raise UnsupportedFormatError(
                f"Only PDF documents can be converted, got {document.content_type}",
                str(document_id),
            )
        return document

    async def _cached_outcome(self, document_id: UUID) -> ConversionOutcome | None:
        stats = await self._page_cache.get_cache_stats(document_id)
        if not stats.fresh:
            return None
        return ConversionOutcome(
            document_id=document_id,
            job_id=None,
            version=stats.latest_version,
            total_pages=stats.total_pages,
            rasterized=False,
        )

    async def _acquire_job(
        self,
        document: DocumentModel,
        force: bool,
    ) -> tuple[ConversionJobModel, bool]:
        """
        Insert a QUEUED job, or find the one holding the gate.

        Returns:
            (job, owned): owned is True when this call created the job
        """
        for _ in range(_ACQUIRE_ATTEMPTS):
            async with self._session_factory() as session:
                active = await conversion_job_crud.get_active_for_document(session, document.id)
                if active is not None and self._is_abandoned(active):
                    await self._expire_abandoned(session, active)
                    active = None
                if active is not None:
                    return active, False

                retry_count = 0
                latest = await conversion_job_crud.get_latest_for_document(session, document.id)
                if latest is not None and latest.status in _BUDGET_STATUSES and not force:
                    retry_count = latest.retry_count
                    if retry_count >= self._settings.max_retries:
                        raise ConversionExhausted(
                            str(document.id),
                            retry_count,
                            latest.error_message,
                        )

                try:
                    job = await conversion_job_crud.create(
                        session,
                        document_id=document.id,
                        status=ConversionStatus.QUEUED,
                        progress=0,
                        retry_count=retry_count,
                        forced=force,
                        result={},
                    )
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    logger.debug(
                        "Lost race for conversion gate",
                        extra={"document_id": str(document.id)},
                    )
                    active = await conversion_job_crud.get_active_for_document(
                        session, document.id
                    )
                    if active is not None:
                        return active, False
                    continue

            logger.info(
                "Conversion job queued",
                extra={
                    "document_id": str(document.id),
                    "job_id": str(job.id),
                    "retry_count": retry_count,
                    "forced": force,
                },
            )
            return job, True

        raise ConversionFailed(
            "Could not acquire the conversion slot for this document",
            str(document.id),
        )

    def _is_abandoned(self, job: ConversionJobModel) -> bool:
        last_touched = ensure_utc(job.updated_at)
        stale_after = timedelta(seconds=self._settings.stale_job_seconds)
        return last_touched is not None and last_touched < self._clock() - stale_after

    async def _expire_abandoned(self, session: AsyncSession, job: ConversionJobModel) -> None:
        await conversion_job_crud.mark_failed(
            session,
            job.id,
            ErrorKind.TIMEOUT,
            "Conversion abandoned: job was not updated within "
            f"{self._settings.stale_job_seconds:.0f}s",
            retry_count=job.retry_count + 1,
        )
        await session.commit()
        logger.warning(
            "Recovered abandoned conversion job",
            extra={
                "document_id": str(job.document_id),
                "job_id": str(job.id),
                "status": job.status.value,
            },
        )

    async def _wait_for_job(self, job_id: UUID, document_id: UUID) -> ConversionOutcome:
        """Poll another caller's job until it is terminal."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._settings.job_wait_timeout_seconds

        while True:
            async with self._session_factory() as session:
                job = await conversion_job_crud.get_by_id(session, job_id)
                if job is None:
                    raise ConversionFailed(f"Conversion job {job_id} disappeared", str(document_id))

                if job.status == ConversionStatus.COMPLETED:
                    return self._outcome_from_job(job)

                if job.status == ConversionStatus.FAILED:
                    raise exception_for_kind(
                        job.error_kind or ErrorKind.CONVERSION_FAILED,
                        job.error_message or "Conversion failed",
                        str(document_id),
                    )

                if job.status == ConversionStatus.CANCELLED:
                    raise ConversionFailed(
                        f"Conversion job {job_id} was cancelled before it ran",
                        str(document_id),
                    )

                if self._is_abandoned(job):
                    await self._expire_abandoned(session, job)
                    raise ResourceExhaustedError(
                        "Conversion was abandoned by another worker",
                        str(document_id),
                        timed_out=True,
                    )

            if loop.time() >= deadline:
                raise ResourceExhaustedError(
                    "Timed out waiting for conversion to finish",
                    str(document_id),
                    timed_out=True,
                    details={"job_id": str(job_id)},
                )
            await asyncio.sleep(self._settings.job_poll_interval_seconds)

    @staticmethod
    def _outcome_from_job(job: ConversionJobModel) -> ConversionOutcome:
        result = job.result or {}
        report = result.get("blank_page_report")
        method = result.get("generation_method")
        return ConversionOutcome(
            document_id=job.document_id,
            job_id=job.id,
            version=result.get("version"),
            total_pages=job.processed_pages,
            rasterized=False,
            blank_report=BlankPageReport.from_dict(report) if report else None,
            generation_method=GenerationMethod(method) if method else None,
        )

    async def _run(
        self,
        document: DocumentModel,
        job: ConversionJobModel,
    ) -> ConversionOutcome | None:
        """Drive a QUEUED job to a terminal state; None if another runner claimed it."""
        document_id = str(document.id)
        started = time.monotonic()

        async with self._session_factory() as session:
            claimed = await conversion_job_crud.mark_processing(session, job.id)
            await session.commit()
        if claimed is None:
            logger.info(
                "Conversion job already claimed",
                extra={"document_id": document_id, "job_id": str(job.id)},
            )
            return None

        try:
            logger.info(
                "Conversion started",
                extra={"document_id": document_id, "job_id": str(job.id)},
            )

            source = await self._load_source(document)
            pages, report, method = await self._render(document, source)

            async with self._session_factory() as session:
                await conversion_job_crud.update_progress(
                    session, job.id, progress=60, total_pages=len(pages)
                )
                await session.commit()

            processing_time_ms = int((time.monotonic() - started) * 1000)
            written = await self._page_cache.write_pages(
                document,
                pages,
                ttl=timedelta(days=self._settings.cache_ttl_days),
                generation_method=method,
                quality_level=QualityLevel(self._settings.quality_level.lower()),
                processing_time_ms=processing_time_ms,
            )

            result_data = {
                "version": written.version,
                "total_pages": written.total_pages,
                "total_size_bytes": written.total_size_bytes,
                "generation_method": method.value,
                "blank_page_report": report.to_dict(),
                "processing_time_ms": processing_time_ms,
            }
            async with self._session_factory() as session:
                closed = await conversion_job_crud.mark_completed(
                    session,
                    job.id,
                    processed_pages=written.total_pages,
                    result_data=result_data,
                )
                await session.commit()
            if closed is None:
                logger.warning(
                    "Conversion finished after its job was closed by crash recovery",
                    extra={"document_id": document_id, "job_id": str(job.id)},
                )

        except Exception as e:
            await self._record_failure(job, e)
            raise

        logger.info(
            "Conversion completed",
            extra={
                "document_id": document_id,
                "job_id": str(job.id),
                "version": written.version,
                "total_pages": written.total_pages,
                "processing_time_ms": processing_time_ms,
            },
        )
        return ConversionOutcome(
            document_id=document.id,
            job_id=job.id,
            version=written.version,
            total_pages=written.total_pages,
            rasterized=True,
            blank_report=report,
            generation_method=method,
        )

    async def _load_source(self, document: DocumentModel) -> bytes:
        try:
            return await asyncio.to_thread(self._source_store.get, document.storage_path)
        except BlobNotFoundError as e:
            raise SourceNotFoundError(
                f"Original file missing at {document.storage_path}",
                str(document.id),
            ) from e

    async def _render(
        self,
        document: DocumentModel,
        source: bytes,
    ) -> tuple[list[RenderedPage], BlankPageReport, GenerationMethod]:
        """Rasterize, then re-render once if most pages look blank."""
        threshold = self._settings.blank_page_threshold_bytes

        pages = await self._rasterize(document, source)
        report = classify_pages((page.content for page in pages), threshold)
        log_report(report, str(document.id))

        if report.suspicious_fraction <= self._settings.blank_retry_fraction:
            return pages, report, GenerationMethod.STANDARD

        logger.warning(
            "Re-rendering document after blank-page check",
            extra={
                "document_id": str(document.id),
                "suspicious_pages": len(report.suspicious_pages),
                "total_pages": report.total_pages,
            },
        )
        retry_pages = await self._rasterize(document, source)
        retry_report = classify_pages((page.content for page in retry_pages), threshold)
        log_report(retry_report, str(document.id))

        if len(retry_report.suspicious_pages) < len(report.suspicious_pages):
            return retry_pages, retry_report, GenerationMethod.RERENDERED
        return pages, report, GenerationMethod.STANDARD

    async def _rasterize(self, document: DocumentModel, source: bytes) -> list[RenderedPage]:
        timeout = self._settings.timeout_seconds
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._rasterizer.rasterize, source, self._raster_options),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise ResourceExhaustedError(
                f"Rasterization exceeded {timeout:g}s",
                str(document.id),
                timed_out=True,
            ) from e

    async def _record_failure(self, job: ConversionJobModel, error: Exception) -> None:
        """Close the job as FAILED with the classified error."""
        kind = error.kind if isinstance(error, StudyRoomException) else ErrorKind.UNKNOWN
        if kind in FATAL_KINDS:
            retry_count = self._settings.max_retries
        else:
            retry_count = job.retry_count + 1
        if isinstance(error, StudyRoomException):
            message = error.message
        else:
            message = f"{type(error).__name__}: {error}"

        try:
            async with self._session_factory() as session:
                await conversion_job_crud.mark_failed(
                    session,
                    job.id,
                    kind,
                    message,
                    retry_count=retry_count,
                    processed_pages=getattr(error, "processed_pages", None),
                )
                await session.commit()
        except SQLAlchemyError as db_error:
            log_exception_with_context(
                logger,
                "Failed to record conversion failure",
                db_error,
                job_id=str(job.id),
                document_id=str(job.document_id),
            )

        logger.error(
            "Conversion failed",
            extra={
                "document_id": str(job.document_id),
                "job_id": str(job.id),
                "error_kind": kind.value,
                "error_message": message,
                "retry_count": retry_count,
                "max_retries": self._settings.max_retries,
            },
        )

    def _forget(self, document_id: UUID, task: asyncio.Task) -> None:
        if self._inflight.get(document_id) is task:
            del self._inflight[document_id]
        if not task.cancelled():
            # Mark the exception retrieved; awaiting callers already saw it
            task.exception()
