"""
Page cache store.

Authoritative store and freshness oracle for rendered pages. Rows live in
the page_cache table; bytes live in the pages bucket under a
version-tagged prefix so a reconversion never overwrites objects that
the current row set still points at.

Write protocol (writePages):
    1. Pick a version above every stored row and every listed blob
    2. Upload every page to {owner}/{document}/v{version}/page-{n}.{ext}
    3. In one transaction, delete the old rows and insert the new set;
       give up if the deleted rows carry a version at or above ours
    4. Remove blobs of lower versions
Readers therefore see either the whole old set or the whole new set, and
cleanup never touches a version another writer is still uploading.

Dependencies: sqlalchemy, studyroom.boundary, studyroom.core
System role: Page cache read/write operations
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Sequence
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studyroom.boundary.db.base import ensure_utc, utc_now
from studyroom.boundary.db.CRUD.page_cache_crud import page_cache_crud
from studyroom.boundary.db.models.document_model import DocumentModel
from studyroom.boundary.db.models.page_cache_model import PageCacheModel
from studyroom.boundary.storage.blob_store import BlobStore
from studyroom.core.exceptions import (
    ConversionFailed,
    PagesNotFoundError,
    StaleCacheIgnored,
    StorageError,
)
from studyroom.core.pages import (
    GenerationMethod,
    ImageFormat,
    PageUrl,
    QualityLevel,
    RenderedPage,
)
from studyroom.observability.log_utils import log_exception_with_context

logger = logging.getLogger(__name__)

_VERSION_SEGMENT = re.compile(r"/v(\d+)/page-")


@dataclass(frozen=True)
class CacheStats:
    """Aggregate read for diagnostics/monitoring."""

    document_id: UUID
    total_pages: int
    total_size_bytes: int
    newest_page_timestamp: datetime | None
    latest_version: int | None
    expires_at: datetime | None
    cache_hit_count: int
    fresh: bool


@dataclass(frozen=True)
class PageSetWrite:
    """Outcome of a successful writePages."""

    document_id: UUID
    version: int
    total_pages: int
    total_size_bytes: int
    expires_at: datetime


@dataclass(frozen=True)
class PageContent:
    """Bytes of one cached page."""

    page_number: int
    content: bytes
    content_type: str
    expires_at: datetime


def page_prefix(owner_id: UUID, document_id: UUID) -> str:
    """Blob prefix holding every version of a document's pages."""
    return f"{owner_id}/{document_id}/"


def page_path(
    owner_id: UUID,
    document_id: UUID,
    version: int,
    page_number: int,
    image_format: ImageFormat,
) -> str:
    """Deterministic blob path for one page of one version."""
    return (
        f"{page_prefix(owner_id, document_id)}v{version}/"
        f"page-{page_number}.{image_format.extension}"
    )


def blob_version(path: str) -> int | None:
    """Version segment of a page blob path, None for anything else."""
    match = _VERSION_SEGMENT.search(path)
    return int(match.group(1)) if match else None


def is_complete_set(records: Sequence[PageCacheModel]) -> bool:
    """True when records are exactly pages 1..N of a single version."""
    if not records:
        return False
    expected = records[0].total_pages
    return (
        [record.page_number for record in records] == list(range(1, expected + 1))
        and all(record.total_pages == expected for record in records)
        and len({record.version for record in records}) == 1
    )


class PageCacheService:
    """
    Page cache store.

    Takes a session factory rather than a session: writes commit on their
    own, and the orchestrator calls in from background tasks.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        page_store: BlobStore,
        signed_url_ttl_seconds: int = 3600,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Initialize page cache store.

        Args:
            session_factory: Async session factory
            page_store: Blob store for rendered pages
            signed_url_ttl_seconds: Lifetime of URLs handed to viewers
            clock: Source of "now" for expiry checks
        """
        self._session_factory = session_factory
        self._page_store = page_store
        self._signed_url_ttl_seconds = signed_url_ttl_seconds
        self._clock = clock

    @property
    def page_store(self) -> BlobStore:
        return self._page_store

    def now(self) -> datetime:
        return self._clock()

    async def has_fresh_pages(self, document_id: UUID) -> bool:
        """
        Whether a complete, unexpired, non-placeholder page set exists.

        Partial sets count as not fresh so incomplete documents are never served.

        Args:
            document_id: Document UUID

        Returns:
            bool: True iff fresh rows exist and equal the recorded page count
        """
        async with self._session_factory() as session:
            summary = await page_cache_crud.get_fresh_summary(session, document_id, self.now())
        return summary.is_complete

    async def get_page_urls(
        self,
        document_id: UUID,
        force_download: bool = False,
    ) -> list[PageUrl]:
        """
        Resolve every cached page to a signed URL, page 1 first.

        Increments cache_hit_count on each returned row.

        Args:
            document_id: Document UUID
            force_download: Sign URLs with an attachment disposition

        Returns:
            list[PageUrl]: One entry per page in ascending order

        Raises:
            PagesNotFoundError: No rows at all
            StaleCacheIgnored: Rows exist but are expired, placeholders or incomplete
            StorageError: URL signing failed
        """
        async with self._session_factory() as session:
            records = await page_cache_crud.get_fresh_pages(session, document_id, self.now())
            if not records:
                raise await self._miss_reason(session, document_id)
            if not is_complete_set(records):
                raise StaleCacheIgnored(str(document_id), "incomplete page set")

            urls = await asyncio.to_thread(self._sign_all, records, force_download)

            await page_cache_crud.increment_hits(session, [record.id for record in records])
            await session.commit()

        return urls

    async def get_page_content(self, document_id: UUID, page_number: int) -> PageContent:
        """
        Fetch one fresh page's bytes for direct streaming.

        Args:
            document_id: Document UUID
            page_number: 1-based page number

        Returns:
            PageContent with bytes and stored content type

        Raises:
            PagesNotFoundError: Page not cached
            StaleCacheIgnored: Page expired or placeholder
            BlobNotFoundError: Row exists but the object is gone
        """
        now = self.now()
        async with self._session_factory() as session:
            record = await page_cache_crud.get_page(session, document_id, page_number)
            if record is None:
                raise PagesNotFoundError(
                    str(document_id),
                    f"Page {page_number} of document {document_id} is not cached",
                    {"page_number": page_number},
                )
            if not record.is_fresh(now):
                reason = "placeholder" if not record.generation_method.is_real else "expired"
                raise StaleCacheIgnored(str(document_id), reason)

            content = await asyncio.to_thread(self._page_store.get, record.blob_path)

            await page_cache_crud.increment_hits(session, [record.id])
            await session.commit()

        return PageContent(
            page_number=page_number,
            content=content,
            content_type=record.image_format.content_type,
            expires_at=ensure_utc(record.expires_at),
        )

    async def get_cache_stats(self, document_id: UUID) -> CacheStats:
        """
        Aggregate totals for one document.

        Args:
            document_id: Document UUID

        Returns:
            CacheStats (zeros when nothing is cached)
        """
        async with self._session_factory() as session:
            aggregate = await page_cache_crud.get_aggregate(session, document_id)
            summary = await page_cache_crud.get_fresh_summary(session, document_id, self.now())

        return CacheStats(
            document_id=document_id,
            total_pages=aggregate.total_pages,
            total_size_bytes=aggregate.total_size_bytes,
            newest_page_timestamp=ensure_utc(aggregate.newest_page_timestamp),
            latest_version=aggregate.latest_version,
            expires_at=ensure_utc(aggregate.earliest_expiry),
            cache_hit_count=aggregate.total_hits,
            fresh=summary.is_complete,
        )

    async def write_pages(
        self,
        document: DocumentModel,
        pages: Sequence[RenderedPage],
        ttl: timedelta,
        generation_method: GenerationMethod = GenerationMethod.STANDARD,
        quality_level: QualityLevel = QualityLevel.STANDARD,
        processing_time_ms: int | None = None,
    ) -> PageSetWrite:
        """
        Replace a document's cached page set.

        Args:
            document: Document being cached
            pages: Rendered pages numbered 1..N in order
            ttl: Lifetime of the new rows
            generation_method: How the pages were produced
            quality_level: Rendering tier
            processing_time_ms: Conversion wall time for diagnostics

        Returns:
            PageSetWrite with the new version

        Raises:
            ConversionFailed: Any upload or the row swap failed; nothing
                from the new version is left referenced
        """
        document_id = document.id
        total = len(pages)
        if total == 0:
            raise ConversionFailed("No pages to write", str(document_id))
        if [page.page_number for page in pages] != list(range(1, total + 1)):
            raise ConversionFailed(
                "Pages must be numbered 1..N without gaps",
                str(document_id),
                total_pages=total,
            )

        version = await self._next_version(document)

        uploaded: list[str] = []
        for page in pages:
            path = page_path(document.owner_id, document_id, version, page.page_number, page.image_format)
            try:
                await asyncio.to_thread(
                    self._page_store.put,
                    path,
                    page.content,
                    page.image_format.content_type,
                )
            except StorageError as e:
                await self._discard_blobs(uploaded, document_id)
                raise ConversionFailed(
                    f"Upload failed for page {page.page_number} of {total}: {e.message}",
                    str(document_id),
                    processed_pages=len(uploaded),
                    total_pages=total,
                ) from e
            uploaded.append(path)

        expires_at = self.now() + ttl
        rows = [
            {
                "document_id": document_id,
                "page_number": page.page_number,
                "total_pages": total,
                "blob_path": path,
                "file_size_bytes": page.size_bytes,
                "image_format": page.image_format,
                "quality_level": quality_level,
                "version": version,
                "generation_method": generation_method,
                "expires_at": expires_at,
                "cache_hit_count": 0,
                "processing_time_ms": processing_time_ms,
            }
            for page, path in zip(pages, uploaded)
        ]

        try:
            async with self._session_factory() as session:
                removed = await page_cache_crud.pop_by_document(session, document_id)
                newer = [entry for entry in removed if entry.version >= version]
                if newer:
                    await session.rollback()
                    # Same-version paths are shared with the winning writer
                    referenced = {entry.blob_path for entry in newer}
                    await self._discard_blobs(
                        [path for path in uploaded if path not in referenced],
                        document_id,
                    )
                    raise ConversionFailed(
                        f"Page set v{version} superseded by v{max(e.version for e in newer)}",
                        str(document_id),
                        processed_pages=0,
                        total_pages=total,
                    )
                await page_cache_crud.bulk_create(session, rows)
                await session.commit()
        except SQLAlchemyError as e:
            await self._discard_blobs(uploaded, document_id)
            raise ConversionFailed(
                f"Failed to record page set: {e}",
                str(document_id),
                processed_pages=0,
                total_pages=total,
            ) from e

        await self._remove_unreferenced(
            document,
            [entry.blob_path for entry in removed],
            below_version=version,
        )

        logger.info(
            "Page set written",
            extra={
                "document_id": str(document_id),
                "version": version,
                "total_pages": total,
                "generation_method": generation_method.value,
            },
        )
        return PageSetWrite(
            document_id=document_id,
            version=version,
            total_pages=total,
            total_size_bytes=sum(page.size_bytes for page in pages),
            expires_at=expires_at,
        )

    async def invalidate(self, document: DocumentModel) -> int:
        """
        Drop every cached row for a document and the blobs of those versions.

        Blobs of versions above the deleted rows belong to a write still in
        progress and are left for that writer.

        Args:
            document: Document to purge

        Returns:
            int: Rows deleted
        """
        async with self._session_factory() as session:
            removed = await page_cache_crud.pop_by_document(session, document.id)
            await session.commit()

        if removed:
            await self._remove_unreferenced(
                document,
                [entry.blob_path for entry in removed],
                below_version=max(entry.version for entry in removed) + 1,
            )
        logger.info(
            "Page cache invalidated",
            extra={"document_id": str(document.id), "rows_deleted": len(removed)},
        )
        return len(removed)

    async def _miss_reason(self, session: AsyncSession, document_id: UUID) -> PagesNotFoundError:
        total = await page_cache_crud.count_by_document(session, document_id)
        if total == 0:
            return PagesNotFoundError(str(document_id))
        if await page_cache_crud.count_placeholders(session, document_id):
            return StaleCacheIgnored(str(document_id), "placeholder pages awaiting real conversion")
        return StaleCacheIgnored(str(document_id), "expired")

    def _sign_all(self, records: Sequence[PageCacheModel], force_download: bool) -> list[PageUrl]:
        return [
            PageUrl(
                page_number=record.page_number,
                url=self._page_store.sign_url(
                    record.blob_path,
                    self._signed_url_ttl_seconds,
                    force_download=force_download,
                ),
            )
            for record in records
        ]

    async def _next_version(self, document: DocumentModel) -> int:
        """
        One above the highest version in the table or under the blob prefix.

        Counting listed blobs keeps versions increasing after an invalidate
        emptied the table, so a path is never reused for different bytes.
        """
        async with self._session_factory() as session:
            highest = await page_cache_crud.get_max_version(session, document.id)
        try:
            listed = await asyncio.to_thread(
                self._page_store.list,
                page_prefix(document.owner_id, document.id),
            )
        except StorageError as e:
            log_exception_with_context(
                logger,
                "Listing page blobs failed; version taken from the table only",
                e,
                document_id=str(document.id),
            )
            return highest + 1
        for info in listed:
            highest = max(highest, blob_version(info.name) or 0)
        return highest + 1

    async def _remove_unreferenced(
        self,
        document: DocumentModel,
        known_paths: Sequence[str],
        below_version: int,
    ) -> None:
        """Remove known paths plus listed blobs of versions below `below_version`."""
        stale = set(known_paths)
        try:
            listed = await asyncio.to_thread(
                self._page_store.list,
                page_prefix(document.owner_id, document.id),
            )
        except StorageError as e:
            log_exception_with_context(
                logger,
                "Listing page blobs failed; orphan cleanup limited to known paths",
                e,
                document_id=str(document.id),
            )
        else:
            for info in listed:
                version = blob_version(info.name)
                if version is not None and version < below_version:
                    stale.add(info.name)
        await self._discard_blobs(sorted(stale), document.id)

    async def _discard_blobs(self, paths: Sequence[str], document_id: UUID) -> None:
        if not paths:
            return
        try:
            await asyncio.to_thread(self._page_store.remove, list(paths))
        except StorageError as e:
            log_exception_with_context(
                logger,
                "Failed to remove page blobs",
                e,
                document_id=str(document_id),
                path_count=len(paths),
            )
