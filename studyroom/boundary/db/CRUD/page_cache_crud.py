"""
Page cache CRUD operations.

Queries over the page_cache table: freshness summaries, ordered page
sets, version lookups and bulk replace. Freshness is always evaluated in
SQL against an explicit `now` so callers and tests agree on the clock.

Dependencies: sqlalchemy, studyroom.boundary.db.models
System role: Page cache persistence
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Sequence
from uuid import UUID

from sqlalchemy import delete, distinct, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from studyroom.boundary.db.CRUD.base_crud import BaseCRUD
from studyroom.boundary.db.models.conversion_job_model import ACTIVE_STATUSES, ConversionJobModel
from studyroom.boundary.db.models.page_cache_model import PageCacheModel
from studyroom.core.pages import GenerationMethod


@dataclass(frozen=True)
class FreshSummary:
    """Aggregate over a document's fresh, non-placeholder rows."""

    fresh_count: int
    min_page: int | None
    max_page: int | None
    expected_pages: int | None
    version_count: int

    @property
    def is_complete(self) -> bool:
        """True when the fresh rows form exactly pages 1..N of one version."""
        return (
            self.fresh_count > 0
            and self.version_count == 1
            and self.min_page == 1
            and self.max_page == self.expected_pages
            and self.fresh_count == self.expected_pages
        )


@dataclass(frozen=True)
class RemovedPage:
    """A row removed by pop_by_document()."""

    blob_path: str
    version: int


@dataclass(frozen=True)
class CacheAggregate:
    """Diagnostic totals over every row of a document."""

    total_pages: int
    total_size_bytes: int
    newest_page_timestamp: datetime | None
    latest_version: int | None
    earliest_expiry: datetime | None
    total_hits: int


class PageCacheCRUD(BaseCRUD[PageCacheModel]):
    """
    CRUD operations for PageCacheModel.

    Extends BaseCRUD with per-document set operations.
    """

    def __init__(self) -> None:
        """Initialize PageCacheCRUD with PageCacheModel."""
        super().__init__(PageCacheModel)

    @staticmethod
    def _fresh_clause(now: datetime):
        return (
            (PageCacheModel.expires_at > now)
            & (PageCacheModel.generation_method != GenerationMethod.PLACEHOLDER)
        )

    async def get_by_document(
        self,
        session: AsyncSession,
        document_id: UUID,
    ) -> Sequence[PageCacheModel]:
        """
        Retrieve every row for a document, fresh or not, by page number.

        Args:
            session: Async database session
            document_id: Document UUID

        Returns:
            Sequence of PageCacheModels ordered by page_number
        """
        stmt = (
            select(PageCacheModel)
            .where(PageCacheModel.document_id == document_id)
            .order_by(PageCacheModel.page_number)
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def get_fresh_pages(
        self,
        session: AsyncSession,
        document_id: UUID,
        now: datetime,
    ) -> Sequence[PageCacheModel]:
        """Retrieve fresh non-placeholder rows ordered by page number."""
        stmt = (
            select(PageCacheModel)
            .where(PageCacheModel.document_id == document_id)
            .where(self._fresh_clause(now))
            .order_by(PageCacheModel.page_number)
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def get_page(
        self,
        session: AsyncSession,
        document_id: UUID,
        page_number: int,
    ) -> PageCacheModel | None:
        """Retrieve one row by (document_id, page_number)."""
        stmt = select(PageCacheModel).where(
            (PageCacheModel.document_id == document_id)
            & (PageCacheModel.page_number == page_number)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_fresh_summary(
        self,
        session: AsyncSession,
        document_id: UUID,
        now: datetime,
    ) -> FreshSummary:
        """
        Summarize fresh rows in one aggregate query.

        Args:
            session: Async database session
            document_id: Document UUID
            now: Reference time for expiry

        Returns:
            FreshSummary over non-expired, non-placeholder rows
        """
        stmt = (
            select(
                func.count(PageCacheModel.id),
                func.min(PageCacheModel.page_number),
                func.max(PageCacheModel.page_number),
                func.max(PageCacheModel.total_pages),
                func.count(distinct(PageCacheModel.version)),
            )
            .where(PageCacheModel.document_id == document_id)
            .where(self._fresh_clause(now))
        )
        row = (await session.execute(stmt)).one()
        return FreshSummary(
            fresh_count=row[0] or 0,
            min_page=row[1],
            max_page=row[2],
            expected_pages=row[3],
            version_count=row[4] or 0,
        )

    async def count_by_document(self, session: AsyncSession, document_id: UUID) -> int:
        """Count every row for a document."""
        stmt = select(func.count(PageCacheModel.id)).where(
            PageCacheModel.document_id == document_id
        )
        return (await session.execute(stmt)).scalar_one()

    async def count_placeholders(self, session: AsyncSession, document_id: UUID) -> int:
        """Count placeholder rows for a document."""
        stmt = select(func.count(PageCacheModel.id)).where(
            (PageCacheModel.document_id == document_id)
            & (PageCacheModel.generation_method == GenerationMethod.PLACEHOLDER)
        )
        return (await session.execute(stmt)).scalar_one()

    async def get_max_version(self, session: AsyncSession, document_id: UUID) -> int:
        """Highest version stored for a document, 0 when none."""
        stmt = select(func.max(PageCacheModel.version)).where(
            PageCacheModel.document_id == document_id
        )
        return (await session.execute(stmt)).scalar_one_or_none() or 0

    async def get_aggregate(
        self,
        session: AsyncSession,
        document_id: UUID,
    ) -> CacheAggregate:
        """Totals for diagnostics and monitoring."""
        stmt = select(
            func.count(PageCacheModel.id),
            func.coalesce(func.sum(PageCacheModel.file_size_bytes), 0),
            func.max(PageCacheModel.created_at),
            func.max(PageCacheModel.version),
            func.min(PageCacheModel.expires_at),
            func.coalesce(func.sum(PageCacheModel.cache_hit_count), 0),
        ).where(PageCacheModel.document_id == document_id)
        row = (await session.execute(stmt)).one()
        return CacheAggregate(
            total_pages=row[0] or 0,
            total_size_bytes=int(row[1] or 0),
            newest_page_timestamp=row[2],
            latest_version=row[3],
            earliest_expiry=row[4],
            total_hits=int(row[5] or 0),
        )

    async def pop_by_document(
        self,
        session: AsyncSession,
        document_id: UUID,
    ) -> list[RemovedPage]:
        """
        Delete every row for a document and report what was removed.

        The deleted rows are read back in the same statement, so the caller
        sees exactly the set its transaction removed.

        Returns:
            list[RemovedPage]: blob path and version of each deleted row
        """
        stmt = (
            delete(PageCacheModel)
            .where(PageCacheModel.document_id == document_id)
            .returning(PageCacheModel.blob_path, PageCacheModel.version)
        )
        result = await session.execute(stmt)
        return [RemovedPage(blob_path=path, version=version) for path, version in result.all()]

    async def get_expired_document_ids(
        self,
        session: AsyncSession,
        now: datetime,
        limit: int,
    ) -> list[UUID]:
        """
        Documents whose every cached row expired before now.

        Documents with a QUEUED or PROCESSING conversion job are skipped;
        their page set is about to be replaced anyway.

        Args:
            session: Async database session
            now: Expiry reference time
            limit: Maximum documents returned

        Returns:
            list[UUID]: Oldest-expired documents first
        """
        active = select(ConversionJobModel.document_id).where(
            ConversionJobModel.status.in_(ACTIVE_STATUSES)
        )
        stmt = (
            select(PageCacheModel.document_id)
            .where(PageCacheModel.document_id.not_in(active))
            .group_by(PageCacheModel.document_id)
            .having(func.max(PageCacheModel.expires_at) <= now)
            .order_by(func.max(PageCacheModel.expires_at))
            .limit(limit)
        )
        return list((await session.execute(stmt)).scalars().all())

    async def bulk_create(
        self,
        session: AsyncSession,
        rows: Sequence[dict],
    ) -> list[PageCacheModel]:
        """
        Stage many rows in the current transaction.

        Args:
            session: Async database session
            rows: Column values, one dict per page

        Returns:
            Created (flushed, uncommitted) instances
        """
        instances = [PageCacheModel(**row) for row in rows]
        session.add_all(instances)
        await session.flush()
        return instances

    async def increment_hits(self, session: AsyncSession, ids: Sequence[UUID]) -> None:
        """Add one to cache_hit_count for each row id."""
        if not ids:
            return
        stmt = (
            update(PageCacheModel)
            .where(PageCacheModel.id.in_(list(ids)))
            .values(cache_hit_count=PageCacheModel.cache_hit_count + 1)
            .execution_options(synchronize_session=False)
        )
        await session.execute(stmt)


page_cache_crud = PageCacheCRUD()
