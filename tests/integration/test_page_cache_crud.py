"""
Test suite for PageCacheCRUD against a real database.

Runs the freshness, version and bulk-replace queries on SQLite so the
SQL itself (not a mock) is under test.

System role: Verification of page cache persistence
"""

from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from studyroom.boundary.db.base import utc_now
from studyroom.boundary.db.CRUD.conversion_job_crud import conversion_job_crud
from studyroom.boundary.db.CRUD.page_cache_crud import PageCacheCRUD, page_cache_crud
from studyroom.boundary.db.models import ConversionStatus, PageCacheModel
from studyroom.core.pages import GenerationMethod, ImageFormat, QualityLevel


def row(document, page_number: int, total: int = 2, version: int = 1, **overrides) -> dict:
    values = {
        "document_id": document.id,
        "page_number": page_number,
        "total_pages": total,
        "blob_path": f"{document.owner_id}/{document.id}/v{version}/page-{page_number}.jpg",
        "file_size_bytes": 20_000,
        "image_format": ImageFormat.JPEG,
        "quality_level": QualityLevel.STANDARD,
        "version": version,
        "generation_method": GenerationMethod.STANDARD,
        "expires_at": utc_now() + timedelta(days=7),
    }
    values.update(overrides)
    return values


class TestPageCacheCRUDInit:
    """Test suite for PageCacheCRUD initialization."""

    def test_init_should_set_model_to_page_cache_model(self) -> None:
        """Test PageCacheCRUD initializes with PageCacheModel."""
        assert PageCacheCRUD().model == PageCacheModel


class TestPageCacheCRUDFreshness:
    """Test suite for freshness queries."""

    @pytest.mark.asyncio
    async def test_fresh_summary_should_be_complete_for_full_set(self, db_session, document) -> None:
        """Test pages 1..N of one version summarize as complete."""
        # Arrange
        await page_cache_crud.bulk_create(db_session, [row(document, 1), row(document, 2)])

        # Act
        summary = await page_cache_crud.get_fresh_summary(db_session, document.id, utc_now())

        # Assert
        assert summary.fresh_count == 2
        assert summary.expected_pages == 2
        assert summary.is_complete is True

    @pytest.mark.asyncio
    async def test_fresh_summary_should_exclude_expired_rows(self, db_session, document) -> None:
        """Test rows past expires_at are not fresh."""
        # Arrange
        expired = utc_now() - timedelta(seconds=1)
        await page_cache_crud.bulk_create(
            db_session,
            [row(document, 1, expires_at=expired), row(document, 2, expires_at=expired)],
        )

        # Act
        summary = await page_cache_crud.get_fresh_summary(db_session, document.id, utc_now())

        # Assert
        assert summary.fresh_count == 0
        assert summary.is_complete is False

    @pytest.mark.asyncio
    async def test_fresh_summary_should_exclude_placeholders(self, db_session, document) -> None:
        """Test placeholder rows never count as fresh."""
        # Arrange
        await page_cache_crud.bulk_create(
            db_session,
            [
                row(document, 1, generation_method=GenerationMethod.PLACEHOLDER),
                row(document, 2, generation_method=GenerationMethod.PLACEHOLDER),
            ],
        )

        # Act
        summary = await page_cache_crud.get_fresh_summary(db_session, document.id, utc_now())
        placeholders = await page_cache_crud.count_placeholders(db_session, document.id)

        # Assert
        assert summary.is_complete is False
        assert placeholders == 2

    @pytest.mark.asyncio
    async def test_fresh_summary_should_reject_partial_set(self, db_session, document) -> None:
        """Test a gap in page numbers is incomplete."""
        # Arrange
        await page_cache_crud.bulk_create(
            db_session,
            [row(document, 1, total=3), row(document, 3, total=3)],
        )

        # Act
        summary = await page_cache_crud.get_fresh_summary(db_session, document.id, utc_now())

        # Assert
        assert summary.fresh_count == 2
        assert summary.is_complete is False

    @pytest.mark.asyncio
    async def test_get_fresh_pages_should_order_by_page_number(self, db_session, document) -> None:
        """Test page 1 comes first regardless of insert order."""
        # Arrange
        await page_cache_crud.bulk_create(
            db_session,
            [row(document, 3, total=3), row(document, 1, total=3), row(document, 2, total=3)],
        )

        # Act
        records = await page_cache_crud.get_fresh_pages(db_session, document.id, utc_now())

        # Assert
        assert [record.page_number for record in records] == [1, 2, 3]


class TestPageCacheCRUDWrites:
    """Test suite for version and replace operations."""

    @pytest.mark.asyncio
    async def test_get_max_version_should_return_zero_when_empty(self, db_session, document) -> None:
        """Test a never-cached document starts at version 0."""
        assert await page_cache_crud.get_max_version(db_session, document.id) == 0

    @pytest.mark.asyncio
    async def test_get_max_version_should_return_highest_version(self, db_session, document) -> None:
        """Test the highest stored version is returned."""
        # Arrange
        await page_cache_crud.bulk_create(
            db_session,
            [row(document, 1, total=1, version=4)],
        )

        # Act
        version = await page_cache_crud.get_max_version(db_session, document.id)

        # Assert
        assert version == 4

    @pytest.mark.asyncio
    async def test_bulk_create_should_reject_duplicate_page_numbers(self, db_session, document) -> None:
        """Test (document_id, page_number) is unique."""
        with pytest.raises(IntegrityError):
            await page_cache_crud.bulk_create(db_session, [row(document, 1), row(document, 1)])

    @pytest.mark.asyncio
    async def test_pop_by_document_should_return_removed_paths_and_versions(
        self, db_session, document
    ) -> None:
        """Test pop reports exactly the rows its statement deleted."""
        # Arrange
        await page_cache_crud.bulk_create(
            db_session, [row(document, 1, version=3), row(document, 2, version=3)]
        )

        # Act
        removed = await page_cache_crud.pop_by_document(db_session, document.id)
        remaining = await page_cache_crud.count_by_document(db_session, document.id)

        # Assert
        assert sorted(entry.blob_path for entry in removed) == [
            f"{document.owner_id}/{document.id}/v3/page-1.jpg",
            f"{document.owner_id}/{document.id}/v3/page-2.jpg",
        ]
        assert {entry.version for entry in removed} == {3}
        assert remaining == 0

    @pytest.mark.asyncio
    async def test_pop_by_document_should_return_empty_when_nothing_cached(
        self, db_session, document
    ) -> None:
        """Test popping an uncached document removes nothing."""
        assert await page_cache_crud.pop_by_document(db_session, document.id) == []

    @pytest.mark.asyncio
    async def test_increment_hits_should_add_one_per_row(self, db_session, document) -> None:
        """Test hit counters aggregate across rows."""
        # Arrange
        records = await page_cache_crud.bulk_create(db_session, [row(document, 1), row(document, 2)])

        # Act
        await page_cache_crud.increment_hits(db_session, [record.id for record in records])
        await page_cache_crud.increment_hits(db_session, [records[0].id])
        aggregate = await page_cache_crud.get_aggregate(db_session, document.id)

        # Assert
        assert aggregate.total_hits == 3
        assert aggregate.total_pages == 2
        assert aggregate.total_size_bytes == 40_000
        assert aggregate.latest_version == 1


class TestPageCacheCRUDExpiry:
    """Test suite for get_expired_document_ids()."""

    @pytest.mark.asyncio
    async def test_expired_documents_should_include_only_fully_expired_sets(
        self, db_session, make_document
    ) -> None:
        """Test a document with any unexpired row is not purgeable."""
        # Arrange
        now = utc_now()
        expired = await make_document()
        mixed = await make_document()
        await page_cache_crud.bulk_create(
            db_session,
            [
                row(expired, 1, expires_at=now - timedelta(days=2)),
                row(expired, 2, expires_at=now - timedelta(days=1)),
                row(mixed, 1, expires_at=now - timedelta(days=1)),
                row(mixed, 2, expires_at=now + timedelta(days=1)),
            ],
        )

        # Act
        document_ids = await page_cache_crud.get_expired_document_ids(db_session, now, limit=10)

        # Assert
        assert document_ids == [expired.id]

    @pytest.mark.asyncio
    async def test_expired_documents_should_skip_documents_with_active_job(
        self, db_session, document
    ) -> None:
        """Test a document being reconverted is left to its runner."""
        # Arrange
        now = utc_now()
        await page_cache_crud.bulk_create(
            db_session, [row(document, 1, total=1, expires_at=now - timedelta(days=1))]
        )
        await conversion_job_crud.create(
            db_session,
            document_id=document.id,
            status=ConversionStatus.PROCESSING,
            result={},
        )

        # Act
        document_ids = await page_cache_crud.get_expired_document_ids(db_session, now, limit=10)

        # Assert
        assert document_ids == []

    @pytest.mark.asyncio
    async def test_expired_documents_should_respect_limit(self, db_session, make_document) -> None:
        """Test the oldest-expired documents come first, up to the limit."""
        # Arrange
        now = utc_now()
        older = await make_document()
        newer = await make_document()
        await page_cache_crud.bulk_create(
            db_session,
            [
                row(newer, 1, total=1, expires_at=now - timedelta(hours=1)),
                row(older, 1, total=1, expires_at=now - timedelta(days=3)),
            ],
        )

        # Act
        document_ids = await page_cache_crud.get_expired_document_ids(db_session, now, limit=1)

        # Assert
        assert document_ids == [older.id]
