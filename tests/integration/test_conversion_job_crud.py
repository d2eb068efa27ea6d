"""
Test suite for ConversionJobCRUD against a real database.

Covers the per-document active-job gate (partial unique index), the
atomic QUEUED -> PROCESSING claim and terminal transitions.

System role: Verification of conversion job persistence
"""

from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from studyroom.boundary.db.base import utc_now
from studyroom.boundary.db.CRUD.conversion_job_crud import ConversionJobCRUD, conversion_job_crud
from studyroom.boundary.db.models import ConversionJobModel, ConversionStatus
from studyroom.core.exceptions import ErrorKind


async def create_job(session, document, status=ConversionStatus.QUEUED, **fields):
    return await conversion_job_crud.create(
        session,
        document_id=document.id,
        status=status,
        result={},
        **fields,
    )


class TestConversionJobCRUDInit:
    """Test suite for ConversionJobCRUD initialization."""

    def test_init_should_set_model_to_conversion_job_model(self) -> None:
        """Test ConversionJobCRUD initializes with ConversionJobModel."""
        assert ConversionJobCRUD().model == ConversionJobModel


class TestConversionJobGate:
    """Test suite for the one-active-job-per-document index."""

    @pytest.mark.asyncio
    async def test_second_active_job_should_violate_gate(self, db_session, document) -> None:
        """Test two QUEUED jobs for one document are rejected."""
        # Arrange
        await create_job(db_session, document)

        # Act / Assert
        with pytest.raises(IntegrityError):
            await create_job(db_session, document)

    @pytest.mark.asyncio
    async def test_terminal_jobs_should_not_hold_gate(self, db_session, document) -> None:
        """Test finished jobs don't block a new one."""
        # Arrange
        await create_job(db_session, document, status=ConversionStatus.FAILED)
        await create_job(db_session, document, status=ConversionStatus.COMPLETED)

        # Act
        job = await create_job(db_session, document)

        # Assert
        active = await conversion_job_crud.get_active_for_document(db_session, document.id)
        assert active.id == job.id

    @pytest.mark.asyncio
    async def test_get_latest_for_document_should_return_newest(self, db_session, document) -> None:
        """Test the most recently created job is returned."""
        # Arrange
        await create_job(db_session, document, status=ConversionStatus.FAILED, retry_count=1)
        newest = await create_job(db_session, document, status=ConversionStatus.FAILED, retry_count=2)

        # Act
        latest = await conversion_job_crud.get_latest_for_document(db_session, document.id)

        # Assert
        assert latest.id == newest.id
        assert latest.retry_count == 2


class TestConversionJobTransitions:
    """Test suite for status transitions."""

    @pytest.mark.asyncio
    async def test_mark_processing_should_claim_queued_job_once(self, db_session, document) -> None:
        """Test only the first claim of a QUEUED job succeeds."""
        # Arrange
        job = await create_job(db_session, document)

        # Act
        first = await conversion_job_crud.mark_processing(db_session, job.id)
        second = await conversion_job_crud.mark_processing(db_session, job.id)

        # Assert
        assert first is not None
        assert first.status == ConversionStatus.PROCESSING
        assert first.started_at is not None
        assert second is None

    @pytest.mark.asyncio
    async def test_mark_completed_should_close_job_with_result(self, db_session, document) -> None:
        """Test COMPLETED records progress, pages and result."""
        # Arrange
        job = await create_job(db_session, document)
        await conversion_job_crud.mark_processing(db_session, job.id)

        # Act
        done = await conversion_job_crud.mark_completed(
            db_session,
            job.id,
            processed_pages=4,
            result_data={"version": 2},
        )

        # Assert
        assert done.status == ConversionStatus.COMPLETED
        assert done.progress == 100
        assert done.processed_pages == 4
        assert done.result == {"version": 2}
        assert done.completed_at is not None

    @pytest.mark.asyncio
    async def test_mark_failed_should_record_kind_and_truncate_message(self, db_session, document) -> None:
        """Test FAILED keeps the classification and a bounded message."""
        # Arrange
        job = await create_job(db_session, document)

        # Act
        failed = await conversion_job_crud.mark_failed(
            db_session,
            job.id,
            ErrorKind.CORRUPT_SOURCE,
            "x" * 5000,
            retry_count=3,
        )

        # Assert
        assert failed.status == ConversionStatus.FAILED
        assert failed.error_kind == ErrorKind.CORRUPT_SOURCE
        assert len(failed.error_message) == 2048
        assert failed.retry_count == 3

    @pytest.mark.asyncio
    async def test_update_progress_should_clamp_percentage(self, db_session, document) -> None:
        """Test progress stays within 0-100."""
        # Arrange
        job = await create_job(db_session, document)

        # Act
        updated = await conversion_job_crud.update_progress(db_session, job.id, 150, total_pages=9)

        # Assert
        assert updated.progress == 100
        assert updated.total_pages == 9

    @pytest.mark.asyncio
    async def test_mark_completed_should_not_reopen_failed_job(self, db_session, document) -> None:
        """Test a job failed by crash recovery stays FAILED."""
        # Arrange
        job = await create_job(db_session, document, status=ConversionStatus.FAILED)

        # Act
        done = await conversion_job_crud.mark_completed(
            db_session, job.id, processed_pages=2, result_data={"version": 1}
        )

        # Assert
        assert done is None
        stored = await conversion_job_crud.get_by_id(db_session, job.id)
        assert stored.status == ConversionStatus.FAILED

    @pytest.mark.asyncio
    async def test_mark_failed_should_not_touch_completed_job(self, db_session, document) -> None:
        """Test a late failure report cannot overwrite a finished job."""
        # Arrange
        job = await create_job(db_session, document, status=ConversionStatus.COMPLETED)

        # Act
        failed = await conversion_job_crud.mark_failed(
            db_session, job.id, ErrorKind.UNKNOWN, "late", retry_count=1
        )

        # Assert
        assert failed is None
        stored = await conversion_job_crud.get_by_id(db_session, job.id)
        assert stored.status == ConversionStatus.COMPLETED
        assert stored.error_kind is None


class TestConversionJobCancellation:
    """Test suite for mark_cancelled()."""

    @pytest.mark.asyncio
    async def test_mark_cancelled_should_close_queued_job(self, db_session, document) -> None:
        """Test a QUEUED job is withdrawn and releases the gate."""
        # Arrange
        job = await create_job(db_session, document)

        # Act
        cancelled = await conversion_job_crud.mark_cancelled(db_session, job.id)

        # Assert
        assert cancelled.status == ConversionStatus.CANCELLED
        assert cancelled.completed_at is not None
        assert await conversion_job_crud.get_active_for_document(db_session, document.id) is None

    @pytest.mark.asyncio
    async def test_mark_cancelled_should_ignore_claimed_job(self, db_session, document) -> None:
        """Test a job a runner already claimed cannot be cancelled."""
        # Arrange
        job = await create_job(db_session, document)
        await conversion_job_crud.mark_processing(db_session, job.id)

        # Act
        cancelled = await conversion_job_crud.mark_cancelled(db_session, job.id)

        # Assert
        assert cancelled is None


class TestConversionJobRetention:
    """Test suite for delete_terminal_before()."""

    @pytest.mark.asyncio
    async def test_delete_terminal_before_should_keep_latest_job(self, db_session, document) -> None:
        """Test old history goes but each document keeps its newest job."""
        # Arrange
        long_ago = utc_now() - timedelta(days=90)
        oldest = await create_job(
            db_session,
            document,
            status=ConversionStatus.FAILED,
            created_at=long_ago,
            updated_at=long_ago,
        )
        middle = await create_job(
            db_session,
            document,
            status=ConversionStatus.COMPLETED,
            created_at=long_ago + timedelta(days=1),
            updated_at=long_ago + timedelta(days=1),
        )
        latest = await create_job(
            db_session,
            document,
            status=ConversionStatus.COMPLETED,
            created_at=long_ago + timedelta(days=2),
            updated_at=long_ago + timedelta(days=2),
        )

        # Act
        deleted = await conversion_job_crud.delete_terminal_before(
            db_session, cutoff=utc_now() - timedelta(days=30), limit=100
        )

        # Assert
        assert deleted == 2
        assert await conversion_job_crud.get_by_id(db_session, oldest.id) is None
        assert await conversion_job_crud.get_by_id(db_session, middle.id) is None
        assert await conversion_job_crud.get_by_id(db_session, latest.id) is not None

    @pytest.mark.asyncio
    async def test_delete_terminal_before_should_skip_recent_and_active_jobs(
        self, db_session, document
    ) -> None:
        """Test jobs newer than the cutoff and active jobs survive."""
        # Arrange
        long_ago = utc_now() - timedelta(days=90)
        recent = await create_job(db_session, document, status=ConversionStatus.FAILED)
        await create_job(
            db_session,
            document,
            created_at=long_ago,
            updated_at=long_ago,
        )

        # Act
        deleted = await conversion_job_crud.delete_terminal_before(
            db_session, cutoff=utc_now() - timedelta(days=30), limit=100
        )

        # Assert
        assert deleted == 0
        assert await conversion_job_crud.get_by_id(db_session, recent.id) is not None
