"""
Test suite for ConversionJobService.

Covers status serialization for polling and cancellation of jobs that
no runner has claimed.

System role: Verification of job status reporting
"""

import asyncio
import uuid

import pytest

from studyroom.application.services import ConversionJobService
from studyroom.boundary.db.models import ConversionStatus
from studyroom.core.exceptions import (
    ConversionFailed,
    JobNotCancellableError,
    JobNotFoundError,
    ResourceExhaustedError,
)


class TestGetJobStatus:
    """Test suite for ConversionJobService.get_job_status()."""

    @pytest.mark.asyncio
    async def test_get_job_status_should_serialize_job(
        self, job_service: ConversionJobService, orchestrator, conversion_settings, document
    ) -> None:
        """Test a queued job is reported with its retry budget."""
        # Arrange
        enqueued = await orchestrator.enqueue(document.id)

        # Act
        status = await job_service.get_job_status(enqueued.job.id)

        # Assert
        assert status["id"] == str(enqueued.job.id)
        assert status["document_id"] == str(document.id)
        assert status["status"] == "queued"
        assert status["max_retries"] == conversion_settings.max_retries
        assert status["user_message"] is None

    @pytest.mark.asyncio
    async def test_get_job_status_should_raise_for_unknown_job(self, job_service) -> None:
        """Test polling a missing job."""
        with pytest.raises(JobNotFoundError):
            await job_service.get_job_status(uuid.uuid4())


class TestCancelJob:
    """Test suite for ConversionJobService.cancel_job()."""

    @pytest.mark.asyncio
    async def test_cancel_job_should_withdraw_queued_job(
        self, job_service, orchestrator, rasterizer, document
    ) -> None:
        """Test a cancelled job is skipped by the worker and frees the gate."""
        # Arrange
        enqueued = await orchestrator.enqueue(document.id)

        # Act
        status = await job_service.cancel_job(enqueued.job.id)

        # Assert
        assert status["status"] == ConversionStatus.CANCELLED.value
        assert status["completed_at"] is not None
        assert await orchestrator.run_job(enqueued.job.id) is None
        assert rasterizer.calls == 0

        follow_up = await orchestrator.enqueue(document.id)
        assert follow_up.created is True
        assert follow_up.job.id != enqueued.job.id

    @pytest.mark.asyncio
    async def test_cancel_job_should_keep_retry_count(
        self, job_service, orchestrator, rasterizer, document
    ) -> None:
        """Test cancelling doesn't hand out a fresh retry budget."""
        # Arrange
        rasterizer.error = ResourceExhaustedError("Out of memory")
        with pytest.raises(ResourceExhaustedError):
            await orchestrator.convert(document.id)
        enqueued = await orchestrator.enqueue(document.id)
        await job_service.cancel_job(enqueued.job.id)

        # Act
        follow_up = await orchestrator.enqueue(document.id)

        # Assert
        assert enqueued.job.retry_count == 1
        assert follow_up.job.retry_count == 1

    @pytest.mark.asyncio
    async def test_cancel_job_should_refuse_finished_job(
        self, job_service, orchestrator, document
    ) -> None:
        """Test a completed job cannot be cancelled."""
        # Arrange
        outcome = await orchestrator.convert(document.id)

        # Act
        with pytest.raises(JobNotCancellableError) as exc_info:
            await job_service.cancel_job(outcome.job_id)

        # Assert
        assert exc_info.value.status == "completed"

    @pytest.mark.asyncio
    async def test_cancel_job_should_raise_for_unknown_job(self, job_service) -> None:
        """Test cancelling a missing job."""
        with pytest.raises(JobNotFoundError):
            await job_service.cancel_job(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_waiter_should_fail_when_job_cancelled(
        self, job_service, orchestrator, document, session_factory
    ) -> None:
        """Test a caller attached to a job sees the cancellation as a failure."""
        # Arrange
        enqueued = await orchestrator.enqueue(document.id)
        waiter = asyncio.create_task(orchestrator.convert(document.id))
        await asyncio.sleep(0.05)

        # Act
        await job_service.cancel_job(enqueued.job.id)

        # Assert
        with pytest.raises(ConversionFailed) as exc_info:
            await waiter
        assert "cancelled" in exc_info.value.message
