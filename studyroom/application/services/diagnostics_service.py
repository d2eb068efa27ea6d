"""
Page cache diagnostics.

Read-only health report for one document: do the cached rows agree with
the blobs, is the set contiguous and fresh, are any pages placeholders or
likely blank, and did the last conversion fail. Feeds the retry/alerting
loop; never mutates state.

Dependencies: studyroom.boundary, studyroom.core
System role: Operator and viewer debug surface
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Callable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studyroom.application.services.document_resolver import resolve_document
from studyroom.application.services.job_service import job_to_dict
from studyroom.application.services.page_cache_service import page_prefix
from studyroom.boundary.db.base import ensure_utc, utc_now
from studyroom.boundary.db.CRUD.conversion_job_crud import conversion_job_crud
from studyroom.boundary.db.CRUD.page_cache_crud import page_cache_crud
from studyroom.boundary.db.models.conversion_job_model import ConversionStatus
from studyroom.boundary.storage.blob_store import BlobStore
from studyroom.configs.conversion import ConversionSettings
from studyroom.core.blank_page import BlankPageStatus, classify_sizes
from studyroom.core.exceptions import StorageError
from studyroom.core.pages import GenerationMethod

logger = logging.getLogger(__name__)


@dataclass
class DiagnosticReport:
    """Health report for one document's page cache."""

    document_id: UUID
    has_pages: bool = False
    storage_accessible: bool = True
    source_accessible: bool | None = None
    total_pages: int = 0
    expected_pages: int | None = None
    fresh: bool = False
    missing_files: list[int] = field(default_factory=list)
    placeholder_pages: list[int] = field(default_factory=list)
    expired_pages: list[int] = field(default_factory=list)
    suspicious_pages: list[int] = field(default_factory=list)
    blank_page_status: str | None = None
    latest_job: dict | None = None
    issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return self.has_pages and self.fresh and not self.issues

    def to_dict(self) -> dict:
        data = asdict(self)
        data["document_id"] = str(self.document_id)
        data["healthy"] = self.healthy
        return data

    def flag(self, issue: str, recommendation: str | None = None) -> None:
        self.issues.append(issue)
        if recommendation and recommendation not in self.recommendations:
            self.recommendations.append(recommendation)


class DiagnosticsService:
    """Builds DiagnosticReports from the cache tables and blob stores."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        page_store: BlobStore,
        source_store: BlobStore,
        settings: ConversionSettings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._page_store = page_store
        self._source_store = source_store
        self._settings = settings or ConversionSettings()
        self._clock = clock

    async def diagnose(self, document_id: UUID) -> DiagnosticReport:
        """
        Inspect a document's cached pages.

        Args:
            document_id: Document UUID

        Returns:
            DiagnosticReport with issues and recommendations

        Raises:
            DocumentNotFoundError: No such document
        """
        async with self._session_factory() as session:
            document = await resolve_document(session, document_id)
            records = list(await page_cache_crud.get_by_document(session, document_id))
            latest_job = await conversion_job_crud.get_latest_for_document(session, document_id)

        report = DiagnosticReport(document_id=document_id)
        report.has_pages = bool(records)
        report.total_pages = len(records)
        report.latest_job = job_to_dict(latest_job, self._settings.max_retries) if latest_job else None

        await self._check_source(report, document.storage_path)
        stored_names = await self._list_page_blobs(report, page_prefix(document.owner_id, document_id))

        if not records:
            self._check_job(report, latest_job)
            if not report.issues:
                report.flag(
                    "Document has not been converted",
                    "Open the document or trigger a conversion",
                )
            return report

        now = self._clock()
        report.expected_pages = max(record.total_pages for record in records)
        report.placeholder_pages = [
            record.page_number
            for record in records
            if record.generation_method == GenerationMethod.PLACEHOLDER
        ]
        report.expired_pages = [
            record.page_number
            for record in records
            if ensure_utc(record.expires_at) <= now
        ]
        if stored_names is not None:
            report.missing_files = [
                record.page_number
                for record in records
                if record.blob_path not in stored_names
            ]

        page_numbers = [record.page_number for record in records]
        contiguous = page_numbers == list(range(1, report.expected_pages + 1))
        single_version = len({record.version for record in records}) == 1
        report.fresh = (
            contiguous
            and single_version
            and not report.placeholder_pages
            and not report.expired_pages
        )

        if not contiguous:
            report.flag(
                f"Page set is incomplete: {len(page_numbers)} of {report.expected_pages} pages cached",
                "Force a reconversion to rebuild the page set",
            )
        if not single_version:
            report.flag(
                "Cached pages come from more than one conversion",
                "Force a reconversion to rebuild the page set",
            )
        if report.placeholder_pages:
            report.flag(
                f"{len(report.placeholder_pages)} placeholder pages are not real renders",
                "Force a reconversion to replace placeholder pages",
            )
        if report.expired_pages:
            report.flag(
                f"{len(report.expired_pages)} pages have expired",
                "Pages are regenerated on the next view; no action needed",
            )
        if report.missing_files:
            report.flag(
                f"{len(report.missing_files)} cached pages have no file in storage",
                "Force a reconversion to re-upload missing pages",
            )

        real_records = [
            record for record in records if record.generation_method.is_real
        ]
        if real_records:
            blank = classify_sizes(
                (record.file_size_bytes for record in real_records),
                self._settings.blank_page_threshold_bytes,
            )
            report.blank_page_status = blank.status.value
            report.suspicious_pages = [
                real_records[index - 1].page_number for index in blank.suspicious_pages
            ]
            if blank.status == BlankPageStatus.CRITICAL:
                report.flag(
                    "Every page is smaller than "
                    f"{blank.threshold_bytes} bytes; pages are likely blank",
                    "Force a reconversion; if it persists, check the source PDF",
                )
            elif blank.status == BlankPageStatus.WARNING:
                report.flag(
                    f"{len(report.suspicious_pages)} pages look blank",
                    "Review the flagged pages and reconvert if they should have content",
                )

        self._check_job(report, latest_job)

        logger.info(
            "Diagnostics complete",
            extra={
                "document_id": str(document_id),
                "issue_count": len(report.issues),
                "healthy": report.healthy,
            },
        )
        return report

    async def _check_source(self, report: DiagnosticReport, storage_path: str) -> None:
        try:
            listed = await asyncio.to_thread(self._source_store.list, storage_path)
        except StorageError as e:
            logger.warning(
                "Source storage check failed",
                extra={"document_id": str(report.document_id), "error_msg": e.message},
            )
            report.source_accessible = False
            report.flag(
                f"Original file could not be checked: {e.message}",
                "Check access to the documents bucket",
            )
            return

        report.source_accessible = any(info.name == storage_path for info in listed)
        if not report.source_accessible:
            report.flag(
                "Original file is missing from storage",
                "Re-upload the document",
            )

    async def _list_page_blobs(self, report: DiagnosticReport, prefix: str) -> set[str] | None:
        try:
            listed = await asyncio.to_thread(self._page_store.list, prefix)
        except StorageError as e:
            logger.warning(
                "Page storage check failed",
                extra={"document_id": str(report.document_id), "error_msg": e.message},
            )
            report.storage_accessible = False
            report.flag(
                f"Page storage is not accessible: {e.message}",
                "Check access to the pages bucket",
            )
            return None
        return {info.name for info in listed}

    def _check_job(self, report: DiagnosticReport, job) -> None:
        if job is None:
            return
        if job.status.is_active:
            report.flag(f"A conversion is {job.status.value}", "Wait for the conversion to finish")
        elif job.status == ConversionStatus.FAILED:
            kind = job.error_kind.value if job.error_kind else "unknown"
            report.flag(
                f"Last conversion failed ({kind}): {job.error_message}",
                "Trigger a forced reconversion"
                if job.retry_count >= self._settings.max_retries
                else "Retry the conversion",
            )
