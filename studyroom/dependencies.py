"""
Service container.

Builds and caches the long-lived collaborators (blob stores, rasterizer,
services) shared by the API and the Celery worker.

Dependencies: studyroom.configs, studyroom.application, studyroom.boundary
System role: Object graph wiring
"""

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studyroom.configs import Settings, get_settings


def dispatch_conversion(job_id: UUID) -> None:
    """Send a QUEUED job to the Celery worker."""
    from studyroom.workers.tasks.conversion import convert_document

    convert_document.delay(str(job_id))


class ServiceCache:
    """Container for cached service instances."""

    def __init__(self, settings: Settings | None = None):
        self._settings = settings
        self._session_factory = None
        self._page_store = None
        self._source_store = None
        self._rasterizer = None
        self._page_cache = None
        self._orchestrator = None
        self._retrieval = None
        self._diagnostics = None
        self._job_service = None
        self._maintenance = None

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Get cached async session factory."""
        if self._session_factory is None:
            from studyroom.boundary.db import get_async_session_factory
            self._session_factory = get_async_session_factory()
        return self._session_factory

    @property
    def page_store(self):
        """Get cached S3 client for the rendered pages bucket."""
        if self._page_store is None:
            from studyroom.boundary.aws import S3BlobStore

            storage = self.settings.storage
            self._page_store = S3BlobStore(
                bucket=storage.pages_bucket,
                region=storage.region,
                endpoint_url=storage.endpoint_url,
                public_read=storage.pages_bucket_public,
                max_file_size_bytes=storage.max_file_size_bytes,
                allowed_mime_types=storage.allowed_mime_types,
            )
        return self._page_store

    @property
    def source_store(self):
        """Get cached S3 client for the original documents bucket."""
        if self._source_store is None:
            from studyroom.boundary.aws import S3BlobStore

            storage = self.settings.storage
            self._source_store = S3BlobStore(
                bucket=storage.documents_bucket,
                region=storage.region,
                endpoint_url=storage.endpoint_url,
            )
        return self._source_store

    @property
    def rasterizer(self):
        """Get cached PDF rasterizer."""
        if self._rasterizer is None:
            from studyroom.core.rasterizer import PdfRasterizer
            self._rasterizer = PdfRasterizer()
        return self._rasterizer

    @property
    def page_cache(self):
        """Get cached page cache store."""
        if self._page_cache is None:
            from studyroom.application.services import PageCacheService

            self._page_cache = PageCacheService(
                session_factory=self.session_factory,
                page_store=self.page_store,
                signed_url_ttl_seconds=self.settings.storage.signed_url_ttl_seconds,
            )
        return self._page_cache

    @property
    def orchestrator(self):
        """Get cached conversion orchestrator."""
        if self._orchestrator is None:
            from studyroom.application.services import ConversionOrchestrator

            self._orchestrator = ConversionOrchestrator(
                session_factory=self.session_factory,
                page_cache=self.page_cache,
                source_store=self.source_store,
                rasterizer=self.rasterizer,
                settings=self.settings.conversion,
            )
        return self._orchestrator

    @property
    def retrieval(self):
        """Get cached page retrieval service."""
        if self._retrieval is None:
            from studyroom.application.services import PageRetrievalService

            self._retrieval = PageRetrievalService(
                session_factory=self.session_factory,
                page_cache=self.page_cache,
                orchestrator=self.orchestrator,
                dispatcher=dispatch_conversion,
            )
        return self._retrieval

    @property
    def diagnostics(self):
        """Get cached diagnostics service."""
        if self._diagnostics is None:
            from studyroom.application.services import DiagnosticsService

            self._diagnostics = DiagnosticsService(
                session_factory=self.session_factory,
                page_store=self.page_store,
                source_store=self.source_store,
                settings=self.settings.conversion,
            )
        return self._diagnostics

    @property
    def job_service(self):
        """Get cached conversion job service."""
        if self._job_service is None:
            from studyroom.application.services import ConversionJobService

            self._job_service = ConversionJobService(
                session_factory=self.session_factory,
                max_retries=self.settings.conversion.max_retries,
            )
        return self._job_service

    @property
    def maintenance(self):
        """Get cached maintenance service."""
        if self._maintenance is None:
            from studyroom.application.services import MaintenanceService

            self._maintenance = MaintenanceService(
                session_factory=self.session_factory,
                orchestrator=self.orchestrator,
                settings=self.settings.conversion,
            )
        return self._maintenance

    def clear(self) -> None:
        """Clear all cached instances."""
        self._session_factory = None
        self._page_store = None
        self._source_store = None
        self._rasterizer = None
        self._page_cache = None
        self._orchestrator = None
        self._retrieval = None
        self._diagnostics = None
        self._job_service = None
        self._maintenance = None


# Global service cache
_service_cache = ServiceCache()


def get_service_cache() -> ServiceCache:
    """Get service cache singleton."""
    return _service_cache
