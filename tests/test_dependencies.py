"""
Test suite for the service container and API dependency factories.

Verifies that ServiceCache wires each service to the shared collaborators
and that the FastAPI factories hand out the cached instances.

System role: Verification of DI container
"""

from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest

from studyroom.api.deps import (
    get_diagnostics_service,
    get_dispatcher,
    get_job_service,
    get_orchestrator,
    get_retrieval_service,
    get_settings_dependency,
)
from studyroom.application.services import (
    ConversionJobService,
    ConversionOrchestrator,
    DiagnosticsService,
    MaintenanceService,
    PageCacheService,
    PageRetrievalService,
)
from studyroom.configs import Settings
from studyroom.dependencies import ServiceCache, dispatch_conversion


@pytest.fixture
def service_cache():
    """Provide a ServiceCache with boto3 and the database factory patched out."""
    with patch("studyroom.boundary.aws.s3_client.boto3") as mock_boto3, patch(
        "studyroom.boundary.db.get_async_session_factory"
    ) as mock_factory:
        mock_boto3.client.return_value = MagicMock()
        mock_factory.return_value = MagicMock()
        yield ServiceCache(settings=Settings())


class TestServiceCache:
    """Test suite for ServiceCache."""

    def test_page_store_should_use_pages_bucket(self, service_cache: ServiceCache) -> None:
        """Test the rendered pages store points at the pages bucket."""
        # Act
        store = service_cache.page_store

        # Assert
        assert store.bucket == service_cache.settings.storage.pages_bucket
        assert store.is_public is service_cache.settings.storage.pages_bucket_public

    def test_source_store_should_use_documents_bucket(self, service_cache: ServiceCache) -> None:
        """Test originals are read from the documents bucket."""
        # Act
        store = service_cache.source_store

        # Assert
        assert store.bucket == service_cache.settings.storage.documents_bucket

    def test_services_should_be_cached(self, service_cache: ServiceCache) -> None:
        """Test repeated access returns the same instances."""
        # Assert
        assert service_cache.retrieval is service_cache.retrieval
        assert service_cache.orchestrator is service_cache.orchestrator
        assert service_cache.page_cache is service_cache.page_cache

    def test_services_should_have_expected_types(self, service_cache: ServiceCache) -> None:
        """Test each property builds the right service."""
        # Assert
        assert isinstance(service_cache.page_cache, PageCacheService)
        assert isinstance(service_cache.orchestrator, ConversionOrchestrator)
        assert isinstance(service_cache.retrieval, PageRetrievalService)
        assert isinstance(service_cache.diagnostics, DiagnosticsService)
        assert isinstance(service_cache.job_service, ConversionJobService)
        assert isinstance(service_cache.maintenance, MaintenanceService)

    def test_retrieval_should_share_orchestrator_and_page_cache(
        self, service_cache: ServiceCache
    ) -> None:
        """Test the read path and the orchestrator use one page cache."""
        # Act
        retrieval = service_cache.retrieval

        # Assert
        assert retrieval._orchestrator is service_cache.orchestrator
        assert retrieval._page_cache is service_cache.page_cache
        assert service_cache.orchestrator._page_cache is service_cache.page_cache

    def test_maintenance_should_share_orchestrator(self, service_cache: ServiceCache) -> None:
        """Test expired-page purges go through the same invalidation gate as the API."""
        assert service_cache.maintenance._orchestrator is service_cache.orchestrator

    def test_clear_should_drop_cached_instances(self, service_cache: ServiceCache) -> None:
        """Test clear() forces new instances on next access."""
        # Arrange
        first = service_cache.orchestrator

        # Act
        service_cache.clear()

        # Assert
        assert service_cache.orchestrator is not first


class TestDispatchConversion:
    """Test suite for dispatch_conversion()."""

    def test_dispatch_should_send_job_id_as_string(self) -> None:
        """Test the Celery task receives a JSON-safe job id."""
        # Arrange
        job_id = uuid4()

        # Act
        with patch("studyroom.workers.tasks.conversion.convert_document") as mock_task:
            dispatch_conversion(job_id)

        # Assert
        mock_task.delay.assert_called_once_with(str(job_id))


class TestApiFactories:
    """Test suite for the FastAPI dependency factories."""

    def test_factories_should_return_cached_services(self) -> None:
        """Test factories read from the process-wide cache."""
        # Arrange
        cache = MagicMock()

        # Act
        with patch("studyroom.api.deps.dependencies.get_service_cache", return_value=cache):
            retrieval = get_retrieval_service()
            orchestrator = get_orchestrator()
            diagnostics = get_diagnostics_service()
            job_service = get_job_service()

        # Assert
        assert retrieval is cache.retrieval
        assert orchestrator is cache.orchestrator
        assert diagnostics is cache.diagnostics
        assert job_service is cache.job_service

    def test_get_dispatcher_should_return_celery_dispatch(self) -> None:
        """Test the default dispatcher sends jobs to the worker."""
        assert get_dispatcher() is dispatch_conversion

    def test_get_settings_dependency_should_return_settings(self) -> None:
        """Test the settings dependency is a cached singleton."""
        assert isinstance(get_settings_dependency(), Settings)
        assert get_settings_dependency() is get_settings_dependency()
