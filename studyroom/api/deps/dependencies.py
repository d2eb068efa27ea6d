"""
Dependency injection for API routes.

Factory functions for FastAPI dependencies, backed by the process-wide
ServiceCache. Tests replace these through app.dependency_overrides.

Dependencies: studyroom.dependencies, studyroom.application
System role: DI container for service injection
"""

from functools import lru_cache
from typing import Callable
from uuid import UUID

from studyroom.application.services import (
    ConversionJobService,
    ConversionOrchestrator,
    DiagnosticsService,
    PageRetrievalService,
)
from studyroom.configs import Settings, get_settings
from studyroom.dependencies import dispatch_conversion, get_service_cache


@lru_cache
def get_settings_dependency() -> Settings:
    """Get settings singleton."""
    return get_settings()


def get_retrieval_service() -> PageRetrievalService:
    """
    Get page retrieval service instance.

    Returns:
        PageRetrievalService: Cached retrieval service
    """
    return get_service_cache().retrieval


def get_orchestrator() -> ConversionOrchestrator:
    """
    Get conversion orchestrator instance.

    Returns:
        ConversionOrchestrator: Cached orchestrator
    """
    return get_service_cache().orchestrator


def get_diagnostics_service() -> DiagnosticsService:
    """Get diagnostics service instance."""
    return get_service_cache().diagnostics


def get_job_service() -> ConversionJobService:
    """Get conversion job service instance."""
    return get_service_cache().job_service


def get_dispatcher() -> Callable[[UUID], None]:
    """Get the function that hands queued jobs to the worker."""
    return dispatch_conversion
