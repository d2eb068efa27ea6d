"""Service orchestrators."""

from .conversion_service import (
    BatchEnqueueItem,
    ConversionOrchestrator,
    ConversionOutcome,
    EnqueueResult,
)
from .diagnostics_service import DiagnosticReport, DiagnosticsService
from .document_resolver import ByDocumentId, ByStudyRoomItemId, DocumentRef, resolve_document
from .job_service import ConversionJobService
from .maintenance_service import MaintenanceService, PagePurge
from .page_cache_service import CacheStats, PageCacheService, PageContent, PageSetWrite
from .page_retrieval_service import DocumentPages, PageRetrievalService, PendingConversion

__all__ = [
    "BatchEnqueueItem",
    "ByDocumentId",
    "ByStudyRoomItemId",
    "CacheStats",
    "ConversionJobService",
    "ConversionOrchestrator",
    "ConversionOutcome",
    "DiagnosticReport",
    "DiagnosticsService",
    "DocumentPages",
    "DocumentRef",
    "EnqueueResult",
    "MaintenanceService",
    "PageCacheService",
    "PageContent",
    "PagePurge",
    "PageRetrievalService",
    "PageSetWrite",
    "PendingConversion",
    "resolve_document",
]
