"""API-specific dependencies."""

# Re-export common dependencies
from .dependencies import (
    get_diagnostics_service,
    get_dispatcher,
    get_job_service,
    get_orchestrator,
    get_retrieval_service,
    get_settings_dependency,
)

__all__ = [
    "get_diagnostics_service",
    "get_dispatcher",
    "get_job_service",
    "get_orchestrator",
    "get_retrieval_service",
    "get_settings_dependency",
]
