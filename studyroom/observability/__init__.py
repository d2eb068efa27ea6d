"""
Observability helpers.

Exports: configure_logging, correlation id helpers
"""

from studyroom.observability.correlation import (
    clear_correlation_id,
    correlation_scope,
    get_correlation_id,
    set_correlation_id,
)
from studyroom.observability.logger import configure_logging

__all__ = [
    "configure_logging",
    "set_correlation_id",
    "get_correlation_id",
    "clear_correlation_id",
    "correlation_scope",
]
