"""
Correlation IDs.

One id per HTTP request (from the X-Correlation-ID header or generated)
and one per Celery task run (the job id), carried through async code by a
ContextVar and stamped onto log records by CorrelationIdFilter.

Dependencies: contextvars
System role: Request and job tracing across service boundaries
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

correlation_id_ctx: ContextVar[str] = ContextVar("correlation_id", default="")


def set_correlation_id(correlation_id: str | None = None) -> str:
    """
    Set correlation ID in context.

    Args:
        correlation_id: Optional correlation ID (generates new if None)

    Returns:
        str: The correlation ID that was set
    """
    value = correlation_id or str(uuid.uuid4())
    correlation_id_ctx.set(value)
    return value


def get_correlation_id() -> str:
    """Current correlation ID, empty string outside a request or task."""
    return correlation_id_ctx.get()


def clear_correlation_id() -> None:
    correlation_id_ctx.set("")


@contextmanager
def correlation_scope(correlation_id: str | None = None) -> Iterator[str]:
    """
    Use a correlation ID for the duration of a block, then restore the previous one.

    Workers wrap each task run in this so every log line of one job shares
    an id.
    """
    token = correlation_id_ctx.set(correlation_id or str(uuid.uuid4()))
    try:
        yield correlation_id_ctx.get()
    finally:
        correlation_id_ctx.reset(token)
