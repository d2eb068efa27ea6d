"""
Logging utilities for safe structured logging.

Context values passed through `extra` are flattened to short strings so
page bytes, page lists and job payloads never end up verbatim in a log
line. Domain exceptions also contribute their ErrorKind.

Dependencies: logging (stdlib)
System role: Logging helper functions
"""

import logging
from typing import Any


def safe_log_value(value: Any, max_length: int = 500) -> str:
    """
    Safely convert any value to a string for logging.

    Args:
        value: Value to convert
        max_length: Maximum length before truncating

    Returns:
        str: Safe string representation
    """
    try:
        if value is None:
            return "None"
        if isinstance(value, str):
            val_str = value
        elif isinstance(value, (bytes, bytearray)):
            val_str = f"bytes({len(value)})"
        elif isinstance(value, (list, tuple, set)):
            val_str = f"{type(value).__name__}({len(value)} items)"
        elif isinstance(value, dict):
            val_str = f"dict({len(value)} keys)"
        else:
            val_str = str(value)

        if len(val_str) > max_length:
            return val_str[:max_length] + f"... (truncated, {len(val_str)} total)"
        return val_str
    except Exception as e:
        return f"<unable to log: {type(e).__name__}>"


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    **context,
) -> None:
    """Log `message` at `level` with every context value passed through safe_log_value."""
    safe_context = {key: safe_log_value(val) for key, val in context.items()}
    logger.log(level, message, extra=safe_context)


def log_exception_with_context(
    logger: logging.Logger,
    message: str,
    exc: Exception,
    **context,
) -> None:
    """
    Log an exception with its traceback and context.

    Args:
        logger: Logger instance
        message: Log message
        exc: Exception instance; a `kind` attribute is logged as error_kind
        **context: Additional context (document_id, job_id, ...)
    """
    safe_context = {key: safe_log_value(val) for key, val in context.items()}
    safe_context["error_type"] = type(exc).__name__
    safe_context["error_msg"] = safe_log_value(str(exc))
    kind = getattr(exc, "kind", None)
    if kind is not None:
        safe_context["error_kind"] = getattr(kind, "value", str(kind))
    logger.error(message, exc_info=exc, extra=safe_context)
