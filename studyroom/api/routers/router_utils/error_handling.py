"""
Page error handling utilities.

Provides a decorator for consistent error handling across page and
conversion endpoints. Every error body carries the machine-readable kind,
a message the viewer can show, and whether a retry makes sense.
"""

import functools
import logging
from typing import Any, Callable, TypeVar

from fastapi import HTTPException, status

from studyroom.core.exceptions import (
    USER_MESSAGES,
    BlobNotFoundError,
    ConversionExhausted,
    ConversionFailed,
    ConversionInProgressError,
    CorruptSourceError,
    ErrorKind,
    JobNotCancellableError,
    NotFoundError,
    ResourceExhaustedError,
    SourceNotFoundError,
    StorageError,
    StudyRoomException,
    UnsupportedFormatError,
)
from studyroom.models.common import ErrorResponse

logger = logging.getLogger(__name__)

# Type for the decorated function
F = TypeVar("F", bound=Callable[..., Any])


def error_detail(error: StudyRoomException) -> dict:
    """Build the HTTP error body for a taxonomy exception."""
    return ErrorResponse(
        error=error.kind.value,
        message=USER_MESSAGES.get(error.kind, error.message),
        retryable=error.retryable,
    ).model_dump()


def status_for(error: StudyRoomException) -> int:
    """Map a taxonomy exception to an HTTP status code."""
    if isinstance(error, (NotFoundError, BlobNotFoundError)):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, (SourceNotFoundError, CorruptSourceError, UnsupportedFormatError)):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(error, ResourceExhaustedError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if isinstance(error, (ConversionExhausted, ConversionInProgressError, JobNotCancellableError)):
        return status.HTTP_409_CONFLICT
    if isinstance(error, (ConversionFailed, StorageError)):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def handle_page_errors(func: F) -> F:
    """
    Decorator to transform page/conversion errors into HTTPExceptions.

    This centralizes:
    - Logging of errors with context (document_id, error kind)
    - Mapping the error taxonomy to HTTP status codes
    - Uniform {error, message, retryable} response bodies
    """
    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return await func(*args, **kwargs)

        except NotFoundError as e:
            logger.warning(
                "Resource not found",
                extra={"error_kind": e.kind.value, "error": str(e)},
            )
            raise HTTPException(status_code=status_for(e), detail=error_detail(e))

        except StudyRoomException as e:
            code = status_for(e)
            log = logger.error if code >= 500 else logger.warning
            log(
                "Page request failed",
                extra={"error_kind": e.kind.value, "status_code": code, "error": str(e)},
            )
            raise HTTPException(status_code=code, detail=error_detail(e))

        except HTTPException:
            raise

        except Exception as e:
            logger.exception(
                "Unexpected failure in page operation",
                extra={"error": str(e)},
            )
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=ErrorResponse(
                    error=ErrorKind.UNKNOWN.value,
                    message="An internal error occurred. Please retry.",
                    retryable=True,
                ).model_dump(),
            )

    return wrapper  # type: ignore
