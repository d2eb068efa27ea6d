"""
Exception hierarchy for the study room page service.

Provides layered exception structure for conversion and cache errors.
All exceptions include context for observability and debugging, a
machine-readable kind (persisted on failed conversion jobs) and a
retryable flag consumed by the retry loop and the HTTP layer.

Dependencies: None (pure domain layer)
System role: Centralized exception handling across the application
"""

import enum
from typing import Any


class ErrorKind(str, enum.Enum):
    """
    Classification recorded on a failed ConversionJob.

    TIMEOUT is kept apart from RESOURCE_EXHAUSTED so abandoned or slow
    conversions can be told apart from memory/size limits.
    """

    DOCUMENT_NOT_FOUND = "document_not_found"
    PAGES_NOT_FOUND = "pages_not_found"
    JOB_NOT_FOUND = "job_not_found"
    STALE_CACHE = "stale_cache"
    SOURCE_NOT_FOUND = "source_not_found"
    CORRUPT_SOURCE = "corrupt_source"
    UNSUPPORTED_FORMAT = "unsupported_format"
    RESOURCE_EXHAUSTED = "resource_exhausted"
    TIMEOUT = "timeout"
    CONVERSION_FAILED = "conversion_failed"
    CONVERSION_EXHAUSTED = "conversion_exhausted"
    CONVERSION_IN_PROGRESS = "conversion_in_progress"
    JOB_NOT_CANCELLABLE = "job_not_cancellable"
    STORAGE = "storage"
    UNKNOWN = "unknown"


class StudyRoomException(Exception):
    """Base exception for all study room application errors."""

    kind: ErrorKind = ErrorKind.UNKNOWN
    retryable: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """
        Initialize base exception with message and optional context.

        Args:
            message: Human-readable error message
            details: Optional dictionary of additional context for debugging
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        """Return string representation including details."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class NotFoundError(StudyRoomException):
    """Base for lookups that found nothing."""


class DocumentNotFoundError(NotFoundError):
    """Raised when no Document record exists for the requested reference."""

    kind = ErrorKind.DOCUMENT_NOT_FOUND

    def __init__(self, document_id: str, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        details["document_id"] = document_id
        super().__init__(f"Document not found: {document_id}", details)


class PagesNotFoundError(NotFoundError):
    """Raised when a document has no servable cached pages."""

    kind = ErrorKind.PAGES_NOT_FOUND

    def __init__(
        self,
        document_id: str,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        details["document_id"] = document_id
        super().__init__(message or f"No cached pages for document {document_id}", details)


class JobNotFoundError(NotFoundError):
    """Raised when a conversion job id does not exist."""

    kind = ErrorKind.JOB_NOT_FOUND

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Conversion job not found: {job_id}", {"job_id": job_id})


class StaleCacheIgnored(PagesNotFoundError):
    """
    Internal signal: records exist but are expired, incomplete or placeholders.

    Always treated as a cache miss by the read path; never shown to users.
    """

    kind = ErrorKind.STALE_CACHE

    def __init__(self, document_id: str, reason: str) -> None:
        super().__init__(
            document_id,
            f"Cached pages for document {document_id} ignored: {reason}",
            {"reason": reason},
        )
        self.reason = reason


class StorageError(StudyRoomException):
    """Raised when a blob store operation fails."""

    kind = ErrorKind.STORAGE
    retryable = True

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        path: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize storage error.

        Args:
            message: Error message
            operation: Operation that failed (put, get, list, remove, sign_url)
            path: Object path involved
            details: Additional context
        """
        details = details or {}
        if operation:
            details["operation"] = operation
        if path:
            details["path"] = path
        super().__init__(message, details)


class BlobNotFoundError(StorageError):
    """Raised when a blob path does not exist."""

    retryable = False

    def __init__(self, path: str) -> None:
        super().__init__(f"Blob not found: {path}", operation="get", path=path)


class ConversionError(StudyRoomException):
    """Base exception for page conversion errors."""

    def __init__(
        self,
        message: str,
        document_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize conversion error.

        Args:
            message: Error message
            document_id: ID of the document being converted
            details: Additional context
        """
        details = details or {}
        if document_id:
            details["document_id"] = document_id
        super().__init__(message, details)


class SourceNotFoundError(ConversionError):
    """Original document blob is missing; needs a re-upload."""

    kind = ErrorKind.SOURCE_NOT_FOUND


class CorruptSourceError(ConversionError):
    """Rasterizer could not parse the source file."""

    kind = ErrorKind.CORRUPT_SOURCE


class UnsupportedFormatError(ConversionError):
    """Source is encrypted, password-protected or not a PDF."""

    kind = ErrorKind.UNSUPPORTED_FORMAT


class ResourceExhaustedError(ConversionError):
    """Rasterization hit a time or memory limit."""

    kind = ErrorKind.RESOURCE_EXHAUSTED
    retryable = True

    def __init__(
        self,
        message: str,
        document_id: str | None = None,
        timed_out: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, document_id, details)
        self.timed_out = timed_out
        if timed_out:
            self.kind = ErrorKind.TIMEOUT


class ConversionFailed(ConversionError):
    """Storage write failed during writePages; carries partial progress."""

    kind = ErrorKind.CONVERSION_FAILED
    retryable = True

    def __init__(
        self,
        message: str,
        document_id: str | None = None,
        processed_pages: int = 0,
        total_pages: int = 0,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        details["processed_pages"] = processed_pages
        details["total_pages"] = total_pages
        super().__init__(message, document_id, details)
        self.processed_pages = processed_pages
        self.total_pages = total_pages


class ConversionExhausted(ConversionError):
    """Retry budget spent; needs manual intervention (forced reconversion)."""

    kind = ErrorKind.CONVERSION_EXHAUSTED

    def __init__(
        self,
        document_id: str,
        retry_count: int,
        last_error: str | None = None,
    ) -> None:
        super().__init__(
            f"Conversion retries exhausted for document {document_id} "
            f"after {retry_count} attempts",
            document_id,
            {"retry_count": retry_count, "last_error": last_error},
        )
        self.retry_count = retry_count
        self.last_error = last_error


class ConversionInProgressError(ConversionError):
    """An active job holds the document's conversion gate."""

    kind = ErrorKind.CONVERSION_IN_PROGRESS
    retryable = True

    def __init__(self, document_id: str, job_id: str | None = None) -> None:
        super().__init__(
            f"Document {document_id} is being converted; retry when the job finishes",
            document_id,
            {"job_id": job_id} if job_id else None,
        )
        self.job_id = job_id


class JobNotCancellableError(StudyRoomException):
    """Only QUEUED jobs can be cancelled."""

    kind = ErrorKind.JOB_NOT_CANCELLABLE

    def __init__(self, job_id: str, status: str) -> None:
        super().__init__(
            f"Conversion job {job_id} is {status} and can no longer be cancelled",
            {"job_id": job_id, "status": status},
        )
        self.status = status


# User-actionable wording for fatal source problems
USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.SOURCE_NOT_FOUND: "The original file is missing. Please re-upload the document.",
    ErrorKind.CORRUPT_SOURCE: "The file may be corrupted or password-protected.",
    ErrorKind.UNSUPPORTED_FORMAT: "The file may be corrupted or password-protected.",
    ErrorKind.RESOURCE_EXHAUSTED: "The document is too large to convert right now. Please retry.",
    ErrorKind.TIMEOUT: "Conversion took too long. Please retry.",
    ErrorKind.CONVERSION_FAILED: "Saving converted pages failed. Please retry.",
    ErrorKind.CONVERSION_EXHAUSTED: "Conversion failed repeatedly. Please contact support.",
    ErrorKind.CONVERSION_IN_PROGRESS: "This document is being converted. Please retry shortly.",
}


def exception_for_kind(
    kind: ErrorKind,
    message: str,
    document_id: str | None = None,
) -> ConversionError:
    """
    Rebuild a conversion exception from a persisted job classification.

    Used when a caller attached to a job that another process ran and
    failed; the original exception object is not available.

    Args:
        kind: Persisted error kind
        message: Persisted error message
        document_id: Document the job belonged to

    Returns:
        ConversionError: Exception matching the recorded kind
    """
    if kind == ErrorKind.SOURCE_NOT_FOUND:
        return SourceNotFoundError(message, document_id)
    if kind == ErrorKind.CORRUPT_SOURCE:
        return CorruptSourceError(message, document_id)
    if kind == ErrorKind.UNSUPPORTED_FORMAT:
        return UnsupportedFormatError(message, document_id)
    if kind == ErrorKind.RESOURCE_EXHAUSTED:
        return ResourceExhaustedError(message, document_id)
    if kind == ErrorKind.TIMEOUT:
        return ResourceExhaustedError(message, document_id, timed_out=True)
    return ConversionFailed(message, document_id)
