"""
Test suite for the study room exception taxonomy.

Covers error kinds, retryable flags and rebuilding exceptions from a
persisted job classification.

System role: Verification of error classification
"""

import pytest

from studyroom.core.exceptions import (
    USER_MESSAGES,
    BlobNotFoundError,
    ConversionExhausted,
    ConversionFailed,
    CorruptSourceError,
    DocumentNotFoundError,
    ErrorKind,
    JobNotFoundError,
    NotFoundError,
    PagesNotFoundError,
    ResourceExhaustedError,
    SourceNotFoundError,
    StaleCacheIgnored,
    StorageError,
    UnsupportedFormatError,
    exception_for_kind,
)


class TestErrorKinds:
    """Test suite for kind and retryable classification."""

    @pytest.mark.parametrize(
        "error,kind,retryable",
        [
            (SourceNotFoundError("missing"), ErrorKind.SOURCE_NOT_FOUND, False),
            (CorruptSourceError("bad"), ErrorKind.CORRUPT_SOURCE, False),
            (UnsupportedFormatError("locked"), ErrorKind.UNSUPPORTED_FORMAT, False),
            (ResourceExhaustedError("oom"), ErrorKind.RESOURCE_EXHAUSTED, True),
            (ResourceExhaustedError("slow", timed_out=True), ErrorKind.TIMEOUT, True),
            (ConversionFailed("upload"), ErrorKind.CONVERSION_FAILED, True),
            (ConversionExhausted("doc", 3), ErrorKind.CONVERSION_EXHAUSTED, False),
            (StorageError("s3 down"), ErrorKind.STORAGE, True),
        ],
    )
    def test_exception_should_carry_kind_and_retryable(self, error, kind, retryable) -> None:
        """Test each exception reports its kind and retry policy."""
        assert error.kind == kind
        assert error.retryable is retryable

    def test_blob_not_found_should_not_be_retryable(self) -> None:
        """Test a missing blob is a storage error that retrying won't fix."""
        # Act
        error = BlobNotFoundError("owner/doc/original.pdf")

        # Assert
        assert isinstance(error, StorageError)
        assert error.retryable is False
        assert error.details["path"] == "owner/doc/original.pdf"

    def test_not_found_errors_should_share_base(self) -> None:
        """Test lookups that found nothing share NotFoundError."""
        assert isinstance(DocumentNotFoundError("doc"), NotFoundError)
        assert isinstance(PagesNotFoundError("doc"), NotFoundError)
        assert isinstance(JobNotFoundError("job"), NotFoundError)


class TestStaleCacheIgnored:
    """Test suite for StaleCacheIgnored."""

    def test_stale_cache_should_be_a_cache_miss(self) -> None:
        """Test stale caches are caught by miss handlers."""
        # Act
        error = StaleCacheIgnored("doc-1", "expired")

        # Assert
        assert isinstance(error, PagesNotFoundError)
        assert error.reason == "expired"
        assert "expired" in str(error)


class TestConversionFailed:
    """Test suite for ConversionFailed partial progress."""

    def test_conversion_failed_should_record_partial_progress(self) -> None:
        """Test processed/total pages are kept on the exception and in details."""
        # Act
        error = ConversionFailed("upload failed", "doc-1", processed_pages=2, total_pages=5)

        # Assert
        assert error.processed_pages == 2
        assert error.total_pages == 5
        assert error.details["document_id"] == "doc-1"
        assert error.details["processed_pages"] == 2


class TestExceptionForKind:
    """Test suite for exception_for_kind()."""

    @pytest.mark.parametrize(
        "kind,expected",
        [
            (ErrorKind.SOURCE_NOT_FOUND, SourceNotFoundError),
            (ErrorKind.CORRUPT_SOURCE, CorruptSourceError),
            (ErrorKind.UNSUPPORTED_FORMAT, UnsupportedFormatError),
            (ErrorKind.RESOURCE_EXHAUSTED, ResourceExhaustedError),
            (ErrorKind.CONVERSION_FAILED, ConversionFailed),
            (ErrorKind.UNKNOWN, ConversionFailed),
        ],
    )
    def test_exception_for_kind_should_rebuild_matching_type(self, kind, expected) -> None:
        """Test a persisted kind maps back to its exception class."""
        # Act
        error = exception_for_kind(kind, "recorded message", "doc-1")

        # Assert
        assert type(error) is expected
        assert error.message == "recorded message"

    def test_exception_for_kind_should_rebuild_timeout(self) -> None:
        """Test TIMEOUT rebuilds a timed-out ResourceExhaustedError."""
        # Act
        error = exception_for_kind(ErrorKind.TIMEOUT, "too slow")

        # Assert
        assert isinstance(error, ResourceExhaustedError)
        assert error.timed_out is True
        assert error.kind == ErrorKind.TIMEOUT


class TestUserMessages:
    """Test suite for user-facing wording."""

    def test_fatal_source_kinds_should_have_actionable_messages(self) -> None:
        """Test missing and corrupt sources tell the user what to do."""
        assert "re-upload" in USER_MESSAGES[ErrorKind.SOURCE_NOT_FOUND]
        assert "password-protected" in USER_MESSAGES[ErrorKind.CORRUPT_SOURCE]
        assert "password-protected" in USER_MESSAGES[ErrorKind.UNSUPPORTED_FORMAT]
