"""
Blank-page heuristic.

Flags rendered pages that are suspiciously small for a full-page image.
A JPEG under ~10KB for a whole page at 150 DPI is almost always a failed
render. The classification is advisory: it feeds logging and the
orchestrator's single re-render, never a hard failure.

Dependencies: None (pure domain layer)
System role: Render validation for the conversion pipeline
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Iterable

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD_BYTES = 10_000


class BlankPageStatus(str, enum.Enum):
    """
    Document-level classification.

    OK: no suspicious pages
    WARNING: some pages suspicious
    CRITICAL: every page suspicious
    """

    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class BlankPageReport:
    """Aggregate result over a document's page set."""

    status: BlankPageStatus
    total_pages: int
    suspicious_pages: list[int] = field(default_factory=list)
    threshold_bytes: int = DEFAULT_THRESHOLD_BYTES

    @property
    def suspicious_fraction(self) -> float:
        if self.total_pages == 0:
            return 0.0
        return len(self.suspicious_pages) / self.total_pages

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "total_pages": self.total_pages,
            "suspicious_pages": list(self.suspicious_pages),
            "threshold_bytes": self.threshold_bytes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BlankPageReport":
        """Rebuild a report persisted on a conversion job."""
        return cls(
            status=BlankPageStatus(data["status"]),
            total_pages=data["total_pages"],
            suspicious_pages=list(data.get("suspicious_pages", [])),
            threshold_bytes=data.get("threshold_bytes", DEFAULT_THRESHOLD_BYTES),
        )


def is_suspicious(image_bytes: bytes, threshold_bytes: int = DEFAULT_THRESHOLD_BYTES) -> bool:
    """Return True when a rendered page is small enough to be likely blank."""
    return len(image_bytes) < threshold_bytes


def classify_sizes(
    sizes: Iterable[int],
    threshold_bytes: int = DEFAULT_THRESHOLD_BYTES,
) -> BlankPageReport:
    """
    Classify a page set from byte sizes, in page order (page 1 first).

    Used on fresh renders and on stored PageCacheRecord sizes alike.

    Args:
        sizes: Byte length of each page
        threshold_bytes: Size below which a page is flagged

    Returns:
        BlankPageReport: OK, WARNING or CRITICAL with flagged page numbers
    """
    sizes = list(sizes)
    suspicious = [
        page_number
        for page_number, size in enumerate(sizes, start=1)
        if size < threshold_bytes
    ]

    if not suspicious:
        status = BlankPageStatus.OK
    elif len(suspicious) == len(sizes):
        status = BlankPageStatus.CRITICAL
    else:
        status = BlankPageStatus.WARNING

    return BlankPageReport(
        status=status,
        total_pages=len(sizes),
        suspicious_pages=suspicious,
        threshold_bytes=threshold_bytes,
    )


def classify_pages(
    images: Iterable[bytes],
    threshold_bytes: int = DEFAULT_THRESHOLD_BYTES,
) -> BlankPageReport:
    """Classify a rendered page set by inspecting image byte lengths."""
    return classify_sizes((len(image) for image in images), threshold_bytes)


def log_report(report: BlankPageReport, document_id: str) -> None:
    """Emit the report at a level matching its severity."""
    context = {
        "document_id": document_id,
        "blank_page_status": report.status.value,
        "suspicious_pages": report.suspicious_pages,
        "total_pages": report.total_pages,
    }
    if report.status == BlankPageStatus.CRITICAL:
        logger.error("All rendered pages look blank", extra=context)
    elif report.status == BlankPageStatus.WARNING:
        logger.warning("Some rendered pages look blank", extra=context)
    else:
        logger.debug("Blank-page check passed", extra=context)
