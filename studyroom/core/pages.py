"""
Page domain types.

Closed enums for stored page metadata and the value objects passed
between the rasterizer, the orchestrator and the page cache store.

Dependencies: None (pure domain layer)
System role: Shared vocabulary for the conversion pipeline
"""

import enum
from dataclasses import dataclass


class ImageFormat(str, enum.Enum):
    """Stored page image encodings."""

    JPEG = "jpeg"
    PNG = "png"

    @property
    def extension(self) -> str:
        return "jpg" if self is ImageFormat.JPEG else "png"

    @property
    def content_type(self) -> str:
        return f"image/{self.value}"


class QualityLevel(str, enum.Enum):
    """Rendering quality tier."""

    STANDARD = "standard"
    HIGH = "high"


class GenerationMethod(str, enum.Enum):
    """
    How a cached page came to exist.

    STANDARD: normal rasterization pass
    RERENDERED: second pass after the blank-page check flagged the first
    PLACEHOLDER: stand-in image inserted by tooling; never served as a real page
    """

    STANDARD = "standard"
    RERENDERED = "rerendered"
    PLACEHOLDER = "placeholder"

    @property
    def is_real(self) -> bool:
        return self is not GenerationMethod.PLACEHOLDER


@dataclass(frozen=True)
class RasterOptions:
    """Rasterizer settings; defaults reproduce the reference pipeline."""

    dpi: int = 150
    image_format: ImageFormat = ImageFormat.JPEG
    jpeg_quality: int = 85
    max_width: int = 1200
    max_height: int = 1600


@dataclass(frozen=True)
class RenderedPage:
    """One rasterized page, 1-based."""

    page_number: int
    content: bytes
    image_format: ImageFormat

    @property
    def size_bytes(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class PageUrl:
    """A page number paired with its time-limited signed URL."""

    page_number: int
    url: str
