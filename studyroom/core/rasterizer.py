"""
Page rasterizer adapter.

Thin seam around PyMuPDF: PDF bytes in, ordered page images out.
Pure transform with no I/O; fetching the source and storing results
belong to the caller.

Dependencies: fitz (PyMuPDF)
System role: PDF rendering for the conversion pipeline
"""

import logging
from typing import Protocol

import fitz  # PyMuPDF

from studyroom.core.exceptions import (
    CorruptSourceError,
    ResourceExhaustedError,
    UnsupportedFormatError,
)
from studyroom.core.pages import ImageFormat, RasterOptions, RenderedPage

logger = logging.getLogger(__name__)

PDF_POINTS_PER_INCH = 72


class Rasterizer(Protocol):
    """Anything that turns PDF bytes into ordered page images."""

    def rasterize(self, pdf_bytes: bytes, options: RasterOptions) -> list[RenderedPage]:
        ...


class PdfRasterizer:
    """PyMuPDF-backed rasterizer."""

    def page_count(self, pdf_bytes: bytes) -> int:
        """
        Count pages without rendering.

        Args:
            pdf_bytes: Raw PDF content

        Returns:
            int: Number of pages

        Raises:
            CorruptSourceError: Bytes are not a readable PDF
            UnsupportedFormatError: PDF is encrypted
        """
        with self._open(pdf_bytes) as doc:
            return doc.page_count

    def rasterize(self, pdf_bytes: bytes, options: RasterOptions) -> list[RenderedPage]:
        """
        Render every page of a PDF to an image.

        Pages are rendered at options.dpi, scaled down where needed so the
        output fits inside max_width x max_height.

        Args:
            pdf_bytes: Raw PDF content
            options: Resolution, format and quality

        Returns:
            list[RenderedPage]: One entry per page, page 1 first

        Raises:
            CorruptSourceError: Malformed PDF or a page that fails to render
            UnsupportedFormatError: Encrypted / password-protected PDF
            ResourceExhaustedError: Out of memory while rendering
        """
        pages: list[RenderedPage] = []
        with self._open(pdf_bytes) as doc:
            if doc.page_count == 0:
                raise CorruptSourceError("PDF contains no pages")

            for index, page in enumerate(doc):
                page_number = index + 1
                try:
                    content = self._render_page(page, options)
                except MemoryError as e:
                    raise ResourceExhaustedError(
                        f"Out of memory rendering page {page_number}",
                        details={"page_number": page_number, "page_count": doc.page_count},
                    ) from e
                except RuntimeError as e:
                    raise CorruptSourceError(
                        f"Failed to render page {page_number}: {e}",
                        details={"page_number": page_number},
                    ) from e

                pages.append(
                    RenderedPage(
                        page_number=page_number,
                        content=content,
                        image_format=options.image_format,
                    )
                )
                logger.debug(
                    "Rendered page",
                    extra={"page_number": page_number, "size_bytes": len(content)},
                )

        return pages

    def _open(self, pdf_bytes: bytes) -> fitz.Document:
        if not pdf_bytes:
            raise CorruptSourceError("Source file is empty")
        try:
            doc = fitz.open(stream=pdf_bytes, filetype="pdf")
        except (RuntimeError, ValueError) as e:
            raise CorruptSourceError(f"Unable to open PDF: {e}") from e

        if doc.needs_pass or doc.is_encrypted:
            doc.close()
            raise UnsupportedFormatError("PDF is encrypted or password-protected")
        return doc

    @staticmethod
    def _render_page(page: fitz.Page, options: RasterOptions) -> bytes:
        zoom = options.dpi / PDF_POINTS_PER_INCH
        rect = page.rect
        if rect.width > 0 and rect.height > 0:
            zoom = min(zoom, options.max_width / rect.width, options.max_height / rect.height)

        pixmap = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom), alpha=False)
        if options.image_format == ImageFormat.PNG:
            return pixmap.tobytes("png")
        return pixmap.tobytes("jpeg", jpg_quality=options.jpeg_quality)
