"""
PDF rasterization backends.

Each backend renders every page of a PDF scratch file at a given DPI into
its own JPEG scratch file, bounded to a maximum pixel box with the aspect
ratio preserved. Two renderers are supported:

- PyMuPDF (``fitz``), an in-process library call (default)
- poppler via ``pdf2image``, which runs ``pdftoppm`` as a subprocess

Any failure is reported as RasterizationError; the caller's ScratchSpace
removes whatever pages were already written.
"""

import io
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List

from PIL import Image

from .errors import RasterizationError

logger = logging.getLogger(__name__)

PDF_BASE_DPI = 72  # PDF user space unit is 1/72 inch


def bounding_scale(width: float, height: float, max_width: int, max_height: int) -> float:
    """
    Scale factor that fits ``width x height`` into the max box without upscaling.

    Example:
        >>> bounding_scale(4000, 2000, 2000, 2000)
        0.5
    """
    if width <= 0 or height <= 0:
        return 1.0
    return min(1.0, max_width / width, max_height / height)


class Rasterizer(ABC):
    """Narrow interface over an external PDF renderer."""

    name = "abstract"

    @abstractmethod
    def rasterize(
        self,
        pdf_path: Path,
        output_stem: Path,
        density: int,
        max_width: int,
        max_height: int,
    ) -> List[Path]:
        """
        Render every page of ``pdf_path``.

        Args:
            pdf_path: PDF scratch file
            output_stem: Path prefix for page outputs; pages are written as
                ``<output_stem>...-<page>.jpg`` in the same directory
            density: Render resolution in DPI
            max_width: Maximum page width in pixels
            max_height: Maximum page height in pixels

        Returns:
            Page output paths in page order

        Raises:
            RasterizationError: If the PDF cannot be rendered
        """

    @abstractmethod
    def check_available(self) -> None:
        """Raise RasterizationError if the renderer cannot be used."""


class PyMuPDFRasterizer(Rasterizer):
    """Render pages in-process with PyMuPDF."""

    name = "pymupdf"

    def __init__(self, jpeg_quality: int = 95):
        self.jpeg_quality = jpeg_quality

    def rasterize(self, pdf_path, output_stem, density, max_width, max_height):
        import fitz  # PyMuPDF

        try:
            doc = fitz.open(str(pdf_path), filetype="pdf")
        except Exception as e:
            raise RasterizationError(f"Could not open PDF: {e}") from e

        try:
            if doc.needs_pass:
                raise RasterizationError("PDF is password protected")
            if doc.page_count == 0:
                raise RasterizationError("PDF has no pages")

            outputs = []
            for index, page in enumerate(doc, start=1):
                out_path = output_stem.with_name(f"{output_stem.name}-{index}.jpg")
                try:
                    pixmap = self._render_page(page, density, max_width, max_height)
                    pixmap.save(str(out_path), jpg_quality=self.jpeg_quality)
                except Exception as e:
                    raise RasterizationError(f"Failed to render page {index}: {e}") from e
                outputs.append(out_path)
            return outputs
        finally:
            doc.close()

    @staticmethod
    def _render_page(page, density: int, max_width: int, max_height: int):
        import fitz  # PyMuPDF

        zoom = density / PDF_BASE_DPI
        rect = page.rect
        zoom *= bounding_scale(rect.width * zoom, rect.height * zoom, max_width, max_height)
        pixmap = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom), colorspace=fitz.csRGB, alpha=False)

        # Rounding the page box to whole pixels can overshoot by one
        if pixmap.width > max_width or pixmap.height > max_height:
            zoom *= min(max_width / pixmap.width, max_height / pixmap.height)
            pixmap = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom), colorspace=fitz.csRGB, alpha=False)
        return pixmap

    def check_available(self) -> None:
        try:
            import fitz  # PyMuPDF

            doc = fitz.open()
            doc.new_page(width=72, height=72)
            doc[0].get_pixmap()
            doc.close()
        except Exception as e:
            raise RasterizationError(f"PyMuPDF is not usable: {e}") from e


class PopplerRasterizer(Rasterizer):
    """Render pages with poppler's pdftoppm through pdf2image."""

    name = "poppler"

    def __init__(self, timeout_seconds: int = 120, jpeg_quality: int = 95):
        self.timeout_seconds = timeout_seconds
        self.jpeg_quality = jpeg_quality

    def rasterize(self, pdf_path, output_stem, density, max_width, max_height):
        from pdf2image import convert_from_path
        from pdf2image.exceptions import (
            PDFInfoNotInstalledError,
            PDFPageCountError,
            PDFPopplerTimeoutError,
            PDFSyntaxError,
        )

        try:
            paths = convert_from_path(
                str(pdf_path),
                dpi=density,
                output_folder=str(output_stem.parent),
                output_file=output_stem.name,
                fmt="jpeg",
                jpegopt={"quality": self.jpeg_quality, "progressive": False, "optimize": False},
                paths_only=True,
                thread_count=1,
                timeout=self.timeout_seconds,
            )
        except PDFInfoNotInstalledError as e:
            raise RasterizationError("poppler is not installed or not on PATH") from e
        except PDFPopplerTimeoutError as e:
            raise RasterizationError(
                f"Rendering timed out after {self.timeout_seconds}s"
            ) from e
        except (PDFPageCountError, PDFSyntaxError) as e:
            raise RasterizationError(f"Invalid PDF: {e}") from e
        except Exception as e:
            raise RasterizationError(f"Rendering failed: {e}") from e

        if not paths:
            raise RasterizationError("PDF has no pages")

        outputs = [Path(p) for p in paths]
        for index, path in enumerate(outputs, start=1):
            try:
                self._fit_to_box(path, max_width, max_height)
            except Exception as e:
                raise RasterizationError(f"Failed to resize page {index}: {e}") from e
        return outputs

    def _fit_to_box(self, path: Path, max_width: int, max_height: int) -> None:
        with Image.open(path) as img:
            if img.width <= max_width and img.height <= max_height:
                return
            img.thumbnail((max_width, max_height), Image.Resampling.LANCZOS)
            img.save(path, format="JPEG", quality=self.jpeg_quality)

    def check_available(self) -> None:
        from pdf2image import pdfinfo_from_bytes

        buf = io.BytesIO()
        Image.new("RGB", (8, 8), color=(255, 255, 255)).save(buf, format="PDF")
        try:
            pdfinfo_from_bytes(buf.getvalue(), timeout=self.timeout_seconds)
        except Exception as e:
            raise RasterizationError(f"poppler is not usable: {e}") from e


def get_rasterizer(backend: str, timeout_seconds: int = 120, jpeg_quality: int = 95) -> Rasterizer:
    """Build the rasterizer for a configured backend name."""
    if backend == PyMuPDFRasterizer.name:
        return PyMuPDFRasterizer(jpeg_quality=jpeg_quality)
    if backend == PopplerRasterizer.name:
        return PopplerRasterizer(timeout_seconds=timeout_seconds, jpeg_quality=jpeg_quality)
    raise ValueError(f"Unknown rasterizer backend: {backend}")
