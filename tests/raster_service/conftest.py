"""
Pytest fixtures for raster service tests.

PDFs are built with PyMuPDF and images with Pillow so tests exercise real
bytes. FakeRasterizer stands in for the renderer where the test is about
the pipeline rather than about rendering.
"""

import io
import os

# Set environment variables BEFORE any imports from raster_service so the
# cached settings are built from them.
os.environ["RASTERIZER_BACKEND"] = "pymupdf"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["CORS_ORIGINS"] = "*"

from pathlib import Path
from typing import List, Optional

import fitz  # PyMuPDF
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from raster_service.errors import RasterizationError
from raster_service.rasterizer import Rasterizer


def make_pdf(page_count: int, width: float = 595, height: float = 842) -> bytes:
    """A real PDF with ``page_count`` pages, each labelled with its number."""
    doc = fitz.open()
    for i in range(page_count):
        page = doc.new_page(width=width, height=height)
        page.insert_text((72, 100), f"Page {i + 1} content")
    data = doc.tobytes()
    doc.close()
    return data


def make_jpeg(size=(40, 20), color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color=color).save(buf, format="JPEG", quality=95)
    return buf.getvalue()


class FakeRasterizer(Rasterizer):
    """
    Deterministic renderer double.

    Writes ``page_count`` solid-colour JPEG pages named like the real
    backends. With ``fail_after`` set, it writes that many pages and then
    raises RasterizationError, like a renderer dying mid-document.
    """

    name = "fake"

    def __init__(self, page_count: int = 3, fail_after: Optional[int] = None, raw: Optional[bytes] = None):
        self.page_count = page_count
        self.fail_after = fail_after
        self.raw = raw
        self.calls: List[dict] = []

    def rasterize(self, pdf_path, output_stem, density, max_width, max_height):
        self.calls.append({
            "pdf_path": pdf_path,
            "pdf_bytes": Path(pdf_path).read_bytes(),
            "density": density,
            "max_width": max_width,
            "max_height": max_height,
        })
        outputs = []
        # Written last page first so directory order never matches page order
        for index in range(self.page_count, 0, -1):
            if self.fail_after is not None and self.page_count - index >= self.fail_after:
                raise RasterizationError(f"Failed to render page {index}")
            path = output_stem.with_name(f"{output_stem.name}-{index}.jpg")
            data = self.raw if self.raw is not None else make_jpeg(color=(index * 20 % 256, 0, 0))
            path.write_bytes(data)
            outputs.append(path)
        return list(reversed(outputs))

    def check_available(self):
        return None


@pytest.fixture
def single_page_pdf() -> bytes:
    return make_pdf(1)


@pytest.fixture
def multi_page_pdf() -> bytes:
    """A real 3-page PDF."""
    return make_pdf(3)


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_jpeg()


@pytest.fixture
def png_rgba_bytes() -> bytes:
    """A real 10x10 RGBA PNG, which JPEG cannot store directly."""
    buf = io.BytesIO()
    Image.new("RGBA", (10, 10), color=(0, 0, 255, 128)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def scratch_dir(tmp_path: Path) -> Path:
    path = tmp_path / "temp"
    path.mkdir()
    return path


@pytest.fixture
def fake_rasterizer() -> FakeRasterizer:
    return FakeRasterizer(page_count=3)


@pytest.fixture
def app_module(scratch_dir, monkeypatch):
    """The app module pointed at a per-test scratch directory."""
    import raster_service.app as module

    monkeypatch.setattr(module, "_scratch_dir", scratch_dir)
    monkeypatch.setattr(module, "_rasterizer_ready", True)
    monkeypatch.setattr(module, "_rasterizer_error", None)
    return module


@pytest.fixture
def client(app_module):
    """Test client using the real PyMuPDF rasterizer."""
    return TestClient(app_module.app)


@pytest.fixture
def fake_client(app_module, fake_rasterizer, monkeypatch):
    """Test client whose rasterizer is a FakeRasterizer."""
    monkeypatch.setattr(app_module, "_rasterizer", fake_rasterizer)
    return TestClient(app_module.app)
