"""
PDF to JPEG conversion pipeline.

    PDF bytes -> scratch file -> rasterizer -> page files
              -> post-processor -> PageImage stream -> ConversionResult

All scratch files live inside one ScratchSpace, so they are removed on
success, on any pipeline error, and on cancellation. Blocking renderer
and Pillow work runs in a worker thread to keep the event loop free.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Iterable, Iterator, List

from .errors import RasterizationError
from .models import ConversionOptions, ConversionResult, PageImage
from .postprocess import process
from .rasterizer import Rasterizer
from .scratch import ScratchSpace

logger = logging.getLogger(__name__)

def iter_page_images(
    scratch: ScratchSpace,
    page_handles: Iterable[Path],
    options: ConversionOptions,
) -> Iterator[PageImage]:
    """
    Lazily read, re-encode and release each rendered page in order.

    Page numbers are the 1-based position in ``page_handles``. Each page
    file is deleted as soon as it has been read.
    """
    for page_number, handle in enumerate(page_handles, start=1):
        raster = scratch.read(handle)
        scratch.delete(handle)
        jpeg = process(raster, quality=options.quality, optimize=options.optimize)
        yield PageImage(page_number=page_number, data=jpeg, encoded_size=len(jpeg))


def assemble_result(pages: Iterable[PageImage], elapsed_ms: int) -> ConversionResult:
    """Collect page images into a ConversionResult, keeping arrival order."""
    return ConversionResult(pages=list(pages), elapsed_ms=elapsed_ms)


def _render_and_encode(
    scratch: ScratchSpace,
    source: bytes,
    options: ConversionOptions,
    rasterizer: Rasterizer,
) -> List[PageImage]:
    pdf_handle = scratch.write(source, ".pdf")
    rendered = rasterizer.rasterize(
        pdf_handle,
        scratch.page_stem(pdf_handle),
        density=options.density,
        max_width=options.width,
        max_height=options.height,
    )
    page_handles = scratch.list_page_outputs(pdf_handle)
    if len(page_handles) != len(rendered):
        raise RasterizationError(
            f"Renderer reported {len(rendered)} page(s) but {len(page_handles)} were found"
        )
    scratch.delete(pdf_handle)
    return list(iter_page_images(scratch, page_handles, options))


async def convert_pdf(
    source: bytes,
    options: ConversionOptions,
    rasterizer: Rasterizer,
    scratch_root: Path,
) -> ConversionResult:
    """
    Convert a PDF into one JPEG per page.

    Args:
        source: Raw PDF bytes
        options: Rendering and encoding options
        rasterizer: Renderer used for the page images
        scratch_root: Directory for this request's scratch files

    Returns:
        ConversionResult with pages in document order

    Raises:
        RasterizationError: If the renderer fails on any page
        EncodingError: If a rendered page cannot be re-encoded
    """
    started = time.monotonic()
    with ScratchSpace(scratch_root) as scratch:
        logger.info(
            f"[{scratch.stem}] Starting conversion ({len(source)} bytes, "
            f"backend={rasterizer.name}, density={options.density}, "
            f"box={options.width}x{options.height}, quality={options.quality}, "
            f"optimize={options.optimize})"
        )
        work = asyncio.ensure_future(
            asyncio.to_thread(_render_and_encode, scratch, source, options, rasterizer)
        )
        try:
            pages = await asyncio.shield(work)
        except asyncio.CancelledError:
            # The worker thread cannot be interrupted; wait for it so cleanup
            # also catches the files it is still writing. Repeated cancels
            # must not cut this wait short.
            logger.warning(f"[{scratch.stem}] Conversion cancelled, waiting for renderer")
            while not work.done():
                try:
                    await asyncio.wait({work})
                except asyncio.CancelledError:
                    logger.warning(f"[{scratch.stem}] Cancelled again, still waiting for renderer")
            if not work.cancelled() and work.exception() is not None:
                logger.debug(f"[{scratch.stem}] Renderer finished with {work.exception()!r} after cancel")
            raise
        except Exception as e:
            logger.error(f"[{scratch.stem}] Conversion failed: {e}")
            raise

    elapsed_ms = int((time.monotonic() - started) * 1000)
    logger.info(f"[{scratch.stem}] Conversion completed: {len(pages)} page(s) in {elapsed_ms}ms")
    return assemble_result(pages, elapsed_ms)
