"""Progressive JPEG re-encoding of rasterized pages using Pillow."""

import io

from PIL import Image, UnidentifiedImageError

from .errors import EncodingError

# Modes Pillow can write directly as JPEG
JPEG_MODES = ("RGB", "L", "CMYK")


def process(raster: bytes, quality: int = 85, optimize: bool = True) -> bytes:
    """
    Re-encode a rasterized page as a progressive JPEG.

    With ``optimize=False`` the raster is returned unchanged (the
    rasterizers already write JPEG).

    Raises:
        EncodingError: If the raster data is not a readable image
    """
    if not optimize:
        return raster

    if not 1 <= quality <= 100:
        raise EncodingError(f"JPEG quality must be between 1 and 100, got {quality}")

    try:
        with Image.open(io.BytesIO(raster)) as img:
            img.load()
            if img.mode not in JPEG_MODES:
                img = img.convert("RGB")
            buf = io.BytesIO()
            img.save(buf, format="JPEG", quality=quality, progressive=True, optimize=True)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise EncodingError(f"Could not re-encode page image: {e}") from e

    return buf.getvalue()
