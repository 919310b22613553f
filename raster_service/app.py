"""
Raster Service - FastAPI application for PDF to JPEG conversion.

Provides endpoints for converting a base64 PDF payload or an uploaded PDF
file into one base64-encoded JPEG per page.
"""

import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .config import get_settings, validate_config_on_startup
from .decoder import decode_base64_pdf, decode_upload, parse_options, summarize_errors
from .errors import ConversionError, InvalidInput, PayloadTooLarge, UnhandledError
from .limits import RequestSizeLimitMiddleware
from .models import (
    ConversionOptions,
    ConvertFileResponse,
    ConvertRequest,
    ConvertResponse,
    ErrorResponse,
    HealthResponse,
)
from .pipeline import convert_pdf
from .rasterizer import Rasterizer, get_rasterizer
from .sweeper import TempSweeper

# Configure logging
logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger(__name__)

# Validate configuration at startup
settings = validate_config_on_startup()

app = FastAPI(
    title="PDF to JPG Converter",
    version=__version__,
    description="Converts PDF documents into one JPEG image per page"
)

app.add_middleware(RequestSizeLimitMiddleware, settings=settings)

if settings.cors_origins_list:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    413: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}

# Process-local state
_started_at = time.monotonic()
_scratch_dir: Path = settings.temp_dir
_rasterizer: Rasterizer = get_rasterizer(
    settings.rasterizer_backend,
    timeout_seconds=settings.render_timeout_seconds,
    jpeg_quality=settings.raster_jpeg_quality,
)
_rasterizer_ready = False
_rasterizer_error: Optional[str] = None
_sweeper: Optional[TempSweeper] = None


# ============================================================================
# Error Handling
# ============================================================================

def _error_body(error: ConversionError) -> Dict[str, str]:
    return {"error": error.code, "message": str(error)}


@app.exception_handler(ConversionError)
async def conversion_error_handler(request: Request, exc: ConversionError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: [{exc.code}] {exc}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: [{exc.code}] {exc}")
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = InvalidInput(f"Invalid request: {summarize_errors(exc.errors())}")
    logger.warning(f"{request.method} {request.url.path} rejected: {error}")
    return JSONResponse(status_code=error.status_code, content=_error_body(error))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content=_error_body(UnhandledError(str(exc))))


# ============================================================================
# Startup / Shutdown
# ============================================================================

@app.on_event("startup")
async def prepare_storage_and_renderer():
    """
    Create storage roots, clear leftover scratch files, validate the renderer
    and start the periodic scratch sweep.
    """
    global _rasterizer_ready, _rasterizer_error, _sweeper

    _scratch_dir.mkdir(parents=True, exist_ok=True)
    settings.output_dir.mkdir(parents=True, exist_ok=True)

    _sweeper = TempSweeper(
        _scratch_dir,
        interval_seconds=settings.cleanup_interval_seconds,
        retention_seconds=settings.cleanup_retention_seconds,
    )
    # A single process has no request in flight yet, so every leftover is an
    # orphan. A shared temp_dir may hold files of live requests elsewhere.
    removed = _sweeper.sweep_once(max_age=0 if settings.startup_sweep_all else None)
    logger.info(f"Temporary files cleaned ({removed} removed)")

    try:
        _rasterizer.check_available()
        _rasterizer_ready = True
        _rasterizer_error = None
        logger.info(f"Rasterizer '{_rasterizer.name}' is ready")
    except ConversionError as e:
        _rasterizer_ready = False
        _rasterizer_error = str(e)
        logger.error(f"Rasterizer '{_rasterizer.name}' validation failed: {e}")
        logger.error("Conversions will fail until this is resolved.")

    _sweeper.start()
    logger.info(f"Service listening on port {settings.port}")


@app.on_event("shutdown")
async def stop_sweeper():
    """Stop the periodic scratch sweep."""
    global _sweeper

    if _sweeper:
        await _sweeper.stop()
        _sweeper = None


# ============================================================================
# Conversion Endpoints
# ============================================================================

async def _run_conversion(source: bytes, options: ConversionOptions):
    try:
        return await convert_pdf(source, options, _rasterizer, _scratch_dir)
    except ConversionError:
        raise
    except Exception as e:
        logger.exception("Unexpected conversion failure")
        raise UnhandledError(f"Conversion failed: {e}") from e


@app.post("/convert", response_model=ConvertResponse, responses=ERROR_RESPONSES)
async def convert(request: ConvertRequest) -> Dict[str, Any]:
    """
    Convert a base64 PDF payload to JPEG images.

    The payload may carry a ``data:application/pdf;base64,`` prefix.

    Raises:
        InvalidInput: 400 when ``base64`` is missing or malformed
        RasterizationError / EncodingError: 500 on pipeline failure
    """
    source = decode_base64_pdf(request.base64)
    options = request.options or ConversionOptions()

    result = await _run_conversion(source, options)
    return result.to_response(include_timing=True)


@app.post("/convert-file", response_model=ConvertFileResponse, responses=ERROR_RESPONSES)
async def convert_file(
    pdf: Optional[UploadFile] = File(None, description="PDF file to convert"),
    options: Optional[str] = Form(None, description="JSON-encoded conversion options"),
) -> Dict[str, Any]:
    """
    Convert an uploaded PDF file to JPEG images.

    Raises:
        InvalidInput: 400 when the file is missing or options are invalid
        PayloadTooLarge: 413 when the upload exceeds the size cap
        RasterizationError / EncodingError: 500 on pipeline failure
    """
    if pdf is None:
        raise InvalidInput("A PDF file is required in the 'pdf' form field")

    try:
        data = await pdf.read(settings.max_request_bytes + 1)
    finally:
        await pdf.close()

    if len(data) > settings.max_request_bytes:
        raise PayloadTooLarge(len(data), settings.max_request_bytes)

    source = decode_upload(data)
    parsed_options = parse_options(options)
    logger.info(f"Received upload '{pdf.filename}' ({len(source)} bytes)")

    result = await _run_conversion(source, parsed_options)
    return result.to_response(include_timing=False)


# ============================================================================
# Health & Info
# ============================================================================

@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check endpoint with uptime and renderer readiness."""
    return HealthResponse(
        status="OK",
        timestamp=datetime.now(timezone.utc),
        uptime=round(time.monotonic() - _started_at, 3),
        rasterizer=_rasterizer.name,
        rasterizer_ready=_rasterizer_ready,
        rasterizer_error=_rasterizer_error,
    )


@app.get("/")
async def service_info() -> Dict[str, Any]:
    """Service metadata and a usage example."""
    return {
        "service": "PDF to JPG Converter",
        "version": __version__,
        "endpoints": {
            "POST /convert": "Convert a base64 PDF into JPEG images",
            "POST /convert-file": "Convert an uploaded PDF file into JPEG images",
            "GET /health": "Service status",
        },
        "example": {
            "method": "POST",
            "url": "/convert",
            "body": {
                "base64": "JVBERi0xLjQKJeLjz9MKMSAwIG9iago8PAov...",
                "options": ConversionOptions().model_dump(),
            },
        },
    }
