"""
Pydantic models and pipeline data types for the raster service.

These models define the structure for API requests, responses, and the
per-request conversion artifacts.
"""

import base64
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

JPEG_DATA_URI_PREFIX = "data:image/jpeg;base64,"


def to_data_uri(jpeg: bytes) -> str:
    """Encode JPEG bytes as a ``data:image/jpeg;base64,`` URI."""
    return JPEG_DATA_URI_PREFIX + base64.b64encode(jpeg).decode("ascii")


class ConversionOptions(BaseModel):
    """Rendering and encoding options. Immutable; omitted fields take defaults."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    density: int = Field(300, gt=0, description="Render resolution in DPI")
    width: int = Field(2000, gt=0, description="Maximum page width in pixels")
    height: int = Field(2000, gt=0, description="Maximum page height in pixels")
    quality: int = Field(85, ge=1, le=100, description="JPEG quality (1-100)")
    optimize: bool = Field(True, description="Re-encode pages as progressive JPEG")


class ConvertRequest(BaseModel):
    """Request body for POST /convert."""

    base64: Optional[str] = Field(
        None, description="PDF data as base64, optionally with a data URI prefix"
    )
    options: Optional[ConversionOptions] = Field(
        None, description="Conversion options; omitted fields take their defaults"
    )


@dataclass(frozen=True)
class PageImage:
    """One rendered page. ``encoded_size`` is the JPEG byte length."""

    page_number: int
    data: bytes
    encoded_size: int


@dataclass
class ConversionResult:
    """Ordered page images plus elapsed processing time."""

    pages: List[PageImage] = field(default_factory=list)
    elapsed_ms: int = 0

    @property
    def total_pages(self) -> int:
        return len(self.pages)

    def to_response(self, include_timing: bool = True) -> Dict[str, Any]:
        """Build the wire payload returned by the conversion endpoints."""
        payload: Dict[str, Any] = {
            "success": True,
            "totalPages": self.total_pages,
        }
        if include_timing:
            payload["processingTime"] = self.elapsed_ms
        payload["images"] = [
            {
                "page": page.page_number,
                "base64": to_data_uri(page.data),
                "size": page.encoded_size,
            }
            for page in self.pages
        ]
        return payload


class PageImageResponse(BaseModel):
    """One page in a conversion response."""

    page: int
    base64: str
    size: int


class ConvertResponse(BaseModel):
    """Response for POST /convert."""

    success: bool = True
    totalPages: int
    processingTime: int
    images: List[PageImageResponse]


class ConvertFileResponse(BaseModel):
    """Response for POST /convert-file."""

    success: bool = True
    totalPages: int
    images: List[PageImageResponse]


class ErrorResponse(BaseModel):
    """Error body returned for every failed request."""

    error: str
    message: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "OK"
    timestamp: datetime
    uptime: float
    rasterizer: str
    rasterizer_ready: bool = True
    rasterizer_error: Optional[str] = None
