"""
Raster Service Configuration Module

Centralized configuration management with Pydantic validation.
All environment variables are validated at startup to catch misconfigurations early.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

SUPPORTED_BACKENDS = ("pymupdf", "poppler")


class RasterSettings(BaseSettings):
    """
    Raster service configuration with validation.

    All settings can be overridden via environment variables
    (or a local ``.env`` file).
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # === Server ===
    port: int = Field(default=3000, ge=1, le=65535, description="HTTP listen port")
    host: str = Field(default="0.0.0.0", description="HTTP listen address")
    log_level: str = Field(default="INFO", description="Root log level")

    # === Storage ===
    temp_dir: Path = Field(default=Path("temp"), description="Scratch file directory")
    output_dir: Path = Field(
        default=Path("output"),
        description="Reserved output directory (created at startup, unused)"
    )

    # === Limits ===
    max_request_bytes: int = Field(
        default=50 * 1024 * 1024,
        ge=1024,
        description="Maximum request body / upload size in bytes (default 50MB)"
    )

    # === Rendering ===
    rasterizer_backend: str = Field(
        default="pymupdf",
        description="Rasterizer backend: 'pymupdf' or 'poppler'"
    )
    render_timeout_seconds: int = Field(
        default=120,
        ge=1,
        le=3600,
        description="Timeout for the poppler subprocess in seconds"
    )
    raster_jpeg_quality: int = Field(
        default=95,
        ge=1,
        le=100,
        description="JPEG quality of the raw rasterizer output"
    )

    # === Scratch cleanup ===
    cleanup_interval_seconds: float = Field(
        default=3600,
        gt=0,
        description="Interval between background sweeps of the scratch directory"
    )
    cleanup_retention_seconds: float = Field(
        default=3600,
        ge=0,
        description="Scratch files older than this are removed by the sweep"
    )
    startup_sweep_all: bool = Field(
        default=True,
        description=(
            "Clear the whole scratch directory at startup. Disable when several "
            "workers or instances share temp_dir; startup then honours the retention window"
        )
    )

    # === CORS ===
    cors_origins: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins"
    )

    @field_validator("rasterizer_backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        """Validate the rasterizer backend is a known value."""
        v_lower = v.strip().lower()
        if v_lower not in SUPPORTED_BACKENDS:
            raise ValueError(
                f"rasterizer_backend must be one of: {', '.join(SUPPORTED_BACKENDS)}"
            )
        return v_lower

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate the log level is one the logging module understands."""
        v_upper = v.strip().upper()
        if v_upper not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {v}")
        return v_upper

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins into a list."""
        if not self.cors_origins:
            return []
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> RasterSettings:
    """
    Get cached settings instance.

    Settings are loaded once and cached for performance.
    Use this function to access configuration throughout the app.
    """
    return RasterSettings()


def validate_config_on_startup() -> RasterSettings:
    """
    Validate configuration at application startup.

    Raises ValueError with details if config is invalid.
    """
    try:
        settings = get_settings()
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")

    logger.info("Configuration loaded:")
    logger.info(f"  rasterizer_backend={settings.rasterizer_backend}")
    logger.info(f"  temp_dir={settings.temp_dir}")
    logger.info(f"  max_request_bytes={settings.max_request_bytes}")
    logger.info(
        f"  cleanup every {settings.cleanup_interval_seconds}s, "
        f"retention {settings.cleanup_retention_seconds}s"
        f", startup sweep {'all' if settings.startup_sweep_all else 'retention'}"
    )
    return settings
