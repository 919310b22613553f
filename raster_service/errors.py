"""
Error taxonomy for the conversion pipeline.

Every error carries the short ``code`` and HTTP status used by the
exception handlers in ``app.py`` to build the ``{error, message}`` body.
"""


class ConversionError(Exception):
    """Base exception for conversion pipeline errors."""

    code = "conversion_error"
    status_code = 500


class InvalidInput(ConversionError):
    """Raised when request data is missing or malformed (client fault)."""

    code = "invalid_input"
    status_code = 400


class PayloadTooLarge(InvalidInput):
    """Raised when the request body or upload exceeds the size cap."""

    code = "payload_too_large"
    status_code = 413

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(
            f"Payload of {size} bytes exceeds the {limit} byte limit"
        )


class RasterizationError(ConversionError):
    """Raised when the external renderer fails or is unavailable."""

    code = "rasterization_error"


class EncodingError(ConversionError):
    """Raised when a rasterized page cannot be re-encoded as JPEG."""

    code = "encoding_error"


class UnhandledError(ConversionError):
    """Wraps an unexpected exception raised while handling a request."""

    code = "internal_error"
