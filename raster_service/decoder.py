"""
Input decoding for incoming PDF payloads.

Normalizes a base64 string (with or without a data URI prefix) or raw
uploaded bytes into a single PDF byte buffer, and parses conversion
options supplied as JSON text or a mapping.
"""

import base64
import binascii
import json
import re
from typing import Any, Iterable, Mapping, Optional, Union

from pydantic import ValidationError

from .errors import InvalidInput
from .models import ConversionOptions

PDF_DATA_URI_PREFIX = re.compile(r"^data:application/pdf;base64,", re.IGNORECASE)


def strip_data_uri(payload: str) -> str:
    """
    Remove a leading ``data:application/pdf;base64,`` prefix if present.

    Example:
        >>> strip_data_uri("data:application/pdf;base64,JVBERi0=")
        'JVBERi0='
    """
    return PDF_DATA_URI_PREFIX.sub("", payload.strip(), count=1)


def decode_base64_pdf(payload: Optional[str]) -> bytes:
    """
    Decode a base64 PDF payload into bytes.

    Whitespace inside the payload (line-wrapped base64) is ignored.

    Raises:
        InvalidInput: If the payload is missing, empty, or not valid base64
    """
    if payload is None or not payload.strip():
        raise InvalidInput("Field 'base64' with the PDF data is required")

    cleaned = "".join(strip_data_uri(payload).split())
    if not cleaned:
        raise InvalidInput("Field 'base64' contains no data after the data URI prefix")

    try:
        data = base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidInput(f"Field 'base64' is not valid base64: {e}") from e

    if not data:
        raise InvalidInput("Decoded PDF payload is empty")
    return data


def decode_upload(data: Optional[bytes]) -> bytes:
    """Use uploaded file bytes as-is; a missing or empty upload is a client error."""
    if not data:
        raise InvalidInput("A PDF file is required in the 'pdf' form field")
    return data


def parse_options(raw: Union[str, Mapping[str, Any], None]) -> ConversionOptions:
    """
    Build ConversionOptions from a JSON string, a mapping, or nothing.

    Raises:
        InvalidInput: On malformed JSON or out-of-range option values
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return ConversionOptions()

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise InvalidInput(f"Field 'options' is not valid JSON: {e.msg}") from e

    if not isinstance(raw, Mapping):
        raise InvalidInput("Field 'options' must be a JSON object")

    try:
        return ConversionOptions(**raw)
    except ValidationError as e:
        raise InvalidInput(f"Invalid conversion options: {summarize_errors(e.errors())}") from e


def summarize_errors(errors: Iterable[Mapping[str, Any]]) -> str:
    """Flatten pydantic validation errors into one readable line."""
    parts = []
    for item in errors:
        location = ".".join(str(loc) for loc in item.get("loc", ()))
        parts.append(f"{location}: {item.get('msg')}" if location else item.get("msg", ""))
    return "; ".join(parts)
