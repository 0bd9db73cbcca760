import base64
import binascii
import logging
import re
import time
from typing import Any, Optional

from app.core.errors import EmptyPayload, InvalidPayloadFormat

logger = logging.getLogger(__name__)

PDF_DATA_URI_PREFIX = "data:application/pdf;base64,"
KNOWN_DATA_URI_PREFIXES = (
    PDF_DATA_URI_PREFIX,
    "data:application/octet-stream;base64,",
)
_GENERIC_DATA_URI = re.compile(r"^data:[^,]*?;base64,")
_BASE64_ONLY = re.compile(r"^[A-Za-z0-9+/=\s]+$")

def safe_name(value: Optional[str], fallback: str = "unknown", max_length: Optional[int] = None) -> str:
    """Replace everything except ASCII letters and digits with underscores"""
    cleaned = re.sub(r"[^a-zA-Z0-9]", "_", value or "") or fallback
    return cleaned[:max_length] if max_length else cleaned

def safe_file_name(value: str) -> str:
    return re.sub(r"[^a-zA-Z0-9_\-.]", "_", value)

def timestamp_ms() -> int:
    return int(time.time() * 1000)

def strip_data_uri(data: str) -> str:
    """Remove a known (or any) base64 data URI prefix"""
    for prefix in KNOWN_DATA_URI_PREFIXES:
        if data.startswith(prefix):
            return data[len(prefix):]
    return _GENERIC_DATA_URI.sub("", data, count=1)

def decode_base64(data: str) -> bytes:
    try:
        buffer = base64.b64decode(data, validate=False)
    except (binascii.Error, ValueError) as e:
        raise InvalidPayloadFormat(f"Failed to process PDF data: {str(e)}")
    if len(buffer) == 0:
        raise EmptyPayload()
    return buffer

def decode_pdf_data_uri(pdf_data: str) -> bytes:
    """Decode a data URI that must carry the exact PDF MIME prefix"""
    if not pdf_data.startswith(PDF_DATA_URI_PREFIX):
        raise InvalidPayloadFormat("Invalid PDF data format")
    return decode_base64(pdf_data[len(PDF_DATA_URI_PREFIX):])

def decode_chunk_data(chunk_data: str) -> bytes:
    return decode_base64(strip_data_uri(chunk_data))

def coerce_byte_buffer(value: Any) -> bytes:
    """
    Accept the shapes clients send a PDF buffer in: a list of byte values,
    a base64 string (optionally a data URI), or plain text.
    """
    if isinstance(value, (bytes, bytearray)):
        buffer = bytes(value)
    elif isinstance(value, list):
        try:
            buffer = bytes(int(v) for v in value)
        except (TypeError, ValueError) as e:
            raise InvalidPayloadFormat(f"Invalid PDF buffer format: {str(e)}")
    elif isinstance(value, str):
        if value.startswith("data:") or _BASE64_ONLY.match(value):
            try:
                buffer = base64.b64decode(_GENERIC_DATA_URI.sub("", value, count=1))
            except (binascii.Error, ValueError) as e:
                raise InvalidPayloadFormat(f"Invalid PDF buffer format: {str(e)}")
        else:
            buffer = value.encode("utf-8")
    else:
        raise InvalidPayloadFormat(f"Invalid PDF buffer format: unsupported type {type(value).__name__}")

    if len(buffer) == 0:
        raise EmptyPayload("Empty PDF buffer")
    if not buffer.startswith(b"%PDF"):
        logger.warning(f"Buffer does not appear to be a valid PDF file. Buffer starts with: {buffer[:5]!r}")
    return buffer
