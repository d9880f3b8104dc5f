"""Payload helpers for check documents: data URIs, base64, and OpenCV decoding."""

import base64
import binascii
import re

import cv2
import numpy as np

from ..exceptions import DecodeError

DATA_URI_PREFIX = re.compile(r"^data:[\w.+-]+/[\w.+-]+(?:;[^;,]+)*;base64,", re.IGNORECASE)

# Leading bytes of the formats accepted for upload
MAGIC_NUMBERS = (
    (b"%PDF", "application/pdf"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"II*\x00", "image/tiff"),
    (b"MM\x00*", "image/tiff"),
    (b"BM", "image/bmp"),
)


def strip_data_uri(payload: str) -> str:
    """Remove a `data:<mime>;base64,` prefix if present."""
    return DATA_URI_PREFIX.sub("", payload.strip(), count=1)


def detect_mime(data: bytes) -> str | None:
    """Guess a document MIME type from its leading bytes."""
    for magic, mime in MAGIC_NUMBERS:
        if data.startswith(magic):
            return mime
    return None


def decode_payload(payload: bytes | str) -> bytes:
    """Turn a raw, base64 or data-URI payload into document bytes.

    Raises:
        DecodeError: if the payload is neither binary document data nor valid base64.
    """
    if isinstance(payload, (bytes, bytearray)):
        raw = bytes(payload)
        if detect_mime(raw):
            return raw
        try:
            payload = raw.decode("ascii")
        except UnicodeDecodeError as e:
            raise DecodeError("Payload is neither a known document nor base64 text", {"reason": str(e)}) from e

    text = re.sub(r"\s+", "", strip_data_uri(payload))
    if not text:
        raise DecodeError("Payload is empty")
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError("Payload is not valid base64", {"reason": str(e)}) from e


def to_data_uri(data: bytes, mime: str | None = None) -> str:
    """Encode document bytes as a data URI, guessing the MIME type if omitted."""
    mime = mime or detect_mime(data) or "application/octet-stream"
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def bytes_to_cv2(image_bytes: bytes, grayscale: bool = False) -> np.ndarray | None:
    """Convert raw bytes to OpenCV image."""
    nparr = np.frombuffer(image_bytes, np.uint8)
    flag = cv2.IMREAD_GRAYSCALE if grayscale else cv2.IMREAD_COLOR
    return cv2.imdecode(nparr, flag)
