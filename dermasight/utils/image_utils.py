"""
Image Upload Utilities
======================
Validates uploaded photos and converts them to the embedded data-URL form
that is both sent to the proxy and stored as the scan's ``image_url``.
"""

from __future__ import annotations

import base64
import binascii
import io

from PIL import Image, UnidentifiedImageError

from dermasight.app.config import MAX_IMAGE_BYTES
from dermasight.app.errors import InvalidRequest

ACCEPTED_FORMATS = {"JPEG": "image/jpeg", "PNG": "image/png", "WEBP": "image/webp"}


def check_size(image_bytes: bytes, limit: int = MAX_IMAGE_BYTES) -> None:
    """Reject empty uploads and anything over the raw-byte cap."""
    if not image_bytes:
        raise InvalidRequest("Uploaded file is empty.")
    if len(image_bytes) > limit:
        raise InvalidRequest(f"Image size must be less than {limit // (1024 * 1024)}MB")


def validate_image(image_bytes: bytes) -> str:
    """Check the bytes are a supported image and return its MIME type."""
    check_size(image_bytes)
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            fmt = img.format
            img.verify()
    except Image.DecompressionBombError as exc:
        raise InvalidRequest("Image dimensions are too large") from exc
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise InvalidRequest(f"Invalid image file: {exc}") from exc

    mime = ACCEPTED_FORMATS.get(fmt or "")
    if mime is None:
        raise InvalidRequest(f"Unsupported format: {fmt}. Use JPEG, PNG or WEBP")
    return mime


def to_data_url(image_bytes: bytes, mime: str) -> str:
    encoded = base64.b64encode(image_bytes).decode("ascii")
    return f"data:{mime};base64,{encoded}"


def from_data_url(data_url: str) -> bytes:
    """Decode a ``data:<mime>;base64,<payload>`` string (or bare base64)."""
    _, _, payload = data_url.rpartition(",")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidRequest("Image is not valid base64") from exc
