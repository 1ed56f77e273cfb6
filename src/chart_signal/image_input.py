"""Build and validate base64 image data URLs."""

from __future__ import annotations

import base64
import mimetypes
import re
from pathlib import Path

from chart_signal.errors import InvalidImageError

ALLOWED_IMAGE_TYPES = ("jpeg", "jpg", "png", "gif", "webp")
MAX_IMAGE_BYTES = 10 * 1024 * 1024

_DATA_URL = re.compile(r"^data:image/([a-z]+);base64,")


def _format_size(num_bytes: int) -> str:
    if num_bytes >= 1024 * 1024:
        return f"{num_bytes // (1024 * 1024)}MB"
    return f"{num_bytes} bytes"


def estimated_size(data_url: str) -> float:
    """Decoded byte size estimated from the encoded length."""
    return len(data_url) * 3 / 4


def validate_image_data(
    data_url: str,
    allowed_types: tuple[str, ...] | list[str] = ALLOWED_IMAGE_TYPES,
    max_bytes: int = MAX_IMAGE_BYTES,
) -> str:
    """Return the image subtype, or raise InvalidImageError."""
    found = _DATA_URL.match(data_url)
    if found is None or found.group(1) not in allowed_types:
        raise InvalidImageError("Invalid image format. Only JPEG, PNG, GIF, and WebP are allowed.")
    if estimated_size(data_url) > max_bytes:
        raise InvalidImageError(f"Image too large. Maximum size is {_format_size(max_bytes)}.")
    return found.group(1)


def split_data_url(data_url: str) -> tuple[str, str]:
    """Split into (media type, base64 body)."""
    header, _, body = data_url.partition(",")
    media_type = header.removeprefix("data:").removesuffix(";base64")
    if media_type == "image/jpg":
        media_type = "image/jpeg"
    return media_type, body


def encode_image_bytes(raw: bytes, media_type: str) -> str:
    subtype = media_type.removeprefix("image/").lower()
    if not media_type.startswith("image/") or subtype not in ALLOWED_IMAGE_TYPES:
        raise InvalidImageError(f"Unsupported image type: {media_type}")
    return f"data:image/{subtype};base64,{base64.b64encode(raw).decode('ascii')}"


def encode_image_file(path: str | Path) -> str:
    """Read an image file into the data URL an upload or paste would produce."""
    path = Path(path)
    media_type, _ = mimetypes.guess_type(path.name)
    if media_type is None:
        raise InvalidImageError(f"Cannot determine image type of {path.name}")
    return encode_image_bytes(path.read_bytes(), media_type)
