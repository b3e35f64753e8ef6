"""Data URL and PNG header helpers. No engine imports."""

from __future__ import annotations

import base64
import re
import struct

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

_DATA_URL_RE = re.compile(r"^data:([^;]+);base64,(.+)$", re.DOTALL)


def split_data_url(image: str, default_mime: str = "image/png") -> tuple[str, str]:
    """Return (mime, base64 payload). Plain base64 input keeps ``default_mime``."""
    if image.startswith("data:"):
        match = _DATA_URL_RE.match(image)
        if match:
            return match.group(1), match.group(2)
    return default_mime, image


def decode_image_payload(image: str) -> tuple[bytes, str]:
    """Decode a data URL or bare base64 string to (bytes, mime).

    Raises binascii.Error (a ValueError) on malformed base64 and ValueError
    on an empty payload.
    """
    mime, b64 = split_data_url(image.strip())
    data = base64.b64decode(b64, validate=True)
    if not data:
        raise ValueError("empty image payload")
    return data, mime


def to_data_url(data: bytes, mime: str) -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def png_size(data: bytes) -> tuple[int, int] | None:
    """Width/height from the IHDR chunk, which always follows the signature."""
    if len(data) < 24 or data[:8] != PNG_SIGNATURE:
        return None
    width, height = struct.unpack(">II", data[16:24])
    if width <= 0 or height <= 0:
        return None
    return width, height
