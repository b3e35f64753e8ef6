"""Shared test fixtures."""

from __future__ import annotations

import base64
import io
import json
from typing import Any

import numpy as np
import pytest
from PIL import Image

from overlay_studio.config import Settings
from overlay_studio.llm.client import UpstreamRequest


# ---------------------------------------------------------------------------
# Image builders
# ---------------------------------------------------------------------------

def png_bytes(rgba: np.ndarray) -> bytes:
    buf = io.BytesIO()
    Image.fromarray(rgba.astype(np.uint8), "RGBA").save(buf, format="PNG")
    return buf.getvalue()


def data_url(data: bytes, mime: str = "image/png") -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def solid_image(w: int, h: int, rgb: tuple[int, int, int] = (200, 40, 40)) -> np.ndarray:
    arr = np.zeros((h, w, 4), dtype=np.uint8)
    arr[..., :3] = rgb
    arr[..., 3] = 255
    return arr


def white_sheet_with_square(size: int = 64, square: int = 24) -> np.ndarray:
    """Opaque white background with a red square in the middle."""
    arr = solid_image(size, size, (255, 255, 255))
    lo = (size - square) // 2
    arr[lo:lo + square, lo:lo + square, :3] = (220, 20, 20)
    return arr


def checkerboard_with_square(size: int = 64, tile: int = 8, square: int = 16) -> np.ndarray:
    """Painted transparency grid (white / light gray tiles) behind a red square."""
    arr = solid_image(size, size, (255, 255, 255))
    for y in range(size):
        for x in range(size):
            if ((x // tile) + (y // tile)) % 2:
                arr[y, x, :3] = (204, 204, 204)
    lo = (size - square) // 2
    arr[lo:lo + square, lo:lo + square, :3] = (255, 0, 0)
    return arr


SATURATED_HUES = [
    (255, 0, 0),
    (0, 255, 0),
    (0, 0, 255),
    (255, 0, 255),
    (0, 255, 255),
    (255, 128, 0),
]


def saturated_tiles(size: int = 64, tile: int = 8) -> np.ndarray:
    """Opaque bright multi-hue tiles, so the border has no dominant neutral colour."""
    arr = solid_image(size, size, (0, 0, 0))
    for y in range(size):
        for x in range(size):
            arr[y, x, :3] = SATURATED_HUES[((x // tile) + 2 * (y // tile)) % len(SATURATED_HUES)]
    return arr


def dark_gradient(size: int = 64) -> np.ndarray:
    """Opaque image whose channels all stay at or below 160."""
    arr = solid_image(size, size, (0, 0, 0))
    ramp = np.linspace(0, 160, size).astype(np.uint8)
    arr[..., 0] = ramp[np.newaxis, :]
    arr[..., 1] = ramp[:, np.newaxis]
    arr[..., 2] = 80
    return arr


def transparent_corner(size: int = 64, corner: int = 10) -> np.ndarray:
    """White sheet with a fully transparent corner (about 2.4% of pixels)."""
    arr = solid_image(size, size, (255, 255, 255))
    arr[:corner, :corner, 3] = 0
    return arr


# ---------------------------------------------------------------------------
# Canned upstream payloads
# ---------------------------------------------------------------------------

def text_payload(text: str) -> dict[str, Any]:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def locate_payload(**fields: Any) -> dict[str, Any]:
    body = {
        "overlay_brief": "Black aviator sunglasses, transparent PNG, tightly cropped",
        "placement": {"x": 40, "y": 30, "width": 120, "height": 60, "rotation": 4},
        "negative_constraints": ["no background", "no text"],
        "style_notes": "Flat cartoon shading",
        "confidence": 0.8,
        "why": "The eyes sit in the upper third of the face",
        "assumptions": "The subject faces the camera",
    }
    body.update(fields)
    return text_payload(json.dumps(body))


def image_payload(data: bytes, mime: str = "image/png", camel_case: bool = True) -> dict[str, Any]:
    b64 = base64.b64encode(data).decode("ascii")
    if camel_case:
        part = {"inlineData": {"mimeType": mime, "data": b64}}
    else:
        part = {"inline_data": {"mime_type": mime, "data": b64}}
    return {"candidates": [{"content": {"parts": [{"text": "Here is your overlay"}, part]}}]}


class FakeTransport:
    """Replays canned payloads in order; Exception entries are raised instead."""

    def __init__(self, *responses: dict[str, Any] | Exception) -> None:
        self.responses = list(responses)
        self.requests: list[UpstreamRequest] = []

    async def send(self, request: UpstreamRequest) -> dict[str, Any]:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError(f"Unexpected upstream call to {request.model}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


BASE_IMAGE = png_bytes(solid_image(100, 80, (30, 120, 200)))
BASE_IMAGE_URL = data_url(BASE_IMAGE)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(gemini_api_key="test-key", default_image_side=512, low_confidence_threshold=0.4)


@pytest.fixture
def base_image_url() -> str:
    return BASE_IMAGE_URL


@pytest.fixture
def checker_overlay() -> bytes:
    return png_bytes(checkerboard_with_square())


@pytest.fixture
def white_sheet_overlay() -> bytes:
    return png_bytes(white_sheet_with_square())
