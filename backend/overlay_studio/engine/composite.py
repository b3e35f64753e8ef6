"""Render an overlay onto its base image at a placement."""

from __future__ import annotations

import io
import math

from PIL import Image

from overlay_studio.models.overlay import ImageSize, Placement
from overlay_studio.utils.math_helpers import clamp, round_half_up

DEFAULT_MAX_SIDE = 8192


def composite(
    base: bytes,
    overlay: bytes,
    placement: Placement,
    canvas_size: ImageSize,
    max_side: int = DEFAULT_MAX_SIDE,
) -> bytes:
    """Return a PNG of ``canvas_size`` with the overlay drawn at ``placement``.

    The base is drawn at its natural size from the top-left corner. The
    overlay is scaled to width×height, rotated clockwise around its own
    centre and centred on the placement centre.

    Raises ValueError when the canvas or the rendered overlay would be empty,
    non-finite or larger than ``max_side`` on either axis.
    """
    if not (0 < canvas_size.w <= max_side and 0 < canvas_size.h <= max_side):
        raise ValueError(f"Canvas {canvas_size.w}x{canvas_size.h} is outside 1..{max_side} px")
    fields = (placement.x, placement.y, placement.width, placement.height, placement.rotation)
    if not all(math.isfinite(v) for v in fields):
        raise ValueError("Placement has non-finite values")
    if placement.width > max_side or placement.height > max_side:
        raise ValueError(f"Overlay size exceeds {max_side} px")

    canvas = Image.new("RGBA", (canvas_size.w, canvas_size.h), (0, 0, 0, 0))
    with Image.open(io.BytesIO(base)) as base_img:
        canvas.paste(base_img.convert("RGBA"), (0, 0))

    width = max(1, round_half_up(placement.width))
    height = max(1, round_half_up(placement.height))
    with Image.open(io.BytesIO(overlay)) as overlay_img:
        layer_img = overlay_img.convert("RGBA").resize((width, height), Image.Resampling.LANCZOS)

    if placement.rotation:
        # PIL rotates counter-clockwise
        layer_img = layer_img.rotate(-placement.rotation, resample=Image.Resampling.BICUBIC, expand=True)

    cx = placement.x + placement.width / 2
    cy = placement.y + placement.height / 2
    # Far off-canvas offsets are pinned just outside the canvas edge
    ox = round_half_up(clamp(cx - layer_img.width / 2, -layer_img.width, canvas.width))
    oy = round_half_up(clamp(cy - layer_img.height / 2, -layer_img.height, canvas.height))

    layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    layer.paste(layer_img, (ox, oy))
    canvas = Image.alpha_composite(canvas, layer)

    buf = io.BytesIO()
    canvas.save(buf, format="PNG")
    return buf.getvalue()
