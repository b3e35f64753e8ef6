"""Placement geometry — clamp an AI placement guess into image bounds.

Pure functions. ``resolve`` is total: every missing or non-numeric field falls
back to its default before clamping, so any dict (or None) produces a
renderable placement.
"""

from __future__ import annotations

import math
from typing import Any, Mapping

from overlay_studio.models.overlay import ImageSize, Placement, PlacementUpdate
from overlay_studio.utils.math_helpers import clamp, round_half_up, safe_number

MIN_SIDE = 8
MIN_DEFAULT_WIDTH = 64
DEFAULT_WIDTH_FRACTION = 0.35
DEFAULT_ASPECT = 0.6

DEFAULT_PLACEMENT = Placement(x=100, y=100, width=200, height=200, rotation=0)


def normalize_rotation(degrees: float) -> float:
    """Wrap an angle into (-180, 180]."""
    v = math.fmod(degrees, 360.0)
    if v > 180:
        v -= 360
    elif v <= -180:
        v += 360
    return v


def default_width(image_size: ImageSize) -> int:
    return max(MIN_DEFAULT_WIDTH, round_half_up(min(image_size.w, image_size.h) * DEFAULT_WIDTH_FRACTION))


def resolve(raw: Mapping[str, Any] | None, image_size: ImageSize) -> Placement:
    """Turn a partial, loosely-typed placement into an in-bounds Placement."""
    raw = raw if isinstance(raw, Mapping) else {}
    w, h = image_size.w, image_size.h

    width = clamp(safe_number(raw.get("width"), default_width(image_size)), MIN_SIDE, w)
    height = clamp(safe_number(raw.get("height"), round_half_up(width * DEFAULT_ASPECT)), MIN_SIDE, h)

    x = clamp(safe_number(raw.get("x"), 0), 0, max(0, w - width))
    y = clamp(safe_number(raw.get("y"), 0), 0, max(0, h - height))

    rotation = normalize_rotation(safe_number(raw.get("rotation"), 0))

    return Placement(x=x, y=y, width=width, height=height, rotation=rotation)


def patch(current: Placement, updates: PlacementUpdate | Mapping[str, Any]) -> Placement:
    """Shallow merge. Bounds are intentionally not re-checked."""
    if not isinstance(updates, PlacementUpdate):
        updates = PlacementUpdate.model_validate(dict(updates))
    return current.model_copy(update=updates.model_dump(exclude_none=True))


def center(current: Placement, image_size: ImageSize) -> Placement:
    if not image_size.is_positive:
        return current
    return current.model_copy(update={
        "x": (image_size.w - current.width) / 2,
        "y": (image_size.h - current.height) / 2,
    })


def reset_rotation(current: Placement) -> Placement:
    return current.model_copy(update={"rotation": 0.0})


def reset_all(defaults: Placement | None = None) -> Placement:
    return (defaults or DEFAULT_PLACEMENT).model_copy()


def is_valid(placement: Placement) -> bool:
    return (
        math.isfinite(placement.x)
        and math.isfinite(placement.y)
        and placement.width > 0
        and placement.height > 0
    )
