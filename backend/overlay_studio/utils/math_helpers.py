"""Number coercion and rounding helpers. No engine imports."""

from __future__ import annotations

import math
from typing import Any


def safe_number(value: Any, fallback: float) -> float:
    """Coerce a loosely-typed value to a finite float, else return ``fallback``.

    Accepts ints, floats and numeric strings ("12", " 3.5 "). Booleans, None,
    containers, blank strings, NaN and ±inf all fall back.
    """
    if isinstance(value, bool):
        return fallback
    if isinstance(value, (int, float)):
        n = float(value)
    elif isinstance(value, str):
        try:
            n = float(value.strip())
        except ValueError:
            return fallback
    else:
        return fallback
    return n if math.isfinite(n) else fallback


def clamp(n: float, lo: float, hi: float) -> float:
    """min(hi, max(lo, n)); ``hi`` wins when the range is inverted."""
    return min(hi, max(lo, n))


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives (2.5 → 3), unlike banker's round()."""
    return int(math.floor(value + 0.5))
