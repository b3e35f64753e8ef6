"""Transparency heuristic configuration. Every threshold is tunable here."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TransparencyConfig:
    """Empirical thresholds for background detection and removal."""

    # Already-transparent test
    alpha_opaque_floor: int = 250  # alpha below this counts as transparent
    transparent_fraction: float = 0.01  # ≥1% transparent pixels → leave alone

    # Border sampling / palette
    border_divisions: int = 40  # stride = min(W, H) // border_divisions
    quantize_step: int = 16
    palette_size: int = 2

    # Checkerboard test
    checker_min_f1: float = 0.32
    checker_min_f2: float = 0.18
    checker_min_total: float = 0.72
    checker_min_distance: float = 14.0
    neutral_max_spread: int = 42
    checker_min_luminance: float = 170.0

    # Solid test
    solid_min_luminance: float = 220.0

    # Removal
    checker_threshold: float = 34.0
    solid_threshold: float = 38.0
    feather: float = 28.0
    very_white_floor: int = 245
    light_gray_floor: int = 210
    light_gray_max_delta: int = 18

    # Only keep an edit that touched more than this share of pixels
    min_changed_fraction: float = 0.02
