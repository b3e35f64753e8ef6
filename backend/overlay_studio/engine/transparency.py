"""Transparency enforcement for generated overlays.

Image models are asked for a true-alpha PNG but often return an opaque image
with a white sheet or a painted "transparency grid" behind the object. This
module detects that case from the image border and knocks the background out:

1. Decode to RGBA. Already-transparent images are returned untouched.
2. Sample the four borders and bucket the colours on a 16-level grid.
3. Two bright neutral colours sharing the border → checkerboard.
   Otherwise one dominant bright colour → solid sheet.
4. Clear pixels near a background colour, feather the ones just outside the
   threshold, and always clear near-white / light gray.
5. Keep the edit only when it changed enough pixels to be a background.

Failures never propagate: cleanup is cosmetic, so any decode or encode error
returns the input unchanged.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray
from PIL import Image

from overlay_studio.engine.config import TransparencyConfig

logger = logging.getLogger(__name__)

# Rec. 709 luma weights
_LUMA = (0.2126, 0.7152, 0.0722)

MODE_CHECKERBOARD = "checkerboard"
MODE_SOLID = "solid"


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass
class PaletteColor:
    r: int
    g: int
    b: int
    count: int

    @property
    def rgb(self) -> tuple[int, int, int]:
        return (self.r, self.g, self.b)


@dataclass
class BackgroundPalette:
    """Dominant border colours, most frequent first."""
    colors: list[PaletteColor] = field(default_factory=list)
    sample_count: int = 0

    def frequency(self, index: int) -> float:
        if self.sample_count <= 0 or index >= len(self.colors):
            return 0.0
        return self.colors[index].count / self.sample_count


@dataclass
class TransparencyOutcome:
    data: bytes
    mime_type: str
    applied: bool = False
    mode: str | None = None


# ---------------------------------------------------------------------------
# Colour helpers
# ---------------------------------------------------------------------------

def luminance(rgb: tuple[int, int, int]) -> float:
    return _LUMA[0] * rgb[0] + _LUMA[1] * rgb[1] + _LUMA[2] * rgb[2]


def rgb_distance(a: tuple[int, int, int], b: tuple[int, int, int]) -> float:
    return float(np.sqrt(sum((int(x) - int(y)) ** 2 for x, y in zip(a, b))))


def is_neutralish(rgb: tuple[int, int, int], config: TransparencyConfig) -> bool:
    return max(rgb) - min(rgb) < config.neutral_max_spread


# ---------------------------------------------------------------------------
# Pixel buffer I/O
# ---------------------------------------------------------------------------

def decode_rgba(data: bytes) -> NDArray[np.uint8]:
    with Image.open(io.BytesIO(data)) as img:
        return np.array(img.convert("RGBA"), dtype=np.uint8)


def encode_png(rgba: NDArray[np.uint8]) -> bytes:
    buf = io.BytesIO()
    Image.fromarray(rgba, "RGBA").save(buf, format="PNG")
    return buf.getvalue()


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------

def has_transparency(rgba: NDArray[np.uint8], config: TransparencyConfig) -> bool:
    alpha = rgba[..., 3]
    if alpha.size == 0:
        return False
    transparent = np.count_nonzero(alpha < config.alpha_opaque_floor)
    return transparent / alpha.size >= config.transparent_fraction


def collect_edge_samples(rgba: NDArray[np.uint8], config: TransparencyConfig) -> NDArray[np.int64]:
    """Border RGB samples: top/bottom pairs per x step, then left/right per y step."""
    h, w = rgba.shape[:2]
    step = max(1, min(w, h) // config.border_divisions)
    rgb = rgba[..., :3]
    xs = np.arange(0, w, step)
    ys = np.arange(0, h, step)
    rows = np.stack([rgb[0, xs], rgb[h - 1, xs]], axis=1).reshape(-1, 3)
    cols = np.stack([rgb[ys, 0], rgb[ys, w - 1]], axis=1).reshape(-1, 3)
    return np.concatenate([rows, cols]).astype(np.int64)


def estimate_background_palette(
    rgba: NDArray[np.uint8],
    max_colors: int,
    config: TransparencyConfig,
) -> BackgroundPalette:
    samples = collect_edge_samples(rgba, config)
    q = config.quantize_step
    keys = (np.floor(samples / q + 0.5) * q).astype(np.int64)

    # key -> [sum_r, sum_g, sum_b, count]; dict keeps first-seen order for ties
    buckets: dict[tuple[int, ...], list[int]] = {}
    for key, s in zip(map(tuple, keys.tolist()), samples.tolist()):
        acc = buckets.setdefault(key, [0, 0, 0, 0])
        acc[0] += s[0]
        acc[1] += s[1]
        acc[2] += s[2]
        acc[3] += 1

    ranked = sorted(buckets.values(), key=lambda acc: acc[3], reverse=True)[:max_colors]
    colors = [
        PaletteColor(
            r=int(np.floor(acc[0] / acc[3] + 0.5)),
            g=int(np.floor(acc[1] / acc[3] + 0.5)),
            b=int(np.floor(acc[2] / acc[3] + 0.5)),
            count=acc[3],
        )
        for acc in ranked
    ]
    return BackgroundPalette(colors=colors, sample_count=len(samples))


def is_likely_checkerboard(palette: BackgroundPalette, config: TransparencyConfig) -> bool:
    if len(palette.colors) < 2 or palette.sample_count <= 0:
        return False

    f1 = palette.frequency(0)
    f2 = palette.frequency(1)
    if f1 < config.checker_min_f1 or f2 < config.checker_min_f2:
        return False
    if f1 + f2 < config.checker_min_total:
        return False

    c1, c2 = palette.colors[0].rgb, palette.colors[1].rgb
    if rgb_distance(c1, c2) < config.checker_min_distance:
        return False

    return all(
        is_neutralish(c, config) and luminance(c) > config.checker_min_luminance
        for c in (c1, c2)
    )


def is_light_background(color: PaletteColor, config: TransparencyConfig) -> bool:
    return luminance(color.rgb) > config.solid_min_luminance


# ---------------------------------------------------------------------------
# Removal
# ---------------------------------------------------------------------------

def remove_background(
    rgba: NDArray[np.uint8],
    colors: list[tuple[int, int, int]],
    threshold: float,
    config: TransparencyConfig,
) -> tuple[NDArray[np.uint8], bool]:
    """Clear/feather pixels close to ``colors``. Returns (new buffer, applied).

    The input buffer is never modified.
    """
    out = rgba.copy()
    h, w = rgba.shape[:2]
    rgb = rgba[..., :3].astype(np.float64)
    alpha = rgba[..., 3]

    dist = np.full((h, w), np.inf)
    for c in colors:
        d = np.sqrt(((rgb - np.asarray(c, dtype=np.float64)) ** 2).sum(axis=-1))
        dist = np.minimum(dist, d)

    r, g, b = (rgba[..., i].astype(np.int16) for i in range(3))
    vw = config.very_white_floor
    lg = config.light_gray_floor
    very_white = (r > vw) & (g > vw) & (b > vw)
    light_gray = (
        (r > lg) & (g > lg) & (b > lg)
        & (np.abs(r - g) < config.light_gray_max_delta)
        & (np.abs(g - b) < config.light_gray_max_delta)
    )

    visible = alpha > 0
    clear = visible & ((dist <= threshold) | very_white | light_gray)
    band = visible & ~clear & (dist <= threshold + config.feather)

    t = np.clip((dist - threshold) / config.feather, 0.0, 1.0)
    ramped = np.floor(alpha.astype(np.float64) * t + 0.5).astype(np.uint8)
    ramp_changed = band & (ramped != alpha)

    out_alpha = out[..., 3]
    out_alpha[clear] = 0
    out_alpha[ramp_changed] = ramped[ramp_changed]

    changed = int(np.count_nonzero(clear) + np.count_nonzero(ramp_changed))
    total = h * w
    applied = total > 0 and changed / total > config.min_changed_fraction
    return out, applied


class TransparencyEnforcer:
    """Best-effort background removal for opaque overlays."""

    def __init__(self, config: TransparencyConfig | None = None) -> None:
        self.config = config or TransparencyConfig()

    def enforce(self, data: bytes, mime_type: str = "image/png") -> TransparencyOutcome:
        unchanged = TransparencyOutcome(data=data, mime_type=mime_type)
        try:
            rgba = decode_rgba(data)
            if rgba.size == 0 or has_transparency(rgba, self.config):
                return unchanged

            cleaned, mode = self._remove(rgba)
            if cleaned is None:
                return unchanged

            logger.info("Transparency cleanup applied (%s)", mode)
            return TransparencyOutcome(
                data=encode_png(cleaned),
                mime_type="image/png",
                applied=True,
                mode=mode,
            )
        except Exception as e:
            logger.warning("Transparency cleanup skipped: %s", e)
            return unchanged

    def _remove(self, rgba: NDArray[np.uint8]) -> tuple[NDArray[np.uint8] | None, str | None]:
        cfg = self.config

        palette = estimate_background_palette(rgba, cfg.palette_size, cfg)
        if is_likely_checkerboard(palette, cfg):
            colors = [c.rgb for c in palette.colors[:2]]
            cleaned, applied = remove_background(rgba, colors, cfg.checker_threshold, cfg)
            if applied:
                return cleaned, MODE_CHECKERBOARD

        solid = estimate_background_palette(rgba, 1, cfg)
        if not solid.colors or not is_light_background(solid.colors[0], cfg):
            return None, None

        cleaned, applied = remove_background(rgba, [solid.colors[0].rgb], cfg.solid_threshold, cfg)
        if applied:
            return cleaned, MODE_SOLID
        return None, None
