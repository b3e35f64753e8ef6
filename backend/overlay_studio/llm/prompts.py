"""Prompt templates for the locate and synthesis stages."""

from __future__ import annotations

_LOCATE_TEMPLATE = """You are a professional image-editing placement assistant. You MUST output strict JSON only (no Markdown, no explanations, no extra fields).

TASK: Using the uploaded original image and the user's natural-language instruction, produce the spec and placement for a TRANSPARENT PNG OVERLAY layer.

User instruction: {instruction}
Original image size: {width}x{height} px
{anchor_hint}
OUTPUT JSON (follow this structure exactly):
{{
  "overlay_brief": "Detailed English description of the object to generate (material / colour / style / edges / perspective). Must stress: transparent PNG, no background, tightly cropped.",
  "placement": {{"x": 0, "y": 0, "width": 0, "height": 0, "rotation": 0}},
  "negative_constraints": ["no background", "no content from the original image", "do not change the original size or composition", "no extra decoration", "no text or watermark"],
  "style_notes": "English notes on matching the original style (cartoon vs photographic, line weight, lighting and shadows)",
  "confidence": 0.0,
  "why": "One sentence on why this placement was chosen",
  "assumptions": "Anything you had to assume"
}}

RULES:
- Placement coordinates: the original image's top-left corner is (0,0), units are px.
- x/y are the top-left corner of the overlay when placed back onto the original image.
- width/height are the target display size of the overlay inside the original image.
- x must satisfy 0 <= x <= (W - width); y must satisfy 0 <= y <= (H - height).
- rotation is in degrees, positive is clockwise. Default rotation = 0.
- For symmetric objects (sunglasses, glasses, crowns, hats) keep rotation between -8 and 8 unless a head tilt is clearly visible.
- If you are unsure about the position, set confidence low (for example 0.2-0.4) and give a conservative, visible placement.
- Do not let the new object cover key subject features (eyes, face) unless the user explicitly asks for it.
- Output JSON only."""

_ANCHOR_HINT = (
    "The user supplied an anchor point (pixels, original image coordinates, top-left is (0,0)): "
    "anchor=({x}, {y}). Place the new object near this anchor unless the instruction explicitly "
    "asks for another position.\n"
)

_SYNTHESIS_TEMPLATE = """Generate a single object as a transparent PNG overlay.

OBJECT BRIEF:
{brief}

STYLE MATCH NOTES:
{style_notes}

NEGATIVE CONSTRAINTS:
{negatives}

HARD REQUIREMENTS:
1) Output must be a PNG with TRUE transparent background (alpha). Do NOT use any solid background, no paper texture, no checkerboard/transparency grid, no dithering pattern, no matte.
2) Only the object itself. Do not include any part of the original image.
3) Tight crop: the PNG should be closely cropped around the object (minimal empty padding).
4) Clean edges, no halo. No drop shadow unless explicitly required by style.
5) The object must be complete, not cut off.
6) Approximate output size suggestion: {width}x{height} px.

Return only the image. If you cannot produce a transparent PNG, do not return an image."""

_DEFAULT_STYLE_NOTES = "Match the original image style."

_DEFAULT_NEGATIVES = (
    "- No background\n"
    "- No original image content\n"
    "- No watermark\n"
    "- No extra decoration"
)


def locate_prompt(
    instruction: str,
    width: int,
    height: int,
    anchor: tuple[int, int] | None = None,
) -> str:
    anchor_hint = _ANCHOR_HINT.format(x=anchor[0], y=anchor[1]) if anchor else ""
    return _LOCATE_TEMPLATE.format(
        instruction=instruction,
        width=width,
        height=height,
        anchor_hint=anchor_hint,
    )


def synthesis_prompt(
    brief: str,
    width: int,
    height: int,
    style_notes: str | None = None,
    negatives: list[str] | None = None,
) -> str:
    negative_lines = "\n".join(f"- {n}" for n in negatives or [])
    return _SYNTHESIS_TEMPLATE.format(
        brief=brief,
        style_notes=style_notes or _DEFAULT_STYLE_NOTES,
        negatives=negative_lines or _DEFAULT_NEGATIVES,
        width=width,
        height=height,
    )


def get_all_templates() -> dict[str, str]:
    return {
        "locate": _LOCATE_TEMPLATE,
        "synthesis": _SYNTHESIS_TEMPLATE,
    }
