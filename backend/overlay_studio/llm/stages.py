"""The two upstream stages as {build_request, parse_response} objects.

Neither stage talks to the network: the orchestrator sends the built
UpstreamRequest through a Transport and hands the payload back to
``parse_response``. That keeps each stage testable against canned payloads.
"""

from __future__ import annotations

import base64
import json
import re
from dataclasses import dataclass, field
from typing import Any

from overlay_studio.engine.errors import NoImageReturned, NoOverlayBrief, ParseError
from overlay_studio.llm import prompts
from overlay_studio.llm.client import UpstreamRequest
from overlay_studio.models.overlay import Anchor, ImageSize, Placement
from overlay_studio.utils.image_io import png_size
from overlay_studio.utils.math_helpers import clamp, round_half_up, safe_number

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

_BRIEF_KEYS = ("overlay_brief", "overlay_prompt", "overlayPrompt")
_NEGATIVE_KEYS = ("negative_constraints", "negativeConstraints")
_STYLE_KEYS = ("style_notes", "styleNotes")

MAX_NEGATIVES = 10
DEFAULT_CONFIDENCE = 0.5


def extract_json(text: str) -> Any | None:
    """First fenced block (or the whole text), then its outermost ``{...}``."""
    trimmed = (text or "").strip()
    if not trimmed:
        return None

    fence = _FENCE_RE.search(trimmed)
    candidate = fence.group(1).strip() if fence else trimmed

    match = _OBJECT_RE.search(candidate)
    if not match:
        return None
    try:
        return json.loads(match.group(0))
    except json.JSONDecodeError:
        return None


def _first_candidate_parts(payload: dict[str, Any]) -> list[dict[str, Any]]:
    candidates = payload.get("candidates") or []
    if not candidates or not isinstance(candidates[0], dict):
        return []
    content = candidates[0].get("content") or {}
    parts = content.get("parts") or []
    return [p for p in parts if isinstance(p, dict)]


def _first_text(data: dict[str, Any], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _string_list(value: Any) -> list[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if v is not None and str(v).strip()]


# ---------------------------------------------------------------------------
# Stage 1: locate + spec
# ---------------------------------------------------------------------------

@dataclass
class LocateInput:
    image_b64: str
    mime_type: str
    instruction: str
    image_size: ImageSize
    anchor: Anchor | None = None


@dataclass
class LocateSpecResult:
    overlay_brief: str
    placement: dict[str, Any] = field(default_factory=dict)
    negative_constraints: list[str] = field(default_factory=list)
    style_notes: str | None = None
    confidence: float = DEFAULT_CONFIDENCE
    why: str = ""
    assumptions: str = ""


class LocateAndSpecStage:
    name = "locate"

    def __init__(self, model: str, temperature: float = 0.1) -> None:
        self.model = model
        self.temperature = temperature

    def build_request(self, inputs: LocateInput) -> UpstreamRequest:
        anchor = None
        if inputs.anchor is not None:
            anchor = (round_half_up(inputs.anchor.x), round_half_up(inputs.anchor.y))
        text = prompts.locate_prompt(
            inputs.instruction,
            inputs.image_size.w,
            inputs.image_size.h,
            anchor=anchor,
        )
        return UpstreamRequest(
            model=self.model,
            parts=[
                {"inline_data": {"mime_type": inputs.mime_type, "data": inputs.image_b64}},
                {"text": text},
            ],
            temperature=self.temperature,
            response_mime_type="application/json",
        )

    def parse_response(self, payload: dict[str, Any]) -> LocateSpecResult:
        text = next((p["text"] for p in _first_candidate_parts(payload) if isinstance(p.get("text"), str)), "")
        data = extract_json(text)
        if not isinstance(data, dict):
            raise ParseError("Model did not return parseable JSON")

        brief = _first_text(data, _BRIEF_KEYS)
        if not brief:
            raise NoOverlayBrief(
                "Model did not provide overlay_brief (or overlay_prompt); try a more specific instruction"
            )

        negatives: list[str] = []
        for key in _NEGATIVE_KEYS:
            if data.get(key) is not None:
                negatives = _string_list(data[key])
                break

        placement = data.get("placement")
        return LocateSpecResult(
            overlay_brief=brief,
            placement=placement if isinstance(placement, dict) else {},
            negative_constraints=negatives,
            style_notes=_first_text(data, _STYLE_KEYS) or None,
            confidence=clamp(safe_number(data.get("confidence"), DEFAULT_CONFIDENCE), 0.0, 1.0),
            why=str(data.get("why") or ""),
            assumptions=str(data.get("assumptions") or ""),
        )


# ---------------------------------------------------------------------------
# Stage 2: overlay synthesis
# ---------------------------------------------------------------------------

@dataclass
class SynthesisInput:
    overlay_brief: str
    target: Placement
    style_notes: str | None = None
    negative_constraints: list[str] = field(default_factory=list)


@dataclass
class SynthesisResult:
    data: bytes
    mime_type: str = "image/png"
    size: tuple[int, int] | None = None


class OverlaySynthesisStage:
    name = "synthesis"

    def __init__(self, model: str, temperature: float = 0.2) -> None:
        self.model = model
        self.temperature = temperature

    def build_request(self, inputs: SynthesisInput) -> UpstreamRequest:
        negatives = [n for n in inputs.negative_constraints if n][:MAX_NEGATIVES]
        text = prompts.synthesis_prompt(
            inputs.overlay_brief,
            round_half_up(inputs.target.width),
            round_half_up(inputs.target.height),
            style_notes=inputs.style_notes,
            negatives=negatives,
        )
        return UpstreamRequest(
            model=self.model,
            parts=[{"text": text}],
            temperature=self.temperature,
            response_modalities=["IMAGE"],
        )

    def parse_response(self, payload: dict[str, Any]) -> SynthesisResult:
        for part in _first_candidate_parts(payload):
            inline = part.get("inlineData") or part.get("inline_data")
            if not isinstance(inline, dict) or not inline.get("data"):
                continue
            mime = inline.get("mimeType") or inline.get("mime_type") or "image/png"
            data = base64.b64decode(inline["data"])
            size = png_size(data) if "png" in mime else None
            return SynthesisResult(data=data, mime_type=mime, size=size)

        raise NoImageReturned("Model did not return image data")
