"""Tests for the locate and synthesis stages (request building + response parsing)."""

from __future__ import annotations

import base64

import pytest

from overlay_studio.engine.errors import NoImageReturned, NoOverlayBrief, ParseError
from overlay_studio.llm.instruction import InstructionTemplate, compose_instruction, resolve_instruction
from overlay_studio.llm.stages import (
    MAX_NEGATIVES,
    LocateAndSpecStage,
    LocateInput,
    OverlaySynthesisStage,
    SynthesisInput,
    extract_json,
)
from overlay_studio.models.overlay import Anchor, ImageSize, Placement
from tests.conftest import image_payload, locate_payload, png_bytes, solid_image, text_payload


class TestExtractJson:
    def test_plain_object(self):
        assert extract_json('{"a": 1}') == {"a": 1}

    def test_fenced_block(self):
        text = 'Sure!\n```json\n{"overlay_brief": "hat"}\n```\nGood luck.'
        assert extract_json(text) == {"overlay_brief": "hat"}

    def test_prose_around_object(self):
        text = 'The answer is {"confidence": 0.7, "placement": {"x": 1}} as requested.'
        assert extract_json(text) == {"confidence": 0.7, "placement": {"x": 1}}

    def test_unparseable(self):
        assert extract_json("") is None
        assert extract_json("no json here") is None
        assert extract_json("{not: valid}") is None


class TestLocateStage:
    stage = LocateAndSpecStage("locate-model")

    def test_build_request(self):
        request = self.stage.build_request(LocateInput(
            image_b64="QUJD",
            mime_type="image/jpeg",
            instruction="add sunglasses",
            image_size=ImageSize(w=640, h=480),
        ))
        assert request.model == "locate-model"
        assert request.parts[0] == {"inline_data": {"mime_type": "image/jpeg", "data": "QUJD"}}
        prompt = request.parts[1]["text"]
        assert "add sunglasses" in prompt
        assert "640x480" in prompt
        assert "anchor=" not in prompt
        assert request.to_body()["generationConfig"]["responseMimeType"] == "application/json"

    def test_anchor_hint(self):
        request = self.stage.build_request(LocateInput(
            image_b64="QUJD",
            mime_type="image/png",
            instruction="add a hat",
            image_size=ImageSize(w=512, h=512),
            anchor=Anchor(x=120.4, y=80.5),
        ))
        assert "anchor=(120, 81)" in request.parts[1]["text"]

    def test_parse_full_response(self):
        spec = self.stage.parse_response(locate_payload())
        assert spec.overlay_brief.startswith("Black aviator sunglasses")
        assert spec.placement == {"x": 40, "y": 30, "width": 120, "height": 60, "rotation": 4}
        assert spec.negative_constraints == ["no background", "no text"]
        assert spec.style_notes == "Flat cartoon shading"
        assert spec.confidence == 0.8
        assert spec.why
        assert spec.assumptions

    @pytest.mark.parametrize("key", ["overlay_brief", "overlay_prompt", "overlayPrompt"])
    def test_brief_synonyms(self, key):
        payload = text_payload('{"%s": "  a red scarf  "}' % key)
        assert self.stage.parse_response(payload).overlay_brief == "a red scarf"

    def test_camel_case_fields(self):
        payload = text_payload(
            '{"overlay_brief": "hat", "negativeConstraints": "no text", "styleNotes": "watercolour"}'
        )
        spec = self.stage.parse_response(payload)
        assert spec.negative_constraints == ["no text"]
        assert spec.style_notes == "watercolour"

    def test_missing_brief(self):
        with pytest.raises(NoOverlayBrief):
            self.stage.parse_response(locate_payload(overlay_brief="   "))

    def test_not_json(self):
        with pytest.raises(ParseError):
            self.stage.parse_response(text_payload("I cannot help with that."))

    def test_empty_payload(self):
        with pytest.raises(ParseError):
            self.stage.parse_response({})

    @pytest.mark.parametrize("raw,expected", [
        ("0.9", 0.9),
        (5, 1.0),
        (-1, 0.0),
        (None, 0.5),
        ("high", 0.5),
    ])
    def test_confidence_coercion(self, raw, expected):
        spec = self.stage.parse_response(locate_payload(confidence=raw))
        assert spec.confidence == pytest.approx(expected)

    def test_missing_confidence(self):
        payload = text_payload('{"overlay_brief": "hat"}')
        spec = self.stage.parse_response(payload)
        assert spec.confidence == 0.5
        assert spec.placement == {}
        assert spec.negative_constraints == []
        assert spec.style_notes is None


class TestSynthesisStage:
    stage = OverlaySynthesisStage("image-model")

    def test_build_request(self):
        negatives = [f"rule {i}" for i in range(15)]
        request = self.stage.build_request(SynthesisInput(
            overlay_brief="a golden crown",
            target=Placement(x=0, y=0, width=179.4, height=107.5),
            style_notes=None,
            negative_constraints=negatives,
        ))
        prompt = request.parts[0]["text"]
        assert request.model == "image-model"
        assert request.to_body()["generationConfig"]["responseModalities"] == ["IMAGE"]
        assert "a golden crown" in prompt
        assert "179x108" in prompt
        assert "Match the original image style." in prompt
        assert f"rule {MAX_NEGATIVES - 1}" in prompt
        assert f"rule {MAX_NEGATIVES}" not in prompt

    def test_default_negatives(self):
        request = self.stage.build_request(SynthesisInput(
            overlay_brief="a hat",
            target=Placement(width=100, height=60),
        ))
        assert "- No watermark" in request.parts[0]["text"]

    @pytest.mark.parametrize("camel_case", [True, False])
    def test_parse_inline_image(self, camel_case):
        png = png_bytes(solid_image(30, 12))
        result = self.stage.parse_response(image_payload(png, camel_case=camel_case))
        assert result.data == png
        assert result.mime_type == "image/png"
        assert result.size == (30, 12)

    def test_non_png_has_no_size(self):
        payload = image_payload(b"\xff\xd8\xff\xe0fakejpeg", mime="image/jpeg")
        result = self.stage.parse_response(payload)
        assert result.mime_type == "image/jpeg"
        assert result.size is None

    def test_skips_empty_inline_parts(self):
        png = png_bytes(solid_image(4, 4))
        payload = {"candidates": [{"content": {"parts": [
            {"inlineData": {"mimeType": "image/png", "data": ""}},
            {"inlineData": {"mimeType": "image/png", "data": base64.b64encode(png).decode()}},
        ]}}]}
        assert self.stage.parse_response(payload).data == png

    def test_text_only_response(self):
        with pytest.raises(NoImageReturned):
            self.stage.parse_response(text_payload("I can't draw that."))


class TestInstruction:
    def test_prompt_wins(self):
        template = InstructionTemplate(item="a crown")
        assert resolve_instruction("add a hat", template) == "add a hat"

    def test_composed_from_template(self):
        template = InstructionTemplate(item="a red scarf", position="the neck", style="")
        assert compose_instruction(template) == (
            "Add a red scarf, placed at the neck, matching the original image style"
        )

    def test_blank_prompt_without_template(self):
        assert resolve_instruction("   ", None) == ""
