"""Tests for post-generation editing: PlacementTransform, sessions, composite."""

from __future__ import annotations

import io

import pytest
from PIL import Image

from overlay_studio.engine.composite import composite
from overlay_studio.engine.geometry import DEFAULT_PLACEMENT
from overlay_studio.engine.session import EditingSession, ImageAsset, SessionStore
from overlay_studio.engine.transform import PlacementTransform
from overlay_studio.models.overlay import ImageSize, Placement
from tests.conftest import png_bytes, solid_image


SIZE = ImageSize(w=100, h=80)
GENERATED = Placement(x=10, y=10, width=20, height=20, rotation=5)


def _session() -> EditingSession:
    base = ImageAsset(png_bytes(solid_image(100, 80, (200, 0, 0))))
    overlay = ImageAsset(png_bytes(solid_image(20, 20, (0, 0, 255))))
    return EditingSession.start(base, SIZE, overlay, GENERATED)


def _pixel(data: bytes, xy: tuple[int, int]) -> tuple[int, ...]:
    with Image.open(io.BytesIO(data)) as img:
        return img.convert("RGBA").getpixel(xy)


class TestPlacementTransform:
    def test_defaults_without_placement(self):
        t = PlacementTransform(SIZE)
        assert t.placement == DEFAULT_PLACEMENT

    def test_free_edit_is_not_clamped(self):
        t = PlacementTransform(SIZE, placement=GENERATED)
        p = t.update({"x": -50, "width": 400})
        assert p.x == -50
        assert p.width == 400
        assert p.y == 10
        assert t.is_valid

    def test_placement_is_a_copy(self):
        t = PlacementTransform(SIZE, placement=GENERATED)
        p = t.placement
        p.x = 99
        assert t.placement.x == 10

    def test_center_and_reset_rotation(self):
        t = PlacementTransform(SIZE, placement=GENERATED)
        p = t.center()
        assert (p.x, p.y) == (40, 30)
        assert p.rotation == 5
        assert t.reset_rotation().rotation == 0

    def test_reset_all_returns_to_generated(self):
        t = PlacementTransform(SIZE, placement=GENERATED, defaults=GENERATED)
        t.update({"x": 70, "rotation": 90})
        assert t.reset_all() == GENERATED

    def test_zero_width_is_invalid(self):
        t = PlacementTransform(SIZE, placement=GENERATED)
        t.update({"width": 0})
        assert not t.is_valid

    def test_reseed_replaces_reset_target(self):
        t = PlacementTransform(SIZE, placement=GENERATED, defaults=GENERATED)
        fresh = Placement(x=1, y=2, width=30, height=30)
        t.reseed(fresh)
        t.update({"x": 50})
        assert t.reset_all() == fresh


class TestComposite:
    def test_output_matches_canvas_size(self):
        session = _session()
        with Image.open(io.BytesIO(session.export())) as img:
            assert img.size == (100, 80)
            assert img.format == "PNG"

    def test_overlay_drawn_at_placement(self):
        base = png_bytes(solid_image(100, 80, (200, 0, 0)))
        overlay = png_bytes(solid_image(20, 20, (0, 0, 255)))
        out = composite(base, overlay, Placement(x=10, y=10, width=20, height=20), SIZE)
        assert _pixel(out, (20, 20)) == (0, 0, 255, 255)
        assert _pixel(out, (90, 70)) == (200, 0, 0, 255)

    def test_overlay_scaled(self):
        base = png_bytes(solid_image(100, 80, (200, 0, 0)))
        overlay = png_bytes(solid_image(10, 10, (0, 0, 255)))
        out = composite(base, overlay, Placement(x=0, y=0, width=60, height=40), SIZE)
        assert _pixel(out, (50, 30)) == (0, 0, 255, 255)
        assert _pixel(out, (70, 50)) == (200, 0, 0, 255)

    def test_rotation_keeps_canvas_size(self):
        base = png_bytes(solid_image(100, 80, (200, 0, 0)))
        overlay = png_bytes(solid_image(20, 10, (0, 0, 255)))
        out = composite(base, overlay, Placement(x=40, y=35, width=20, height=10, rotation=90), SIZE)
        with Image.open(io.BytesIO(out)) as img:
            assert img.size == (100, 80)
        # A quarter turn stands the bar upright around its centre (50, 40)
        assert _pixel(out, (50, 33))[:3] == (0, 0, 255)
        assert _pixel(out, (42, 40))[:3] == (200, 0, 0)

    def test_oversized_canvas_rejected(self):
        base = png_bytes(solid_image(10, 10))
        with pytest.raises(ValueError):
            composite(base, base, Placement(width=5, height=5), ImageSize(w=50_000, h=10), max_side=8192)

    def test_non_finite_placement_rejected(self):
        base = png_bytes(solid_image(10, 10))
        with pytest.raises(ValueError):
            composite(base, base, Placement(width=float("inf"), height=5), ImageSize(w=10, h=10))


class TestSessionStore:
    def test_add_get_remove(self):
        store = SessionStore()
        session = store.add(_session())
        assert store.get(session.id) is session
        assert store.remove(session.id)
        assert store.get(session.id) is None
        assert not store.remove(session.id)

    def test_oldest_evicted(self):
        store = SessionStore(max_sessions=2)
        first, second, third = _session(), _session(), _session()
        for s in (first, second, third):
            store.add(s)
        assert len(store) == 2
        assert store.get(first.id) is None
        assert store.get(third.id) is third

    def test_replace_overlay_reseeds(self):
        session = _session()
        session.transform.update({"x": 60})
        fresh = Placement(x=5, y=5, width=10, height=10)
        session.replace_overlay(ImageAsset(png_bytes(solid_image(10, 10))), fresh)
        assert session.transform.placement == fresh
        assert session.transform.reset_all() == fresh
