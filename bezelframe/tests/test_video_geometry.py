"""Tests for bezel.video_geometry — rotations, display transforms, layer placement."""

import numpy as np
import pytest

from bezel.models import ScreenRegion
from bezel.video_geometry import (
    apply_to_point,
    displayed_size,
    layer_transform,
    normalize_rotation,
    output_geometry,
    preferred_transform,
    rotated_size,
    rotation,
    rotation_about_center,
    swaps_axes,
    to_warp_matrix,
)


def _corners(w: float, h: float) -> list:
    return [(0, 0), (w, 0), (0, h), (w, h)]


def _mapped(m: np.ndarray, w: float, h: float) -> set:
    return {tuple(round(c, 6) for c in apply_to_point(m, x, y)) for x, y in _corners(w, h)}


# ── rotation ────────────────────────────────────────────────────────


class TestRotation:
    @pytest.mark.parametrize("degrees,expected", [
        (0, 0), (90, 90), (360, 0), (450, 90), (-90, 270), (-180, 180),
    ])
    def test_normalize(self, degrees: int, expected: int) -> None:
        assert normalize_rotation(degrees) == expected

    @pytest.mark.parametrize("degrees", [45, 1, -30])
    def test_normalize_rejects(self, degrees: int) -> None:
        with pytest.raises(ValueError):
            normalize_rotation(degrees)

    def test_swaps_axes(self) -> None:
        assert swaps_axes(90) and swaps_axes(270)
        assert not swaps_axes(0) and not swaps_axes(180)

    def test_clockwise_on_screen(self) -> None:
        # y-down: +x turns into +y under a clockwise quarter turn
        assert apply_to_point(rotation(90), 1, 0) == pytest.approx((0.0, 1.0))

    @pytest.mark.parametrize("a,b", [(90, 270), (180, 180), (270, 90), (0, 0)])
    def test_inverse_pairs_are_identity(self, a: int, b: int) -> None:
        assert np.allclose(rotation(a) @ rotation(b), np.eye(3))

    def test_rotated_size(self) -> None:
        assert rotated_size(100, 200, 90) == (200, 100)
        assert rotated_size(100, 200, 180) == (100, 200)

    def test_rotation_about_center_fills_rotated_box(self) -> None:
        m = rotation_about_center(90, 100, 200)
        assert _mapped(m, 100, 200) == {(0, 0), (200, 0), (0, 100), (200, 100)}
        # top-left of the source lands top-right after a clockwise turn
        assert apply_to_point(m, 0, 0) == pytest.approx((200.0, 0.0))


# ── preferred transform ─────────────────────────────────────────────


class TestPreferredTransform:
    @pytest.mark.parametrize("deg,expected", [
        (0, (1920, 1080)), (90, (1080, 1920)), (180, (1920, 1080)), (270, (1080, 1920)),
    ])
    def test_displayed_size(self, deg: int, expected: tuple) -> None:
        assert displayed_size(1920, 1080, deg) == expected

    @pytest.mark.parametrize("deg", [0, 90, 180, 270])
    def test_result_in_positive_quadrant(self, deg: int) -> None:
        w, h = displayed_size(1920, 1080, deg)
        assert _mapped(preferred_transform(deg, 1920, 1080), 1920, 1080) == \
            {(0, 0), (w, 0), (0, h), (w, h)}

    def test_portrait_phone_recording(self) -> None:
        """Stored landscape with a 90° flag is displayed as portrait."""
        m = preferred_transform(90, 2532, 1170)
        assert apply_to_point(m, 0, 0) == pytest.approx((1170.0, 0.0))


# ── output geometry / layer transform ───────────────────────────────


class TestOutputGeometry:
    region = ScreenRegion(x=20, y=30, width=200, height=340)

    def test_native(self) -> None:
        render, scale, rect = output_geometry((240, 400), self.region)
        assert render == (240, 400)
        assert scale == 1.0
        assert rect == (20, 30, 200, 340)

    def test_scaled_by_width(self) -> None:
        render, scale, rect = output_geometry((240, 400), self.region, (120, 200))
        assert render == (120, 200)
        assert scale == pytest.approx(0.5)
        assert rect == pytest.approx((10.0, 15.0, 100.0, 170.0))

    def test_zero_output_size_is_native(self) -> None:
        render, scale, _ = output_geometry((240, 400), self.region, (0, 0))
        assert render == (240, 400)
        assert scale == 1.0


class TestLayerTransform:
    rect = (20.0, 30.0, 200.0, 340.0)
    target = {(20.0, 30.0), (220.0, 30.0), (20.0, 370.0), (220.0, 370.0)}

    def test_unrotated_fills_rect(self) -> None:
        m = layer_transform((200, 340), 0, 0, self.rect)
        assert _mapped(m, 200, 340) == self.target

    def test_track_rotation_fills_rect(self) -> None:
        m = layer_transform((340, 200), 90, 0, self.rect)
        assert _mapped(m, 340, 200) == self.target
        assert apply_to_point(m, 0, 0) == pytest.approx((220.0, 30.0))

    def test_extra_rotation_fills_rect(self) -> None:
        m = layer_transform((340, 200), 0, 90, self.rect)
        assert _mapped(m, 340, 200) == self.target

    def test_track_and_extra_rotation_cancel(self) -> None:
        m = layer_transform((200, 340), 90, 270, self.rect)
        assert apply_to_point(m, 0, 0) == pytest.approx((20.0, 30.0))

    def test_scaling_to_rect(self) -> None:
        m = layer_transform((100, 170), 0, 0, self.rect)
        assert apply_to_point(m, 100, 170) == pytest.approx((220.0, 370.0))

    def test_warp_matrix(self) -> None:
        warp = to_warp_matrix(layer_transform((200, 340), 0, 0, self.rect))
        assert warp.shape == (2, 3)
        assert warp.dtype == np.float32
        assert warp[0, 2] == pytest.approx(20.0)
