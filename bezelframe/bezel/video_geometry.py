"""Affine geometry for placing video frames inside a bezel.

Transforms are 3×3 matrices acting on column vectors ``(x, y, 1)`` in
top-left-origin, y-down pixel space.  A positive angle rotates clockwise
on screen.  ``a @ b`` means "apply *b*, then *a*".

The per-frame layer transform is built in this order:

a. the track's preferred transform (raw samples → display orientation),
b. an optional extra user rotation about the centre of the (a) frame,
c. a scale from the (possibly swapped) video size onto the screen region,
d. a translation to the screen region's origin.
"""

from typing import Optional, Tuple

import numpy as np

from .models import ScreenRegion

VALID_ROTATIONS = (0, 90, 180, 270)


def normalize_rotation(degrees: int) -> int:
    """Reduce *degrees* to 0/90/180/270; anything else is rejected."""
    deg = int(degrees) % 360
    if deg not in VALID_ROTATIONS:
        raise ValueError(f"Rotation must be a multiple of 90 degrees, got {degrees}")
    return deg


def swaps_axes(degrees: int) -> bool:
    return normalize_rotation(degrees) in (90, 270)


# ── Primitive transforms ────────────────────────────────────────────

def identity() -> np.ndarray:
    return np.eye(3, dtype=np.float64)


def translation(tx: float, ty: float) -> np.ndarray:
    m = identity()
    m[0, 2] = tx
    m[1, 2] = ty
    return m


def scaling(sx: float, sy: float) -> np.ndarray:
    m = identity()
    m[0, 0] = sx
    m[1, 1] = sy
    return m


def rotation(degrees: int) -> np.ndarray:
    """Clockwise rotation about the origin.  Exact for multiples of 90."""
    deg = normalize_rotation(degrees)
    cos, sin = {0: (1, 0), 90: (0, 1), 180: (-1, 0), 270: (0, -1)}[deg]
    m = identity()
    m[0, 0], m[0, 1] = cos, -sin
    m[1, 0], m[1, 1] = sin, cos
    return m


def apply_to_point(m: np.ndarray, x: float, y: float) -> Tuple[float, float]:
    v = m @ np.array([x, y, 1.0])
    return float(v[0]), float(v[1])


def apply_to_size(m: np.ndarray, w: float, h: float) -> Tuple[float, float]:
    """Transform a size vector (linear part only) and take absolute values."""
    tw = m[0, 0] * w + m[0, 1] * h
    th = m[1, 0] * w + m[1, 1] * h
    return abs(float(tw)), abs(float(th))


# ── Track orientation ───────────────────────────────────────────────

def preferred_transform(rotation_deg: int, natural_w: int, natural_h: int) -> np.ndarray:
    """Display transform for a track stored ``natural_w``×``natural_h``.

    Rotates by *rotation_deg* and translates the result back into the
    positive quadrant, so the displayed frame spans
    ``(0, 0)``–``displayed_size``.
    """
    rot = rotation(rotation_deg)
    corners = [apply_to_point(rot, x, y)
               for x, y in ((0, 0), (natural_w, 0), (0, natural_h), (natural_w, natural_h))]
    min_x = min(c[0] for c in corners)
    min_y = min(c[1] for c in corners)
    return translation(-min_x, -min_y) @ rot


def displayed_size(natural_w: int, natural_h: int, rotation_deg: int) -> Tuple[int, int]:
    """Pixel size after applying a track's preferred transform."""
    w, h = apply_to_size(preferred_transform(rotation_deg, natural_w, natural_h),
                         natural_w, natural_h)
    return int(round(w)), int(round(h))


def rotated_size(w: int, h: int, extra_rotation: int) -> Tuple[int, int]:
    """Size after an extra user rotation (swapped for 90/270)."""
    return (h, w) if swaps_axes(extra_rotation) else (w, h)


def rotation_about_center(degrees: int, w: float, h: float) -> np.ndarray:
    """Rotate a ``w``×``h`` frame about its centre into the rotated box.

    The result maps ``(0, 0)``–``(w, h)`` onto ``(0, 0)``–``rotated_size``.
    """
    out_w, out_h = rotated_size(w, h, degrees)
    return (translation(out_w / 2.0, out_h / 2.0)
            @ rotation(degrees)
            @ translation(-w / 2.0, -h / 2.0))


# ── Output geometry ─────────────────────────────────────────────────

def scaled_region(region: ScreenRegion, scale: float) -> Tuple[float, float, float, float]:
    return region.scaled(scale)


def output_geometry(bezel_size: Tuple[int, int], region: ScreenRegion,
                    output_size: Optional[Tuple[int, int]] = None):
    """Render size, scale factor and scaled screen rect for an export.

    With an explicit *output_size* the scale is ``output_w / bezel_w``
    (uniform, width-driven) and the render size is *output_size*.
    Otherwise the export renders at native bezel size.

    Returns ``(render_size, scale, (x, y, w, h))``.
    """
    bezel_w, bezel_h = bezel_size
    if output_size and output_size[0] > 0 and output_size[1] > 0:
        scale = output_size[0] / float(bezel_w)
        render = (int(output_size[0]), int(output_size[1]))
        return render, scale, scaled_region(region, scale)
    return (bezel_w, bezel_h), 1.0, scaled_region(region, 1.0)


def layer_transform(natural_size: Tuple[int, int], rotation_deg: int,
                    extra_rotation: int,
                    screen_rect: Tuple[float, float, float, float]) -> np.ndarray:
    """Combined transform mapping raw source pixels into the render canvas."""
    natural_w, natural_h = natural_size
    pref = preferred_transform(rotation_deg, natural_w, natural_h)
    base_w, base_h = apply_to_size(pref, natural_w, natural_h)

    t = pref
    if normalize_rotation(extra_rotation) != 0:
        t = rotation_about_center(extra_rotation, base_w, base_h) @ t

    video_w, video_h = rotated_size(base_w, base_h, extra_rotation)
    x, y, w, h = screen_rect
    t = scaling(w / video_w, h / video_h) @ t
    t = translation(x, y) @ t
    return t


def to_warp_matrix(m: np.ndarray) -> np.ndarray:
    """Top two rows as the 2×3 float32 matrix ``cv2.warpAffine`` expects."""
    return np.ascontiguousarray(m[:2, :], dtype=np.float32)

