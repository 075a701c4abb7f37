"""Compositor — renders a screenshot inside a device bezel.

The still pipeline, in drawing order:

1. optional solid background over the whole canvas (for outputs that
   cannot carry transparency),
2. the screenshot at native pixel size, centred on the screen region and
   clipped to the screen mask,
3. the bezel over everything, which hides anything past the rounded
   corners and blends the anti-aliased border.

The canvas is exactly the bezel's pixel size.  Arrays are top-left
origin, so the region's coordinates are used as-is.  Rendering is pure
numpy and deterministic for identical inputs.
"""

import logging
import math
from typing import Optional, Tuple

import numpy as np

from .errors import AssetError, BezelNotFoundError, InputError, ScreenRegionNotFoundError
from .image_io import load_image, resize_image
from .models import (
    CompositeResult,
    CompositionParameters,
    DeviceColor,
    DeviceDefinition,
    ScreenRegion,
)
from .region_cache import RegionCache

logger = logging.getLogger(__name__)


# ── Pixel helpers ───────────────────────────────────────────────────

def rgb_to_bgra(rgb: Tuple[int, int, int], alpha: int = 255) -> np.ndarray:
    r, g, b = rgb[:3]
    return np.array([b, g, r, alpha], dtype=np.uint8)


def alpha_over(dst: np.ndarray, src: np.ndarray,
               clip: Optional[np.ndarray] = None) -> None:
    """Composite BGRA *src* over BGRA *dst* in place (straight alpha).

    *clip*, if given, is a ``(h, w)`` uint8 mask scaling src coverage
    (255 = full, 0 = none).
    """
    sa = src[:, :, 3:4].astype(np.float32) / 255.0
    if clip is not None:
        sa = sa * (clip[:, :, np.newaxis].astype(np.float32) / 255.0)
    da = dst[:, :, 3:4].astype(np.float32) / 255.0

    out_a = sa + da * (1.0 - sa)
    src_c = src[:, :, :3].astype(np.float32)
    dst_c = dst[:, :, :3].astype(np.float32)
    num = src_c * sa + dst_c * da * (1.0 - sa)
    safe_a = np.where(out_a > 0, out_a, 1.0)
    out_c = np.where(out_a > 0, num / safe_a, 0.0)

    dst[:, :, :3] = np.clip(np.rint(out_c), 0, 255).astype(np.uint8)
    dst[:, :, 3] = np.clip(np.rint(out_a[:, :, 0] * 255.0), 0, 255).astype(np.uint8)


def _placement(canvas_w: int, canvas_h: int, x0: int, y0: int,
               src_w: int, src_h: int):
    """Intersect a src rect placed at (x0, y0) with the canvas.

    Returns ``(canvas_slices, src_slices)`` or ``None`` when disjoint.
    """
    cx1, cy1 = max(x0, 0), max(y0, 0)
    cx2, cy2 = min(x0 + src_w, canvas_w), min(y0 + src_h, canvas_h)
    if cx1 >= cx2 or cy1 >= cy2:
        return None
    dst = (slice(cy1, cy2), slice(cx1, cx2))
    src = (slice(cy1 - y0, cy2 - y0), slice(cx1 - x0, cx2 - x0))
    return dst, src


def centered_origin(region: ScreenRegion, width: int, height: int) -> Tuple[int, int]:
    """Top-left draw position that centres a ``width``×``height`` image on *region*."""
    return (int(math.floor(region.mid_x - width / 2.0)),
            int(math.floor(region.mid_y - height / 2.0)))


def draw_clipped(canvas: np.ndarray, image: np.ndarray, origin: Tuple[int, int],
                 mask: Optional[np.ndarray]) -> None:
    """Draw *image* at *origin* over *canvas*, restricted to *mask* (canvas-sized)."""
    h, w = canvas.shape[:2]
    placed = _placement(w, h, origin[0], origin[1], image.shape[1], image.shape[0])
    if placed is None:
        logger.debug("Image at %s lies entirely outside the canvas", origin)
        return
    dst, src = placed
    clip = mask[dst] if mask is not None else None
    alpha_over(canvas[dst], image[src], clip)


# ── Still compositing ───────────────────────────────────────────────

def load_bezel(cache: RegionCache, file_name: str) -> np.ndarray:
    path = cache.resources.bezel_path(file_name)
    if path is None:
        raise BezelNotFoundError(f"Could not load device bezel image: {file_name}")
    try:
        return load_image(path)
    except InputError as exc:
        raise BezelNotFoundError(f"Could not load device bezel image: {file_name}") from exc


def checked_mask(cache: RegionCache, file_name: str, bezel: np.ndarray) -> Optional[np.ndarray]:
    """The bezel's screen mask, validated against the bezel size."""
    mask = cache.screen_mask(file_name)
    if mask is not None and mask.shape[:2] != bezel.shape[:2]:
        raise AssetError(
            f"Screen mask for {file_name} is {mask.shape[1]}x{mask.shape[0]}, "
            f"bezel is {bezel.shape[1]}x{bezel.shape[0]}"
        )
    return mask


def composite(screenshot: np.ndarray, device: DeviceDefinition, color: DeviceColor,
              is_landscape: bool, cache: RegionCache,
              background: Optional[Tuple[int, int, int]] = None) -> CompositeResult:
    """Render *screenshot* inside the bezel for (device, color, orientation).

    Raises :class:`BezelNotFoundError` / :class:`ScreenRegionNotFoundError`
    / :class:`AssetError` when the device's assets are unusable.
    """
    file_name = device.bezel_file_name(color, is_landscape)
    bezel = load_bezel(cache, file_name)
    bezel_h, bezel_w = bezel.shape[:2]

    region = cache.region_for(device, color, is_landscape)
    if region is None:
        raise ScreenRegionNotFoundError()

    canvas = np.zeros((bezel_h, bezel_w, 4), dtype=np.uint8)
    if background is not None:
        canvas[:] = rgb_to_bgra(background)

    origin = centered_origin(region, screenshot.shape[1], screenshot.shape[0])
    mask = checked_mask(cache, file_name, bezel)
    if mask is None:
        logger.warning("No screen mask for %s; drawing unclipped", file_name)
    draw_clipped(canvas, screenshot, origin, mask)

    alpha_over(canvas, bezel)

    return CompositeResult(
        image=canvas,
        screen_region=region,
        bezel_file_name=file_name,
        draw_origin=origin,
    )


def composite_params(params: CompositionParameters, cache: RegionCache) -> np.ndarray:
    """Render a still from :class:`CompositionParameters`, honouring ``output_size``."""
    result = composite(
        params.source,
        params.device,
        params.color,
        params.is_landscape,
        cache,
        background=params.background,
    )
    if params.output_size:
        return resize_image(result.image, params.output_size)
    return result.image
