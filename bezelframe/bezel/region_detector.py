"""Screen-region and screen-mask detection from bezel artwork.

Both detectors start at the exact centre pixel of the bezel, which must
be fully transparent (alpha == 0), and flood outward with 4-connectivity.

* :func:`detect_screen_region` — bounding box of the connected
  alpha == 0 area around the centre (inclusive on all sides).
* :func:`detect_screen_mask` — the same area plus the connected ring of
  partially transparent (0 < alpha < 255) pixels touching it.  Content
  is drawn at full opacity behind that ring and the bezel's own partial
  alpha does the final edge blend when it is drawn on top.

The flood fills are expressed as 4-connected component labelling over
the alpha plane (OpenCV), which visits exactly the pixels a stack-based
fill from the centre would visit.  Cost is O(w·h) per bezel; this is run
once per artwork by the offline generator, not per composite.
"""

import logging
from typing import Optional

import cv2
import numpy as np

from .image_io import load_image
from .errors import InputError
from .models import ScreenRegion

logger = logging.getLogger(__name__)

# Regions this small are a stray alpha hole, not a screen cutout.
MIN_REGION_SIZE = 100

_CROSS = cv2.getStructuringElement(cv2.MORPH_CROSS, (3, 3))


def _alpha(bezel: np.ndarray) -> np.ndarray:
    if bezel.ndim != 3 or bezel.shape[2] != 4:
        raise ValueError("Bezel must be a BGRA image")
    return bezel[:, :, 3]


def _center(alpha: np.ndarray) -> tuple:
    h, w = alpha.shape
    return w // 2, h // 2


def _hole_component(alpha: np.ndarray):
    """Label the alpha == 0 component containing the centre.

    Returns ``(hole_mask, (x, y, w, h))`` or ``None`` if the centre
    pixel is not fully transparent.
    """
    cx, cy = _center(alpha)
    if alpha[cy, cx] != 0:
        return None
    transparent = (alpha == 0).astype(np.uint8)
    _, labels, stats, _ = cv2.connectedComponentsWithStats(transparent, connectivity=4)
    label = labels[cy, cx]
    x, y, w, h = (int(v) for v in stats[label][:4])
    return labels == label, (x, y, w, h)


def detect_screen_region(bezel: np.ndarray) -> Optional[ScreenRegion]:
    """Bounding box of the transparent screen cutout, or ``None``."""
    found = _hole_component(_alpha(bezel))
    if found is None:
        logger.debug("Centre pixel is not transparent")
        return None
    _, (x, y, w, h) = found
    if w <= MIN_REGION_SIZE or h <= MIN_REGION_SIZE:
        logger.debug("Transparent area %dx%d too small for a screen", w, h)
        return None
    return ScreenRegion(x=x, y=y, width=w, height=h)


def detect_screen_mask(bezel: np.ndarray) -> Optional[np.ndarray]:
    """Grayscale mask: 255 = draw content here, 0 = blocked.  ``None`` on failure."""
    alpha = _alpha(bezel)
    found = _hole_component(alpha)
    if found is None:
        return None
    hole, _ = found

    # Phase 1 neighbours with partial alpha are the edge candidates.
    partial = (alpha > 0) & (alpha < 255)
    touching = cv2.dilate(hole.astype(np.uint8), _CROSS) > 0
    candidates = touching & partial

    # Phase 2: everything partial that is 4-connected to a candidate.
    visited = hole
    if candidates.any():
        _, ring_labels = cv2.connectedComponents(partial.astype(np.uint8), connectivity=4)
        keep = np.unique(ring_labels[candidates])
        keep = keep[keep != 0]
        visited = hole | np.isin(ring_labels, keep)

    return np.where(visited, 255, 0).astype(np.uint8)


def mask_to_alpha(mask: np.ndarray) -> np.ndarray:
    """Convert a luminance mask into a white BGRA image whose alpha is the mask.

    Layer-style compositing consumes alpha, not luminance.
    """
    h, w = mask.shape[:2]
    out = np.full((h, w, 4), 255, dtype=np.uint8)
    out[:, :, 3] = mask
    return out


# ── File-based convenience ──────────────────────────────────────────

def detect_region_in_file(path: str) -> Optional[ScreenRegion]:
    try:
        bezel = load_image(path)
    except InputError:
        logger.error("Failed to load bezel: %s", path)
        return None
    region = detect_screen_region(bezel)
    if region is None:
        logger.warning("No screen region detected in %s", path)
    return region


def detect_mask_in_file(path: str) -> Optional[np.ndarray]:
    try:
        bezel = load_image(path)
    except InputError:
        logger.error("Failed to load bezel: %s", path)
        return None
    return detect_screen_mask(bezel)
