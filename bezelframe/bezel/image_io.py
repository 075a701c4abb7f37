"""Image codec helpers — decode / encode / resample with OpenCV.

All images handed to the rest of the package are ``uint8`` BGRA arrays
of shape ``(h, w, 4)``; masks are ``uint8`` ``(h, w)``.  Files are read
through ``np.fromfile`` + ``cv2.imdecode`` so bezel names containing
quotes or non-ASCII characters load on every platform.
"""

import logging
import os

import cv2
import numpy as np

from .errors import InputError

logger = logging.getLogger(__name__)


def to_bgra(img: np.ndarray) -> np.ndarray:
    """Normalise a decoded image to 8-bit BGRA."""
    if img.dtype == np.uint16:
        img = (img >> 8).astype(np.uint8)
    elif img.dtype != np.uint8:
        img = np.clip(img, 0, 255).astype(np.uint8)

    if img.ndim == 2:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2BGRA)
    channels = img.shape[2]
    if channels == 4:
        return np.ascontiguousarray(img)
    if channels == 3:
        return cv2.cvtColor(img, cv2.COLOR_BGR2BGRA)
    if channels == 1:
        return cv2.cvtColor(img[:, :, 0], cv2.COLOR_GRAY2BGRA)
    raise InputError(f"Unsupported channel count: {channels}")


def decode_image(data: bytes) -> np.ndarray:
    """Decode PNG/JPEG/... bytes into a BGRA array."""
    buf = np.frombuffer(data, dtype=np.uint8)
    img = cv2.imdecode(buf, cv2.IMREAD_UNCHANGED) if buf.size else None
    if img is None:
        raise InputError()
    return to_bgra(img)


def load_image(path: str) -> np.ndarray:
    """Read an image file into a BGRA array.  Raises :class:`InputError`."""
    try:
        data = np.fromfile(path, dtype=np.uint8)
    except OSError as exc:
        logger.error("Cannot read %s: %s", path, exc)
        raise InputError() from exc
    img = cv2.imdecode(data, cv2.IMREAD_UNCHANGED) if data.size else None
    if img is None:
        logger.error("Cannot decode image %s", path)
        raise InputError()
    return to_bgra(img)


def encode_png(img: np.ndarray) -> bytes:
    ok, buf = cv2.imencode(".png", img)
    if not ok:
        raise OSError("PNG encoding failed")
    return buf.tobytes()


def save_png(img: np.ndarray, path: str) -> str:
    """Write *img* as PNG to *path* and return the path."""
    if not path.lower().endswith(".png"):
        path += ".png"
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    ok, buf = cv2.imencode(".png", img)
    if not ok:
        raise OSError(f"PNG encoding failed for {path}")
    buf.tofile(path)
    return path


def load_mask(path: str) -> np.ndarray | None:
    """Read a grayscale mask PNG, or ``None`` if missing/undecodable."""
    if not os.path.isfile(path):
        return None
    data = np.fromfile(path, dtype=np.uint8)
    mask = cv2.imdecode(data, cv2.IMREAD_GRAYSCALE) if data.size else None
    if mask is None:
        logger.warning("Corrupt mask file %s", path)
    return mask


def save_mask(mask: np.ndarray, path: str) -> None:
    ok, buf = cv2.imencode(".png", mask)
    if not ok:
        raise OSError(f"PNG encoding failed for {path}")
    buf.tofile(path)


def resize_image(img: np.ndarray, size: tuple) -> np.ndarray:
    """High-quality resample to ``size = (width, height)``."""
    w, h = int(size[0]), int(size[1])
    if w <= 0 or h <= 0:
        raise ValueError(f"Invalid target size {w}x{h}")
    src_h, src_w = img.shape[:2]
    if (w, h) == (src_w, src_h):
        return img.copy()
    shrinking = w * h < src_w * src_h
    interp = cv2.INTER_AREA if shrinking else cv2.INTER_LANCZOS4
    return cv2.resize(img, (w, h), interpolation=interp)


_ROTATE_CODES = {
    90: cv2.ROTATE_90_CLOCKWISE,
    180: cv2.ROTATE_180,
    270: cv2.ROTATE_90_COUNTERCLOCKWISE,
}


def rotate_image(img: np.ndarray, degrees: int) -> np.ndarray:
    """Rotate clockwise by a multiple of 90 degrees."""
    degrees %= 360
    if degrees == 0:
        return img.copy()
    code = _ROTATE_CODES.get(degrees)
    if code is None:
        raise ValueError(f"Rotation must be a multiple of 90, got {degrees}")
    return cv2.rotate(img, code)
