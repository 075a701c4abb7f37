"""Output size for exports, editable with a locked aspect ratio."""

import math
from typing import Tuple

MIN_DIMENSION = 1
MAX_DIMENSION = 16384
HIGH_QUALITY_PIXEL_THRESHOLD = 4_000_000


def _clamped(value: int) -> int:
    return min(max(int(value), MIN_DIMENSION), MAX_DIMENSION)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class ExportSize:
    """Width/height pair that remembers the size it started from."""

    def __init__(self, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"Invalid export size {width}x{height}")
        self.original_width = width
        self.original_height = height
        self.aspect_ratio = width / float(height)
        self.width = width
        self.height = height

    def __repr__(self) -> str:
        return f"ExportSize({self.width}x{self.height}, original={self.original_width}x{self.original_height})"

    @property
    def size_changed(self) -> bool:
        return self.width != self.original_width or self.height != self.original_height

    @property
    def target_size(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def is_high_quality(self) -> bool:
        """Small enough for the highest-quality encoder preset."""
        return self.width * self.height <= HIGH_QUALITY_PIXEL_THRESHOLD

    def reset(self) -> None:
        self.width = self.original_width
        self.height = self.original_height

    def set_width_preserving_aspect(self, width: int) -> None:
        self.width = _clamped(width)
        self.height = _clamped(_round_half_up(self.width / self.aspect_ratio))

    def set_height_preserving_aspect(self, height: int) -> None:
        self.height = _clamped(height)
        self.width = _clamped(_round_half_up(self.height * self.aspect_ratio))
