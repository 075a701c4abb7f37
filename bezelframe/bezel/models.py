"""Core data models for bezelframe.

Defines the value types passed between the detector, the matcher and the
compositors: device definitions and colours, screen regions, match
results and per-render composition parameters.  Regions support JSON
serialization via ``to_dict()`` / ``from_dict()`` for the persisted
region table.
"""

from dataclasses import dataclass, field, replace
from typing import List, Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class ScreenRegion:
    """Axis-aligned rectangle in bezel pixel space (top-left origin)."""
    x: int
    y: int
    width: int
    height: int

    @property
    def mid_x(self) -> float:
        return self.x + self.width / 2.0

    @property
    def mid_y(self) -> float:
        return self.y + self.height / 2.0

    @property
    def max_x(self) -> int:
        """Exclusive right edge."""
        return self.x + self.width

    @property
    def max_y(self) -> int:
        """Exclusive bottom edge."""
        return self.y + self.height

    def swapped(self) -> "ScreenRegion":
        """Swap x/y and width/height.

        This is the portrait → landscape approximation used when no
        landscape region is known.  It is *not* a rotation; it is only
        correct for cutouts that are symmetric under the swap.
        """
        return ScreenRegion(x=self.y, y=self.x, width=self.height, height=self.width)

    def scaled(self, scale: float) -> Tuple[float, float, float, float]:
        """Return ``(x, y, w, h)`` multiplied by *scale* (floats)."""
        return (self.x * scale, self.y * scale,
                self.width * scale, self.height * scale)

    def contains(self, px: int, py: int) -> bool:
        return self.x <= px < self.max_x and self.y <= py < self.max_y

    def to_dict(self) -> dict:
        """Serialize to a plain dict for JSON storage."""
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @staticmethod
    def from_dict(d: dict) -> "ScreenRegion":
        """Reconstruct from a dict produced by ``to_dict()``."""
        return ScreenRegion(
            x=int(d["x"]),
            y=int(d["y"]),
            width=int(d["width"]),
            height=int(d["height"]),
        )


@dataclass(frozen=True)
class DeviceColor:
    """One colour variant of a device.

    ``file_component`` is the string used in bezel filenames; it
    defaults to the colour name.
    """
    id: str
    display_name: str
    file_component: str

    @staticmethod
    def named(name: str, file: Optional[str] = None) -> "DeviceColor":
        return DeviceColor(id=name, display_name=name, file_component=file or name)


@dataclass
class DeviceDefinition:
    """A catalog entry.

    ``screen_region`` is the *portrait* region of the default colour's
    bezel.  It is ``None`` in the static catalog and is filled in by
    :meth:`bezel.region_cache.RegionCache.resolve_devices`, which
    returns updated copies rather than mutating catalog entries.
    """
    id: str
    display_name: str
    colors: List[DeviceColor]
    default_color_id: str
    bezel_file_prefix: str
    screen_region: Optional[ScreenRegion] = None

    @property
    def default_color(self) -> DeviceColor:
        for color in self.colors:
            if color.id == self.default_color_id:
                return color
        return self.colors[0]

    def color(self, color_id: str) -> Optional[DeviceColor]:
        """Look up a colour variant by id."""
        for color in self.colors:
            if color.id == color_id:
                return color
        return None

    def bezel_file_name(self, color: DeviceColor, landscape: bool) -> str:
        orientation = "Landscape" if landscape else "Portrait"
        return f"{self.bezel_file_prefix} - {color.file_component} - {orientation}.png"

    def with_region(self, region: Optional[ScreenRegion]) -> "DeviceDefinition":
        return replace(self, screen_region=region)


@dataclass(frozen=True)
class Match:
    """A candidate device for a given pixel size."""
    device: DeviceDefinition
    is_landscape: bool


@dataclass
class CompositionParameters:
    """Everything one render request needs.  Transient, never persisted.

    *source* is a BGRA screenshot array for stills, or a
    :class:`bezel.video_source.VideoAsset` for video exports.
    """
    source: object
    device: DeviceDefinition
    color: DeviceColor
    is_landscape: bool = False
    background: Optional[Tuple[int, int, int]] = None   # RGB
    extra_rotation: int = 0                             # degrees, clockwise
    output_size: Optional[Tuple[int, int]] = None       # (width, height)

    @property
    def bezel_file_name(self) -> str:
        return self.device.bezel_file_name(self.color, self.is_landscape)


@dataclass
class CompositeResult:
    """Output of a still composite, plus the geometry that produced it."""
    image: np.ndarray
    screen_region: ScreenRegion
    bezel_file_name: str
    draw_origin: Tuple[int, int] = field(default=(0, 0))
