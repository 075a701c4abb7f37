"""Device matching — find catalog devices whose screen fits a pixel size.

Both the query and every device region are normalised to portrait form
(short side first), so one region answers both orientations.  The query
is landscape when it is wider than tall; a square query is portrait.
"""

from typing import List

from .models import DeviceDefinition, Match

# Native screenshots can be one pixel off the nominal display resolution.
MATCH_TOLERANCE_PX = 1


def _portrait(w: int, h: int) -> tuple:
    return min(w, h), max(w, h)


def match_devices(width: int, height: int, devices: List[DeviceDefinition],
                  tolerance: int = MATCH_TOLERANCE_PX) -> List[Match]:
    """Return candidate devices for a ``width``×``height`` screenshot.

    Devices without a resolved region are skipped.  Results are in
    reverse catalog order so newer devices come first.  An empty list
    means the resolution is unrecognised — not an error.
    """
    portrait_w, portrait_h = _portrait(width, height)
    is_landscape = width > height

    matches: List[Match] = []
    for device in devices:
        region = device.screen_region
        if region is None:
            continue
        region_w, region_h = _portrait(int(region.width), int(region.height))
        if abs(portrait_w - region_w) <= tolerance and abs(portrait_h - region_h) <= tolerance:
            matches.append(Match(device=device, is_landscape=is_landscape))

    matches.reverse()
    return matches


def match_devices_strict(width: int, height: int,
                         devices: List[DeviceDefinition]) -> List[Match]:
    """Exact-size variant of :func:`match_devices`."""
    return match_devices(width, height, devices, tolerance=0)
