"""Device catalog — the static registry of supported devices.

Each entry names its colour variants, the default colour and the prefix
used to build bezel asset filenames.  Order matters: later entries are
newer devices, and the matcher prefers them when several devices share
a screen size.
"""

import logging
from typing import List, Optional

from .models import DeviceColor, DeviceDefinition

logger = logging.getLogger(__name__)

_c = DeviceColor.named


def _device(device_id: str, name: str, colors: List[str], default: str,
            prefix: Optional[str] = None) -> DeviceDefinition:
    return DeviceDefinition(
        id=device_id,
        display_name=name,
        colors=[_c(n) for n in colors],
        default_color_id=default,
        bezel_file_prefix=prefix if prefix is not None else name,
    )


# ── Colour lists shared within a generation ─────────────────────────

_IPHONE14 = ["Blue", "Midnight", "Purple", "Red", "Starlight"]
_IPHONE14_PRO = ["Deep Purple", "Gold", "Silver", "Space Black"]
_IPHONE15 = ["Black", "Blue", "Green", "Pink", "Yellow"]
_TITANIUM15 = ["Black Titanium", "Blue Titanium", "Natural Titanium", "White Titanium"]
_IPHONE16 = ["Black", "Pink", "Teal", "Ultramarine", "White"]
_TITANIUM16 = ["Black Titanium", "Desert Titanium", "Natural Titanium", "White Titanium"]
_IPHONE17 = ["Black", "Lavender", "Mist Blue", "Sage", "White"]
_IPHONE17_PRO = ["Silver", "Cosmic Orange", "Deep Blue"]
_IPAD_AIR_M2 = ["Blue", "Purple", "Space Gray", "Stardust"]
_IPAD_PRO_M4 = ["Silver", "Space Gray"]


# ── Built-in devices ────────────────────────────────────────────────

DEVICES: List[DeviceDefinition] = [
    # iPhone 14 family
    _device("iphone14", "iPhone 14", _IPHONE14, "Midnight"),
    _device("iphone14plus", "iPhone 14 Plus", _IPHONE14, "Midnight"),
    _device("iphone14pro", "iPhone 14 Pro", _IPHONE14_PRO, "Space Black"),
    _device("iphone14promax", "iPhone 14 Pro Max", _IPHONE14_PRO, "Space Black"),

    # iPhone 15 family
    _device("iphone15", "iPhone 15", _IPHONE15, "Black"),
    _device("iphone15plus", "iPhone 15 Plus", _IPHONE15, "Black"),
    _device("iphone15pro", "iPhone 15 Pro", _TITANIUM15, "Black Titanium"),
    _device("iphone15promax", "iPhone 15 Pro Max", _TITANIUM15, "Black Titanium"),

    # iPhone 16 family
    _device("iphone16", "iPhone 16", _IPHONE16, "Black"),
    _device("iphone16plus", "iPhone 16 Plus", _IPHONE16, "Black"),
    _device("iphone16pro", "iPhone 16 Pro", _TITANIUM16, "Black Titanium"),
    _device("iphone16promax", "iPhone 16 Pro Max", _TITANIUM16, "Black Titanium"),

    # iPhone 17 family
    _device("iphone17", "iPhone 17", _IPHONE17, "Black"),
    _device("iphone17pro", "iPhone 17 Pro", _IPHONE17_PRO, "Silver"),
    _device("iphone17promax", "iPhone 17 Pro Max", _IPHONE17_PRO, "Silver"),
    _device("iphoneair", "iPhone Air",
            ["Cloud White", "Light Gold", "Sky Blue", "Space Black"], "Space Black"),

    # iPad family
    _device("ipad", "iPad", ["Silver"], "Silver"),
    _device("ipadair11m2", 'iPad Air 11" M2', _IPAD_AIR_M2, "Space Gray",
            prefix='iPad Air 11" - M2'),
    _device("ipadair13m2", 'iPad Air 13" M2', _IPAD_AIR_M2, "Space Gray",
            prefix='iPad Air 13" - M2'),
    _device("ipadmini", "iPad mini", ["Starlight"], "Starlight"),
    _device("ipadpro11m4", 'iPad Pro 11" M4', _IPAD_PRO_M4, "Silver",
            prefix="iPad Pro 11 - M4"),
    _device("ipadpro13m4", 'iPad Pro 13" M4', _IPAD_PRO_M4, "Silver",
            prefix="iPad Pro 13 - M4"),
]


def find_device(device_id: str,
                devices: Optional[List[DeviceDefinition]] = None) -> Optional[DeviceDefinition]:
    """Look up a device by id in *devices* (default: the built-in catalog)."""
    for device in devices if devices is not None else DEVICES:
        if device.id == device_id:
            return device
    return None


def all_bezel_file_names(devices: Optional[List[DeviceDefinition]] = None) -> List[str]:
    """Every bezel filename the catalog refers to (all colours, both orientations)."""
    names: List[str] = []
    for device in devices if devices is not None else DEVICES:
        for color in device.colors:
            for landscape in (False, True):
                names.append(device.bezel_file_name(color, landscape))
    return names


def validate_catalog(devices: Optional[List[DeviceDefinition]] = None) -> List[str]:
    """Return human-readable problems with catalog entries.

    An empty list means every entry has colours, a resolvable default
    colour and a unique id.
    """
    problems: List[str] = []
    seen: set = set()
    for device in devices if devices is not None else DEVICES:
        if device.id in seen:
            problems.append(f"Duplicate device id: {device.id}")
        seen.add(device.id)
        if not device.colors:
            problems.append(f"{device.id}: no colours")
            continue
        if device.color(device.default_color_id) is None:
            problems.append(
                f"{device.id}: default colour {device.default_color_id!r} not in colour list"
            )
    for problem in problems:
        logger.warning("Catalog problem: %s", problem)
    return problems
