"""Precomputed screen regions and masks, with live-detection fallback.

The offline generator (:mod:`bezel.region_generator`) writes a region
table and one mask PNG per bezel.  :class:`RegionCache` loads the table
once and answers lookups by bezel filename.  A miss means the persisted
artifacts are stale relative to the bezel set: it is logged and answered
by running the detector on the bezel itself.

The cache is created once by the caller and passed explicitly to the
matcher / compositors; there is no module-level singleton.  After
loading it is safe to share between threads — live detections happen at
most once per filename, behind a per-key lock.
"""

import json
import logging
import os
import threading
from typing import Dict, List, Optional

import numpy as np

from .image_io import load_image, load_mask
from .errors import InputError
from .models import DeviceColor, DeviceDefinition, ScreenRegion
from .region_detector import detect_screen_mask, detect_screen_region
from .resources import ResourcePaths

logger = logging.getLogger(__name__)

_MISSING = object()


def load_region_table(path: str) -> Dict[str, ScreenRegion]:
    """Read a persisted region table.  Raises ``OSError`` / ``ValueError``."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.loads(f.read())
    if not isinstance(data, dict):
        raise ValueError(f"Region table must be a JSON object: {path}")
    return {name: ScreenRegion.from_dict(entry) for name, entry in data.items()}


def dump_region_table(regions: Dict[str, ScreenRegion]) -> str:
    """Serialize regions as pretty JSON with sorted keys (diff-friendly)."""
    data = {name: regions[name].to_dict() for name in sorted(regions)}
    return json.dumps(data, indent=2, sort_keys=True) + "\n"


class RegionCache:
    """Read-through lookup of screen regions and masks by bezel filename."""

    def __init__(self, resources: ResourcePaths,
                 regions: Optional[Dict[str, ScreenRegion]] = None) -> None:
        self.resources = resources
        self._regions: Dict[str, Optional[ScreenRegion]] = dict(regions or {})
        self._masks: Dict[str, Optional[np.ndarray]] = {}
        self._lock = threading.Lock()
        self._key_locks: Dict[str, threading.Lock] = {}

    @classmethod
    def load(cls, resources: ResourcePaths) -> "RegionCache":
        """Load the bundled region table; an unreadable table yields an empty cache."""
        try:
            regions = load_region_table(resources.regions_path)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Could not load bundled %s: %s",
                           os.path.basename(resources.regions_path), exc)
            regions = {}
        return cls(resources, regions)

    # ── locking helpers ─────────────────────────────────────────────

    def _key_lock(self, key: str) -> threading.Lock:
        with self._lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[key] = lock
            return lock

    def _load_bezel(self, file_name: str) -> Optional[np.ndarray]:
        path = self.resources.bezel_path(file_name)
        if path is None:
            logger.error("Bezel not found: %s", file_name)
            return None
        try:
            return load_image(path)
        except InputError:
            logger.error("Failed to load bezel: %s", file_name)
            return None

    # ── regions ─────────────────────────────────────────────────────

    def screen_region(self, file_name: str) -> Optional[ScreenRegion]:
        """Region for a bezel file, detecting (once) on a cache miss."""
        region = self._regions.get(file_name, _MISSING)
        if region is not _MISSING:
            return region
        with self._key_lock("region:" + file_name):
            region = self._regions.get(file_name, _MISSING)
            if region is not _MISSING:
                return region
            logger.warning(
                "No precomputed region for %s, falling back to runtime detection",
                file_name,
            )
            bezel = self._load_bezel(file_name)
            region = detect_screen_region(bezel) if bezel is not None else None
            self._regions[file_name] = region
            return region

    # ── masks ───────────────────────────────────────────────────────

    def screen_mask(self, file_name: str) -> Optional[np.ndarray]:
        """Grayscale screen mask for a bezel file (precomputed, else detected once)."""
        mask = self._masks.get(file_name, _MISSING)
        if mask is not _MISSING:
            return mask
        with self._key_lock("mask:" + file_name):
            mask = self._masks.get(file_name, _MISSING)
            if mask is not _MISSING:
                return mask
            mask = load_mask(self.resources.mask_path(file_name))
            if mask is None:
                logger.warning(
                    "No precomputed mask for %s, falling back to runtime detection",
                    file_name,
                )
                bezel = self._load_bezel(file_name)
                mask = detect_screen_mask(bezel) if bezel is not None else None
            self._masks[file_name] = mask
            return mask

    # ── device helpers ──────────────────────────────────────────────

    def resolve_devices(self, devices: List[DeviceDefinition]) -> List[DeviceDefinition]:
        """Return copies of *devices* with their portrait screen region filled in.

        Only the default colour's portrait bezel is probed; devices whose
        region cannot be found keep ``screen_region=None`` and never match.
        """
        resolved: List[DeviceDefinition] = []
        for device in devices:
            file_name = device.bezel_file_name(device.default_color, landscape=False)
            resolved.append(device.with_region(self.screen_region(file_name)))
        return resolved

    def region_for(self, device: DeviceDefinition, color: DeviceColor,
                   is_landscape: bool) -> Optional[ScreenRegion]:
        """Screen region for the requested orientation.

        Portrait uses the device's resolved region.  Landscape looks up the
        landscape bezel's own region first and only falls back to swapping
        the portrait region's axes when that is unavailable.
        """
        if not is_landscape:
            return device.screen_region
        landscape = self.screen_region(device.bezel_file_name(color, landscape=True))
        if landscape is not None:
            return landscape
        if device.screen_region is not None:
            logger.info("Approximating landscape region for %s by swapping axes",
                        device.id)
            return device.screen_region.swapped()
        return None
