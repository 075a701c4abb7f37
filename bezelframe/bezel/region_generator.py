"""Offline generator for the screen-region table and screen masks.

Flood-fills every bezel PNG under ``<resources>/Bezels`` and writes
``<resources>/screen-regions.json`` plus one grayscale mask per bezel in
``<resources>/Masks``.

Usage::

    bezelframe-regions                # incremental
    bezelframe-regions --force        # regenerate everything

Incremental mode keeps table entries that already exist and skips masks
newer than their bezel.  Entries and masks whose bezel no longer exists
are pruned.  Any bezel that fails detection is listed on stderr and the
exit status is 1.
"""

import argparse
import logging
import os
import sys
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .region_cache import dump_region_table, load_region_table
from .region_detector import detect_mask_in_file, detect_region_in_file
from .image_io import save_mask
from .models import ScreenRegion
from .resources import ResourcePaths, default_resources

logger = logging.getLogger(__name__)


@dataclass
class GenerationReport:
    """Counts and failures from one generator run."""
    total: int = 0
    new: int = 0
    skipped: int = 0
    pruned: int = 0
    failures: List[str] = field(default_factory=list)

    def summary(self, label: str) -> str:
        return (f"{label}: {self.total} total, {self.new} new, "
                f"{self.skipped} skipped, {self.pruned} pruned")


def generate_regions(resources: ResourcePaths, bezels: List[str],
                     force: bool = False) -> GenerationReport:
    """Update the region table on disk.  Returns the run's report."""
    report = GenerationReport()
    existing: Dict[str, ScreenRegion] = {}
    if not force and os.path.isfile(resources.regions_path):
        try:
            existing = load_region_table(resources.regions_path)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Ignoring unreadable %s: %s", resources.regions_path, exc)

    on_disk = set(bezels)
    stale = [name for name in existing if name not in on_disk]
    for name in stale:
        del existing[name]
    report.pruned = len(stale)

    for name in bezels:
        if name in existing:
            report.skipped += 1
            continue
        region = detect_region_in_file(os.path.join(resources.bezels_dir, name))
        if region is None:
            report.failures.append(name)
            continue
        existing[name] = region
        report.new += 1

    os.makedirs(resources.root, exist_ok=True)
    with open(resources.regions_path, "w", encoding="utf-8") as f:
        f.write(dump_region_table(existing))
    report.total = len(existing)
    return report


def _mask_is_current(bezel_path: str, mask_path: str) -> bool:
    if not os.path.isfile(mask_path):
        return False
    return os.path.getmtime(mask_path) >= os.path.getmtime(bezel_path)


def generate_masks(resources: ResourcePaths, bezels: List[str],
                   force: bool = False) -> GenerationReport:
    """Write one mask PNG per bezel into the masks directory."""
    report = GenerationReport()
    os.makedirs(resources.masks_dir, exist_ok=True)

    on_disk = set(bezels)
    for name in sorted(os.listdir(resources.masks_dir)):
        if name.lower().endswith(".png") and name not in on_disk:
            os.remove(resources.mask_path(name))
            report.pruned += 1

    for name in bezels:
        bezel_path = os.path.join(resources.bezels_dir, name)
        mask_path = resources.mask_path(name)
        if not force and _mask_is_current(bezel_path, mask_path):
            report.skipped += 1
            continue
        mask = detect_mask_in_file(bezel_path)
        if mask is None:
            report.failures.append(name)
            continue
        try:
            save_mask(mask, mask_path)
        except OSError as exc:
            logger.error("Could not write mask %s: %s", mask_path, exc)
            report.failures.append(name)
            continue
        report.new += 1

    report.total = report.new + report.skipped
    return report


def _report_failures(label: str, failures: List[str]) -> None:
    print(f"Failed {label} ({len(failures)}):", file=sys.stderr)
    for name in failures:
        print(f"  - {name}", file=sys.stderr)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="bezelframe-regions",
        description="Detect screen regions and masks for every bezel asset.",
    )
    parser.add_argument("--force", action="store_true",
                        help="regenerate all entries instead of only new ones")
    parser.add_argument("--resources", default=None,
                        help="resource root (default: $BEZELFRAME_RESOURCES or bundled)")
    args = parser.parse_args(argv)

    resources = ResourcePaths(args.resources) if args.resources else default_resources()
    bezels = resources.list_bezels()
    if not bezels:
        print(f"Error: No PNG files found in {resources.bezels_dir}", file=sys.stderr)
        return 1

    regions = generate_regions(resources, bezels, force=args.force)
    print(regions.summary("Screen regions"))
    masks = generate_masks(resources, bezels, force=args.force)
    print(masks.summary("Screen masks"))

    status = 0
    if regions.failures:
        _report_failures("bezels", regions.failures)
        status = 1
    if masks.failures:
        _report_failures("masks", masks.failures)
        status = 1
    return status


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(name)s | %(levelname)s | %(message)s")
    sys.exit(main())
