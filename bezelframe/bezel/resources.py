"""Asset locations — bezel PNGs, precomputed masks and the region table.

Layout under a resource root::

    Bezels/               bezel artwork, one PNG per device/colour/orientation
    Masks/                grayscale screen masks, same filenames as Bezels/
    screen-regions.json   {bezel filename: {x, y, width, height}}

The root defaults to ``$BEZELFRAME_RESOURCES`` and falls back to the
``resources/`` directory next to the package.
"""

import os
from dataclasses import dataclass
from typing import List, Optional

RESOURCES_ENV = "BEZELFRAME_RESOURCES"

BEZELS_DIR_NAME = "Bezels"
MASKS_DIR_NAME = "Masks"
REGIONS_FILE_NAME = "screen-regions.json"


@dataclass(frozen=True)
class ResourcePaths:
    root: str

    @property
    def bezels_dir(self) -> str:
        return os.path.join(self.root, BEZELS_DIR_NAME)

    @property
    def masks_dir(self) -> str:
        return os.path.join(self.root, MASKS_DIR_NAME)

    @property
    def regions_path(self) -> str:
        return os.path.join(self.root, REGIONS_FILE_NAME)

    def bezel_path(self, file_name: str) -> Optional[str]:
        """Path of a bezel asset, or ``None`` if it is not on disk."""
        path = os.path.join(self.bezels_dir, file_name)
        return path if os.path.isfile(path) else None

    def mask_path(self, file_name: str) -> str:
        return os.path.join(self.masks_dir, file_name)

    def list_bezels(self) -> List[str]:
        """Sorted bezel PNG filenames present on disk."""
        if not os.path.isdir(self.bezels_dir):
            return []
        return sorted(
            name for name in os.listdir(self.bezels_dir)
            if name.lower().endswith(".png")
            and os.path.isfile(os.path.join(self.bezels_dir, name))
        )


def default_resources() -> ResourcePaths:
    root = os.environ.get(RESOURCES_ENV)
    if not root:
        root = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
                            "resources")
    return ResourcePaths(root=root)
