"""Error taxonomy shared by the compositing and export pipelines.

Expected negative outcomes (no screen region, no matching device) are
*not* errors — detection and matching return ``None`` / ``[]`` for those.
Everything here is terminal for the request that raised it; nothing is
retried automatically.
"""


class BezelFrameError(Exception):
    """Base class.  ``str(exc)`` is always a user-facing message."""

    default_message = "Operation failed."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


# ── Input errors ────────────────────────────────────────────────────

class InputError(BezelFrameError):
    """Source media could not be read or decoded."""
    default_message = "Could not load image."


# ── Asset errors (packaging defects) ────────────────────────────────

class AssetError(BezelFrameError):
    """A bundled bezel / region / mask artifact is missing or corrupt."""
    default_message = "Device assets are missing or corrupt."


class BezelNotFoundError(AssetError):
    default_message = "Could not load device bezel image."


class ScreenRegionNotFoundError(AssetError):
    default_message = "Could not detect screen region for device."


# ── Export errors ───────────────────────────────────────────────────

class ExportError(BezelFrameError):
    """Video export failed.  Codec messages are passed through verbatim."""
    default_message = "Video export failed."


class NoVideoTrackError(ExportError):
    default_message = "No video track found in file."


class CompositionFailedError(ExportError):
    default_message = "Failed to create video composition."


class ExportSessionFailedError(ExportError):
    default_message = "Failed to create export session."


class ExportFailedError(ExportError):
    default_message = "Video export failed."


class ExportCancelledError(BezelFrameError):
    """Export was cancelled by the caller.  Deliberately not an ExportError."""
    default_message = "Video export was cancelled."
