"""Composition session — the non-GUI application state.

Holds the current source (screenshot or video), the device matches for
it and the user's device / colour / orientation choice, and keeps a
composited preview up to date.  Still compositing runs on a worker
thread; every request takes a new generation number and results from a
superseded request are dropped.  Rapid changes (e.g. scrubbing through
colours) go through :meth:`recomposite_debounced`.
"""

import logging
import os
import threading
from typing import List, Optional, Tuple

import numpy as np

from PySide6.QtCore import QObject, Qt, QTimer, Signal

from .composition import DEFAULT_VIDEO_BACKGROUND
from .compositor import composite
from .errors import BezelFrameError, InputError
from .image_io import load_image, rotate_image
from .matcher import match_devices
from .models import CompositionParameters, DeviceColor, DeviceDefinition, Match
from .region_cache import RegionCache
from .video_exporter import EncoderFactory, ExportJob, VideoExporter
from .video_geometry import swaps_axes
from .video_source import VideoAsset, first_frame, is_video_path, open_asset, video_dimensions

logger = logging.getLogger(__name__)

DEBOUNCE_MS = 150


class CompositionSession(QObject):
    composited = Signal(object)      # BGRA ndarray, or None
    error_changed = Signal(str)      # "" when cleared
    export_progress = Signal(float)
    export_finished = Signal(str)

    def __init__(self, devices: List[DeviceDefinition], cache: RegionCache,
                 parent: QObject | None = None) -> None:
        super().__init__(parent)
        self.devices = devices
        self.cache = cache

        self.screenshot: Optional[np.ndarray] = None
        self.composited_image: Optional[np.ndarray] = None
        self.matches: List[Match] = []
        self.selected_device: Optional[DeviceDefinition] = None
        self.selected_color: Optional[DeviceColor] = None
        self.is_landscape = False
        self.error_message: Optional[str] = None
        self.is_compositing = False

        self.video_asset: Optional[VideoAsset] = None
        self.video_rotation = 0
        self.video_background = DEFAULT_VIDEO_BACKGROUND
        self.is_exporting = False
        self.export_progress_value = 0.0

        self.source_file_name: Optional[str] = None
        self.source_directory: Optional[str] = None

        self._generation = 0
        self._lock = threading.Lock()

        self._debounce = QTimer(self)
        self._debounce.setSingleShot(True)
        self._debounce.setInterval(DEBOUNCE_MS)
        self._debounce.timeout.connect(self.recomposite)

        # Direct connections: job callbacks run on the export thread and
        # the session's own signals carry the result across threads.
        self.exporter = VideoExporter(self)
        self.exporter.progress.connect(self._on_export_progress, Qt.ConnectionType.DirectConnection)
        self.exporter.finished.connect(self._on_export_finished, Qt.ConnectionType.DirectConnection)
        self.exporter.error.connect(self._on_export_error, Qt.ConnectionType.DirectConnection)
        self.exporter.cancelled.connect(self._on_export_cancelled, Qt.ConnectionType.DirectConnection)

    @property
    def is_video_mode(self) -> bool:
        return self.video_asset is not None

    def _set_error(self, message: Optional[str]) -> None:
        self.error_message = message
        if message:
            logger.warning("%s", message)
        self.error_changed.emit(message or "")

    def _clear_selection(self) -> None:
        self.selected_device = None
        self.selected_color = None
        self.composited_image = None

    # ── loading ─────────────────────────────────────────────────────

    def load_file(self, path: str) -> None:
        """Open a screenshot or (by extension) a video."""
        self.source_file_name = os.path.splitext(os.path.basename(path))[0]
        self.source_directory = os.path.dirname(os.path.abspath(path))
        if is_video_path(path):
            self._process_video(path)
        else:
            self._process_image(path)

    def _process_image(self, path: str) -> None:
        try:
            image = load_image(path)
        except InputError:
            self.video_asset = None
            self._set_error("Could not load image.")
            return
        self.set_screenshot(image)

    def set_screenshot(self, image: np.ndarray) -> None:
        """Use *image* (BGRA) as the source and select the best match."""
        self.video_asset = None
        self.screenshot = image
        self._set_error(None)

        h, w = image.shape[:2]
        self.matches = match_devices(w, h, self.devices)
        if not self.matches:
            self._set_error(f"No matching device found for {w}×{h} screenshot.")
            self._clear_selection()
            return

        best = self.matches[0]
        self.select_device(best.device, best.is_landscape)

    def _process_video(self, path: str) -> None:
        self.screenshot = None
        self.composited_image = None
        self.video_rotation = 0
        self._set_error(None)
        try:
            self.video_asset = open_asset(path)
        except BezelFrameError as exc:
            self.video_asset = None
            self._set_error(f"Could not load video: {exc}")
            return
        self.update_video_match()

    def update_video_match(self) -> None:
        """Re-match the video at its displayed size plus the extra rotation."""
        asset = self.video_asset
        if asset is None:
            return
        try:
            w, h = video_dimensions(asset)
            if swaps_axes(self.video_rotation):
                w, h = h, w

            self.matches = match_devices(w, h, self.devices)
            if not self.matches:
                self._set_error(f"No matching device found for {w}×{h} video.")
                self._clear_selection()
                return

            best = self.matches[0]
            self.selected_device = best.device
            self.is_landscape = best.is_landscape
            self.selected_color = best.device.default_color
            self._set_error(None)

            frame = first_frame(asset)
            if self.video_rotation:
                frame = rotate_image(frame, self.video_rotation)
            self.screenshot = frame
        except BezelFrameError as exc:
            self._set_error(f"Could not load video: {exc}")
            return
        self.recomposite()

    def rotate_video(self, clockwise: bool) -> None:
        self.video_rotation = (self.video_rotation + (90 if clockwise else 270)) % 360
        self.update_video_match()

    # ── selection ───────────────────────────────────────────────────

    def select_device(self, device: DeviceDefinition, is_landscape: bool) -> None:
        self.selected_device = device
        self.is_landscape = is_landscape
        self.selected_color = device.default_color
        self.recomposite()

    def select_color(self, color: DeviceColor) -> None:
        self.selected_color = color
        self.recomposite()

    # ── compositing ─────────────────────────────────────────────────

    def _still_params(self) -> Optional[CompositionParameters]:
        if self.screenshot is None or self.selected_device is None or self.selected_color is None:
            return None
        return CompositionParameters(
            source=self.screenshot,
            device=self.selected_device,
            color=self.selected_color,
            is_landscape=self.is_landscape,
            background=self.video_background if self.is_video_mode else None,
        )

    def _render(self, params: CompositionParameters) -> Optional[np.ndarray]:
        try:
            return composite(params.source, params.device, params.color,
                             params.is_landscape, self.cache,
                             background=params.background).image
        except BezelFrameError as exc:
            logger.error("Composite failed for %s: %s", params.bezel_file_name, exc)
            return None

    def _deliver(self, generation: int, image: Optional[np.ndarray]) -> None:
        with self._lock:
            if generation != self._generation:
                logger.debug("Dropping superseded composite #%d", generation)
                return
            self.composited_image = image
            self.is_compositing = False
        if image is None:
            self._set_error("Failed to composite image.")
        self.composited.emit(image)

    def recomposite(self) -> Optional[threading.Thread]:
        """Composite on a worker thread.  Returns the thread, or ``None`` if nothing to do."""
        params = self._still_params()
        if params is None:
            return None
        with self._lock:
            self._generation += 1
            generation = self._generation
            self.is_compositing = True

        thread = threading.Thread(
            target=lambda: self._deliver(generation, self._render(params)),
            daemon=True,
        )
        thread.start()
        return thread

    def recomposite_debounced(self) -> None:
        """Coalesce rapid triggers into one composite after :data:`DEBOUNCE_MS`."""
        self._debounce.start()

    def composite_now(self) -> Optional[np.ndarray]:
        """Synchronous composite of the current selection."""
        params = self._still_params()
        if params is None:
            return None
        with self._lock:
            self._generation += 1
            generation = self._generation
        image = self._render(params)
        self._deliver(generation, image)
        return image

    # ── export ──────────────────────────────────────────────────────

    def export_video(self, output_path: str, size: Optional[Tuple[int, int]] = None,
                     encoder_id: Optional[str] = None,
                     encoder_factory: Optional[EncoderFactory] = None) -> Optional[ExportJob]:
        """Start exporting the current video.  One export per session at a time."""
        if self.video_asset is None or self.selected_device is None or self.selected_color is None:
            return None
        if self.exporter.is_running:
            raise RuntimeError("An export is already running")

        request = CompositionParameters(
            source=self.video_asset,
            device=self.selected_device,
            color=self.selected_color,
            is_landscape=self.is_landscape,
            background=self.video_background,
            extra_rotation=self.video_rotation,
            output_size=size,
        )
        self.is_exporting = True
        self.export_progress_value = 0.0
        return self.exporter.export(request, self.cache, output_path,
                                    encoder_id=encoder_id, encoder_factory=encoder_factory)

    def cancel_export(self) -> None:
        self.exporter.cancel()

    def _on_export_progress(self, value: float) -> None:
        self.export_progress_value = value
        self.export_progress.emit(value)

    def _on_export_finished(self, path: str) -> None:
        self.is_exporting = False
        self.export_finished.emit(path)

    def _on_export_error(self, message: str) -> None:
        self.is_exporting = False
        self._set_error(f"Export failed: {message}")

    def _on_export_cancelled(self) -> None:
        self.is_exporting = False
