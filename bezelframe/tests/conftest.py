"""Shared pytest fixtures for BezelFrame tests."""

import os
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional, Tuple

import numpy as np
import pytest

from bezel.errors import ExportFailedError
from bezel.image_io import save_png
from bezel.models import DeviceColor, DeviceDefinition, ScreenRegion
from bezel.region_cache import RegionCache
from bezel.resources import ResourcePaths
from bezel.video_source import AudioTrack, VideoAsset, VideoTrack


# ── Synthetic bezels ────────────────────────────────────────────────

BODY_BGR = (40, 40, 40)
RING_ALPHA = 128

PORTRAIT_SIZE = (240, 400)                      # (w, h)
PORTRAIT_HOLE = ScreenRegion(x=20, y=30, width=200, height=340)
LANDSCAPE_SIZE = (400, 240)
LANDSCAPE_HOLE = ScreenRegion(x=30, y=20, width=340, height=200)


def make_bezel(size: tuple, hole: ScreenRegion, ring: bool = True,
               margin: int = 3) -> np.ndarray:
    """BGRA bezel: transparent margin, opaque body, transparent screen hole.

    With *ring*, the one-pixel border around the hole is half transparent
    like anti-aliased artwork.
    """
    w, h = size
    img = np.zeros((h, w, 4), dtype=np.uint8)
    img[margin:h - margin, margin:w - margin, :3] = BODY_BGR
    img[margin:h - margin, margin:w - margin, 3] = 255
    if ring:
        img[hole.y - 1:hole.max_y + 1, hole.x - 1:hole.max_x + 1, 3] = RING_ALPHA
    img[hole.y:hole.max_y, hole.x:hole.max_x, 3] = 0
    return img


@pytest.fixture
def bezel_factory():
    return make_bezel


@pytest.fixture
def test_device() -> DeviceDefinition:
    """A small two-colour catalog entry whose artwork lives in tmp_path."""
    return DeviceDefinition(
        id="testphone",
        display_name="Test Phone",
        colors=[DeviceColor.named("Black"), DeviceColor.named("White")],
        default_color_id="Black",
        bezel_file_prefix="Test Phone",
    )


@pytest.fixture
def resources(tmp_path) -> ResourcePaths:
    paths = ResourcePaths(root=str(tmp_path / "resources"))
    os.makedirs(paths.bezels_dir)
    return paths


@pytest.fixture
def bezel_resources(resources: ResourcePaths, test_device: DeviceDefinition) -> ResourcePaths:
    """Resources holding portrait bezels for both colours and one landscape bezel."""
    for color in test_device.colors:
        save_png(make_bezel(PORTRAIT_SIZE, PORTRAIT_HOLE),
                 os.path.join(resources.bezels_dir, test_device.bezel_file_name(color, False)))
    save_png(make_bezel(LANDSCAPE_SIZE, LANDSCAPE_HOLE),
             os.path.join(resources.bezels_dir,
                          test_device.bezel_file_name(test_device.default_color, True)))
    return resources


@pytest.fixture
def cache(bezel_resources: ResourcePaths) -> RegionCache:
    """Cache with no precomputed table, so every lookup detects live."""
    return RegionCache(bezel_resources)


@pytest.fixture
def resolved_device(cache: RegionCache, test_device: DeviceDefinition) -> DeviceDefinition:
    return cache.resolve_devices([test_device])[0]


# ── Screenshots ─────────────────────────────────────────────────────

@pytest.fixture
def screenshot() -> np.ndarray:
    """Opaque 200×340 gradient screenshot matching the test device."""
    h, w = PORTRAIT_HOLE.height, PORTRAIT_HOLE.width
    img = np.zeros((h, w, 4), dtype=np.uint8)
    img[:, :, 0] = np.linspace(0, 255, w, dtype=np.uint8)[np.newaxis, :]
    img[:, :, 1] = np.linspace(0, 255, h, dtype=np.uint8)[:, np.newaxis]
    img[:, :, 2] = 200
    img[:, :, 3] = 255
    return img


# ── Qt ──────────────────────────────────────────────────────────────

@pytest.fixture(scope="session")
def qapp():
    from PySide6.QtCore import QCoreApplication
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


# ── Video fakes ─────────────────────────────────────────────────────

@dataclass
class FakeVideoAsset(VideoAsset):
    """A VideoAsset whose frames come from memory instead of a decoder."""
    frames: List[np.ndarray] = field(default_factory=list)
    timestamps_ms: Optional[List[float]] = None  # None = constant frame rate

    def iter_timed_frames(self) -> Iterator[Tuple[float, np.ndarray]]:
        step = 1000.0 / self.video_track.fps
        for i, frame in enumerate(self.frames):
            ts = self.timestamps_ms[i] if self.timestamps_ms is not None else i * step
            yield ts, frame.copy()


def make_video_asset(frames: List[np.ndarray], fps: float = 30.0, rotation: int = 0,
                     audio_tracks: int = 0, path: str = "clip.mov") -> FakeVideoAsset:
    h, w = frames[0].shape[:2]
    return FakeVideoAsset(
        path=path,
        video_tracks=[VideoTrack(index=0, natural_width=w, natural_height=h,
                                 rotation=rotation, fps=fps, frame_count=len(frames))],
        audio_tracks=[AudioTrack(index=i, codec="aac") for i in range(audio_tracks)],
        duration_ms=len(frames) / fps * 1000.0,
        frames=frames,
    )


def solid_frames(count: int, size: tuple = (200, 340), bgr: tuple = (0, 0, 255)) -> list:
    w, h = size
    frame = np.zeros((h, w, 3), dtype=np.uint8)
    frame[:, :] = bgr
    return [frame.copy() for _ in range(count)]


class FakeEncoder:
    """Stands in for FfmpegEncoder: records frames, touches the output file."""

    def __init__(self, output_path: str, size: tuple, composition, asset,
                 encoder_id: Optional[str] = None, on_status=None,
                 fail_on_frame: Optional[int] = None,
                 on_write: Optional[Callable[[int], None]] = None) -> None:
        self.output_path = output_path
        self.size = size
        self.composition = composition
        self.asset = asset
        self.encoder_id = encoder_id
        self.frames: List[np.ndarray] = []
        self.opened = False
        self.finished = False
        self.aborted = False
        self._fail_on_frame = fail_on_frame
        self._on_write = on_write

    def open(self) -> None:
        with open(self.output_path, "wb") as f:
            f.write(b"\x00")
        self.opened = True

    def write(self, frame: np.ndarray) -> None:
        if self._fail_on_frame is not None and len(self.frames) == self._fail_on_frame:
            raise ExportFailedError("ffmpeg error (fake): broken pipe")
        self.frames.append(frame)
        if self._on_write is not None:
            self._on_write(len(self.frames))

    def finish(self) -> None:
        self.finished = True

    def abort(self) -> None:
        self.aborted = True


class FakeEncoderFactory:
    """Encoder factory that keeps every encoder it builds."""

    def __init__(self, fail_on_frame: Optional[int] = None,
                 on_write: Optional[Callable[[int], None]] = None) -> None:
        self.fail_on_frame = fail_on_frame
        self.on_write = on_write
        self.encoders: List[FakeEncoder] = []

    def __call__(self, output_path, size, composition, asset, encoder_id=None, on_status=None):
        encoder = FakeEncoder(output_path, size, composition, asset,
                              encoder_id=encoder_id, on_status=on_status,
                              fail_on_frame=self.fail_on_frame, on_write=self.on_write)
        self.encoders.append(encoder)
        return encoder

    @property
    def encoder(self) -> Optional[FakeEncoder]:
        return self.encoders[-1] if self.encoders else None


@pytest.fixture
def encoder_factory() -> FakeEncoderFactory:
    return FakeEncoderFactory()
