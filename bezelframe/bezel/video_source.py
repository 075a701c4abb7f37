"""Video probing and frame access.

A :class:`VideoAsset` describes a source file: its video tracks (natural
size, stored rotation, nominal frame rate), audio tracks and duration.
Sizes and rotation come from OpenCV with automatic orientation disabled,
so frames are returned exactly as encoded and the display transform is
applied by the compositor.  Audio streams, duration and a rotation
fallback are read from the banner of the bundled ffmpeg binary.
"""

import logging
import math
import os
import re
import subprocess
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

import cv2
import numpy as np

from .errors import InputError, NoVideoTrackError
from .image_io import rotate_image, to_bgra
from .utils import ffmpeg_exe, subprocess_kwargs
from .video_geometry import displayed_size

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = (".mov", ".mp4", ".m4v")

DEFAULT_FPS = 30.0

# First-frame seek tolerance: up to 1 s forward, nothing backward.
FIRST_FRAME_TOLERANCE_MS = 1000.0


@dataclass
class VideoTrack:
    index: int
    natural_width: int
    natural_height: int
    rotation: int = 0          # clockwise degrees to display
    fps: float = DEFAULT_FPS
    frame_count: int = 0

    @property
    def natural_size(self) -> Tuple[int, int]:
        return self.natural_width, self.natural_height

    @property
    def displayed_size(self) -> Tuple[int, int]:
        return displayed_size(self.natural_width, self.natural_height, self.rotation)


@dataclass
class AudioTrack:
    index: int
    codec: str = ""


@dataclass
class VideoAsset:
    path: str
    video_tracks: List[VideoTrack] = field(default_factory=list)
    audio_tracks: List[AudioTrack] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def video_track(self) -> Optional[VideoTrack]:
        return self.video_tracks[0] if self.video_tracks else None

    def _open_capture(self) -> cv2.VideoCapture:
        cap = cv2.VideoCapture(self.path)
        if not cap.isOpened():
            raise InputError(f"Cannot open {self.path}")
        cap.set(cv2.CAP_PROP_ORIENTATION_AUTO, 0)
        return cap

    def iter_timed_frames(self) -> Iterator[Tuple[float, np.ndarray]]:
        """Yield ``(timestamp_ms, frame)`` with raw (un-rotated) BGR frames.

        Timestamps come from the decoder.  A backend that reports none, or
        one that does not advance, is filled in from the nominal frame rate.
        """
        track = self.video_track
        nominal_ms = 1000.0 / (track.fps if track is not None and track.fps > 0 else DEFAULT_FPS)
        cap = self._open_capture()
        try:
            last = None
            while True:
                ok, frame = cap.read()
                if not ok:
                    break
                ts = cap.get(cv2.CAP_PROP_POS_MSEC)
                if last is not None and not ts > last:
                    ts = last + nominal_ms
                elif last is None and not ts >= 0:
                    ts = 0.0
                last = ts
                yield ts, frame
        finally:
            cap.release()

    def iter_frames(self) -> Iterator[np.ndarray]:
        """Yield raw (un-rotated) BGR frames of the first video track."""
        timed = self.iter_timed_frames()
        try:
            for _ts, frame in timed:
                yield frame
        finally:
            timed.close()


def is_video_path(path: str) -> bool:
    return os.path.splitext(path)[1].lower() in VIDEO_EXTENSIONS


# ── ffmpeg banner parsing ───────────────────────────────────────────

_DURATION_RE = re.compile(r"Duration:\s*(\d+):(\d+):(\d+(?:\.\d+)?)")
_STREAM_RE = re.compile(r"Stream #\d+:\d+.*?:\s*(Video|Audio|Data|Subtitle):\s*([^\s,]+)")
_SIZE_RE = re.compile(r",\s*(\d{2,5})x(\d{2,5})")
_FPS_RE = re.compile(r"([\d.]+)\s*fps")
_ROTATE_RE = re.compile(r"rotate\s*:\s*(-?\d+)")
_MATRIX_RE = re.compile(r"displaymatrix:\s*rotation of\s*(-?[\d.]+)\s*degrees")


@dataclass
class BannerInfo:
    duration_ms: float = 0.0
    video: List[dict] = field(default_factory=list)
    audio: List[str] = field(default_factory=list)


def parse_ffmpeg_banner(text: str) -> BannerInfo:
    """Extract streams, duration and rotation from ``ffmpeg -i`` stderr."""
    info = BannerInfo()
    current: Optional[dict] = None
    for line in text.splitlines():
        m = _DURATION_RE.search(line)
        if m and not info.duration_ms:
            h, mnt, s = int(m.group(1)), int(m.group(2)), float(m.group(3))
            info.duration_ms = ((h * 60 + mnt) * 60 + s) * 1000.0
            continue

        m = _STREAM_RE.search(line)
        if m:
            kind, codec = m.group(1), m.group(2)
            current = None
            if kind == "Video":
                current = {"codec": codec, "width": 0, "height": 0, "fps": 0.0, "rotation": 0}
                size = _SIZE_RE.search(line)
                if size:
                    current["width"], current["height"] = int(size.group(1)), int(size.group(2))
                fps = _FPS_RE.search(line)
                if fps:
                    current["fps"] = float(fps.group(1))
                info.video.append(current)
            elif kind == "Audio":
                info.audio.append(codec)
            continue

        if current is not None:
            m = _ROTATE_RE.search(line)
            if m:
                current["rotation"] = int(m.group(1)) % 360
                continue
            m = _MATRIX_RE.search(line)
            if m:
                # displaymatrix angles are counter-clockwise
                current["rotation"] = int(round(-float(m.group(1)))) % 360
    return info


def probe_banner(path: str) -> BannerInfo:
    """Run ``ffmpeg -i`` on *path* and parse its stream listing."""
    try:
        result = subprocess.run(
            [ffmpeg_exe(), "-hide_banner", "-i", path],
            capture_output=True, timeout=30,
            **subprocess_kwargs(),
        )
    except (OSError, subprocess.TimeoutExpired, RuntimeError) as exc:
        logger.warning("ffmpeg probe failed for %s: %s", path, exc)
        return BannerInfo()
    return parse_ffmpeg_banner(result.stderr.decode(errors="replace"))


# ── Asset loading ───────────────────────────────────────────────────

def open_asset(path: str) -> VideoAsset:
    """Probe a video file.  Raises :class:`InputError` if it cannot be opened."""
    if not os.path.isfile(path):
        raise InputError(f"File not found: {path}")

    cap = cv2.VideoCapture(path)
    if not cap.isOpened():
        raise InputError(f"Cannot open {path}")
    try:
        cap.set(cv2.CAP_PROP_ORIENTATION_AUTO, 0)
        width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        fps = cap.get(cv2.CAP_PROP_FPS)
        frame_count = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))
        meta_rotation = int(cap.get(cv2.CAP_PROP_ORIENTATION_META)) % 360
    finally:
        cap.release()

    banner = probe_banner(path)
    banner_video = banner.video[0] if banner.video else {}

    if width <= 0 or height <= 0:
        width = banner_video.get("width", 0)
        height = banner_video.get("height", 0)
    if fps <= 0 or fps > 240:
        fps = banner_video.get("fps") or DEFAULT_FPS
    rotation = meta_rotation or banner_video.get("rotation", 0)
    if rotation % 90:
        logger.warning("Ignoring non-right-angle rotation %d in %s", rotation, path)
        rotation = 0

    asset = VideoAsset(path=path)
    if width > 0 and height > 0:
        asset.video_tracks.append(VideoTrack(
            index=0,
            natural_width=width,
            natural_height=height,
            rotation=rotation,
            fps=fps,
            frame_count=max(frame_count, 0),
        ))
    asset.audio_tracks = [AudioTrack(index=i, codec=c) for i, c in enumerate(banner.audio)]

    asset.duration_ms = banner.duration_ms
    if asset.duration_ms <= 0 and frame_count > 0 and fps > 0:
        asset.duration_ms = frame_count / fps * 1000.0

    logger.info(
        "Probed %s: %dx%d rot=%d fps=%.2f frames=%d audio=%d duration=%.0fms",
        os.path.basename(path), width, height, rotation, fps, frame_count,
        len(asset.audio_tracks), asset.duration_ms,
    )
    return asset


def video_dimensions(asset: VideoAsset) -> Tuple[int, int]:
    """Displayed (post-rotation) pixel size — what the matcher must be fed."""
    track = asset.video_track
    if track is None:
        raise NoVideoTrackError()
    return track.displayed_size


def first_frame(asset: VideoAsset) -> np.ndarray:
    """First decodable frame as BGRA, with the track's rotation applied."""
    track = asset.video_track
    if track is None:
        raise NoVideoTrackError()
    attempts = max(1, int(math.ceil(track.fps * FIRST_FRAME_TOLERANCE_MS / 1000.0)))
    frames = asset.iter_frames()
    try:
        for _ in range(attempts):
            frame = next(frames, None)
            if frame is None:
                break
            if frame.size:
                return to_bgra(rotate_image(frame, track.rotation))
    finally:
        frames.close()
    raise InputError("Could not read the first video frame.")
