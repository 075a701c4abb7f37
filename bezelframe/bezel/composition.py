"""Video composition — timeline plus the per-frame compositing instruction.

A :class:`Composition` copies the source's full time range from its
first video track and every audio track, so timing and audio sync are
preserved when the export is re-encoded.  A :class:`FrameInstruction`
carries everything that is constant for one export (render size, layer
transform, screen mask, scaled bezel, background) so that
:func:`render_frame` is a cheap, pure function of the source frame.

Layer order per frame: background → video (masked to the screen shape)
→ bezel.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional, Tuple

import cv2
import numpy as np

from .compositor import checked_mask, load_bezel
from .errors import CompositionFailedError, NoVideoTrackError, ScreenRegionNotFoundError
from .image_io import resize_image
from .models import CompositionParameters
from .region_cache import RegionCache
from .region_detector import mask_to_alpha
from .video_geometry import layer_transform, output_geometry, to_warp_matrix
from .video_source import DEFAULT_FPS, VideoAsset, VideoTrack

logger = logging.getLogger(__name__)

# Containers without alpha get a solid fill behind the device.
DEFAULT_VIDEO_BACKGROUND: Tuple[int, int, int] = (255, 255, 255)


@dataclass(frozen=True)
class TimeRange:
    start_ms: float
    duration_ms: float

    @property
    def end_ms(self) -> float:
        return self.start_ms + self.duration_ms


@dataclass(frozen=True)
class Segment:
    """A time range copied from one source track."""
    track_index: int
    time_range: TimeRange


@dataclass
class Composition:
    video: Segment
    audio: List[Segment] = field(default_factory=list)
    frame_duration_ms: float = 1000.0 / DEFAULT_FPS

    @property
    def fps(self) -> float:
        return 1000.0 / self.frame_duration_ms

    @property
    def duration_ms(self) -> float:
        return self.video.time_range.duration_ms

    @property
    def expected_frames(self) -> int:
        return max(1, int(round(self.duration_ms / self.frame_duration_ms)))


def build_composition(asset: VideoAsset) -> Composition:
    """Timeline covering the whole asset: first video track plus all audio."""
    track = asset.video_track
    if track is None:
        raise NoVideoTrackError()
    if asset.duration_ms <= 0:
        raise CompositionFailedError(
            f"Failed to create video composition: invalid duration {asset.duration_ms:.0f} ms"
        )

    full = TimeRange(0.0, asset.duration_ms)
    fps = track.fps if track.fps > 0 else DEFAULT_FPS
    return Composition(
        video=Segment(track.index, full),
        audio=[Segment(a.index, full) for a in asset.audio_tracks],
        frame_duration_ms=1000.0 / fps,
    )


# Decoder timestamps are whole milliseconds on some backends.
SAMPLE_TOLERANCE_MS = 1.0


def sample_frames(timed_frames: Iterable[Tuple[float, np.ndarray]],
                  composition: Composition) -> Iterator[np.ndarray]:
    """Resample source frames onto the composition's fixed frame grid.

    Output frame *n* shows the latest source frame whose timestamp is at
    or before ``n * frame_duration_ms``, so frames are repeated through
    sparse stretches of a variable-frame-rate source and dropped through
    dense ones.  Yields exactly ``expected_frames`` frames unless the
    source has none; the last frame is held if the source ends early.
    """
    source = iter(timed_frames)
    current = next(source, None)
    if current is None:
        return
    upcoming = next(source, None)
    for n in range(composition.expected_frames):
        t = n * composition.frame_duration_ms + SAMPLE_TOLERANCE_MS
        while upcoming is not None and upcoming[0] <= t:
            current = upcoming
            upcoming = next(source, None)
        yield current[1]


# ── Frame instruction ───────────────────────────────────────────────

@dataclass
class FrameInstruction:
    """Constant per-export compositing state.

    ``canvas_size`` is ``render_size`` rounded up to even dimensions for
    H.264; the padding is plain background.
    """
    render_size: Tuple[int, int]
    canvas_size: Tuple[int, int]
    warp: np.ndarray                 # 2×3 float32, source → canvas
    source_size: Tuple[int, int]     # natural (un-rotated) frame size
    mask: np.ndarray                 # BGRA, alpha = screen shape
    bezel: np.ndarray                # BGRA at canvas size
    background: Tuple[int, int, int] = DEFAULT_VIDEO_BACKGROUND  # RGB

    _video_alpha: Optional[np.ndarray] = field(default=None, repr=False)
    _bezel_alpha: Optional[np.ndarray] = field(default=None, repr=False)
    _base: Optional[np.ndarray] = field(default=None, repr=False)

    def prepare(self) -> None:
        """Precompute the float layers used by :func:`render_frame`."""
        w, h = self.canvas_size
        coverage = cv2.warpAffine(
            np.full((self.source_size[1], self.source_size[0]), 255, dtype=np.uint8),
            self.warp, (w, h), flags=cv2.INTER_LINEAR,
            borderMode=cv2.BORDER_CONSTANT, borderValue=0,
        )
        mask_alpha = self.mask[:, :, 3].astype(np.float32) / 255.0
        self._video_alpha = (mask_alpha * coverage.astype(np.float32) / 255.0)[:, :, np.newaxis]
        self._bezel_alpha = (self.bezel[:, :, 3:4].astype(np.float32) / 255.0)
        r, g, b = self.background
        self._base = np.empty((h, w, 3), dtype=np.float32)
        self._base[:] = (b, g, r)


def _pad(image: np.ndarray, size: Tuple[int, int]) -> np.ndarray:
    w, h = size
    if image.shape[1] == w and image.shape[0] == h:
        return image
    out = np.zeros((h, w) + image.shape[2:], dtype=image.dtype)
    out[:image.shape[0], :image.shape[1]] = image
    return out


def _even(n: int) -> int:
    return n + (n % 2)


def build_instruction(params: CompositionParameters, cache: RegionCache,
                      track: VideoTrack) -> FrameInstruction:
    """Resolve bezel, region and mask and derive the export geometry."""
    file_name = params.bezel_file_name
    bezel = load_bezel(cache, file_name)
    bezel_h, bezel_w = bezel.shape[:2]

    region = cache.region_for(params.device, params.color, params.is_landscape)
    if region is None:
        raise ScreenRegionNotFoundError()

    mask = checked_mask(cache, file_name, bezel)
    if mask is None:
        logger.warning("No screen mask for %s; masking to the region rectangle", file_name)
        mask = np.zeros((bezel_h, bezel_w), dtype=np.uint8)
        mask[region.y:region.max_y, region.x:region.max_x] = 255

    render_size, scale, rect = output_geometry((bezel_w, bezel_h), region, params.output_size)
    if render_size != (bezel_w, bezel_h):
        bezel = resize_image(bezel, render_size)
        mask = cv2.resize(mask, render_size, interpolation=cv2.INTER_LINEAR)
    canvas_size = (_even(render_size[0]), _even(render_size[1]))

    transform = layer_transform(track.natural_size, track.rotation,
                                params.extra_rotation, rect)
    logger.info(
        "Export geometry: render=%dx%d canvas=%dx%d scale=%.4f screen=(%.1f, %.1f, %.1f, %.1f)",
        render_size[0], render_size[1], canvas_size[0], canvas_size[1], scale, *rect,
    )

    instruction = FrameInstruction(
        render_size=render_size,
        canvas_size=canvas_size,
        warp=to_warp_matrix(transform),
        source_size=track.natural_size,
        mask=_pad(mask_to_alpha(mask), canvas_size),
        bezel=_pad(bezel, canvas_size),
        background=params.background or DEFAULT_VIDEO_BACKGROUND,
    )
    instruction.prepare()
    return instruction


def render_frame(frame: np.ndarray, instruction: FrameInstruction) -> np.ndarray:
    """Composite one raw source frame; returns a BGR frame at canvas size.

    The destination is the opaque background, so straight-alpha "over"
    reduces to a linear blend per layer.
    """
    if instruction._base is None:
        instruction.prepare()
    if frame.ndim == 2:
        frame = cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
    elif frame.shape[2] == 4:
        frame = frame[:, :, :3]

    w, h = instruction.canvas_size
    warped = cv2.warpAffine(frame, instruction.warp, (w, h), flags=cv2.INTER_LINEAR,
                            borderMode=cv2.BORDER_CONSTANT, borderValue=0)

    va = instruction._video_alpha
    out = instruction._base * (1.0 - va) + warped.astype(np.float32) * va
    ba = instruction._bezel_alpha
    out = out * (1.0 - ba) + instruction.bezel[:, :, :3].astype(np.float32) * ba
    return np.clip(np.rint(out), 0, 255).astype(np.uint8)
