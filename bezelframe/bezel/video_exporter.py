"""Export a video with the device bezel burned in — produces H.264 MP4.

:class:`ExportJob` does the work on plain threads: a render thread reads
source frames, composites each one with :func:`render_frame` and pipes
it to ffmpeg, while a poll thread samples the frame counter every
:data:`POLL_INTERVAL_S` and reports fractional progress.  The poll loop
is torn down before the terminal outcome is reported and a final
``1.0`` is always emitted, so a progress sink sees a non-decreasing
sequence ending in exactly ``1.0``.

:class:`VideoExporter` bridges a job to Qt signals for the GUI;
:func:`export_video` runs one synchronously for the CLI.
"""

import enum
import logging
import os
import subprocess
import threading
import time
from typing import Callable, List, Optional

import numpy as np

from PySide6.QtCore import QObject, Signal

from .composition import (
    Composition,
    build_composition,
    build_instruction,
    render_frame,
    sample_frames,
)
from .errors import (
    BezelFrameError,
    ExportCancelledError,
    ExportFailedError,
    ExportSessionFailedError,
)
from .models import CompositionParameters
from .region_cache import RegionCache
from .utils import (
    best_hw_encoder,
    build_encoder_args,
    detect_available_encoders,
    encoder_display_name,
    ffmpeg_exe,
    subprocess_kwargs,
)
from .video_source import VideoAsset

logger = logging.getLogger(__name__)

POLL_INTERVAL_S = 0.1

OUTPUT_EXTENSIONS = (".mp4", ".mov", ".m4v")

ProgressSink = Callable[[float], None]
StatusSink = Callable[[str], None]


class ExportState(enum.Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    RENDERING = "rendering"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ExportState.COMPLETED, ExportState.FAILED, ExportState.CANCELLED)


def normalize_output_path(path: str) -> str:
    """Force a video container extension (``.mp4`` unless one is given)."""
    root, ext = os.path.splitext(path)
    if ext.lower() in OUTPUT_EXTENSIONS:
        return path
    return (root if ext else path) + ".mp4"


# ── ffmpeg encoder ──────────────────────────────────────────────────

class FfmpegEncoder:
    """Raw BGR frames on stdin → H.264, with the source's audio mapped in."""

    def __init__(self, output_path: str, size: tuple, composition: Composition,
                 asset: VideoAsset, encoder_id: Optional[str] = None,
                 on_status: Optional[StatusSink] = None) -> None:
        self.output_path = output_path
        self.width, self.height = size
        self.composition = composition
        self.asset = asset
        self.encoder_id = encoder_id or best_hw_encoder()
        self._on_status = on_status
        self._proc: Optional[subprocess.Popen] = None

    def _command(self, enc_id: str) -> List[str]:
        cmd = [
            ffmpeg_exe(), "-y",
            "-f", "rawvideo",
            "-vcodec", "rawvideo",
            "-s", f"{self.width}x{self.height}",
            "-pix_fmt", "bgr24",
            "-r", f"{self.composition.fps:.6g}",
            "-i", "pipe:",
        ]
        audio = self.composition.audio
        if audio:
            cmd += ["-i", self.asset.path]
        cmd += ["-map", "0:v:0"]
        for segment in audio:
            cmd += ["-map", f"1:a:{segment.track_index}"]
        cmd += build_encoder_args(enc_id)
        if audio:
            cmd += ["-c:a", "aac", "-b:a", "192k"]
        cmd += [
            "-t", f"{self.composition.duration_ms / 1000.0:.3f}",
            "-movflags", "+faststart",
            self.output_path,
        ]
        return cmd

    def _launch(self, enc_id: str) -> subprocess.Popen:
        cmd = self._command(enc_id)
        logger.info("Launching ffmpeg with encoder %s: %s", enc_id, " ".join(cmd))
        return subprocess.Popen(
            cmd,
            stdin=subprocess.PIPE,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            **subprocess_kwargs(),
        )

    def _status(self, text: str) -> None:
        if self._on_status is not None:
            self._on_status(text)

    def open(self) -> None:
        """Start ffmpeg, falling back through the available encoders."""
        available = detect_available_encoders()
        chain: List[str] = []
        if self.encoder_id in available:
            chain = available[available.index(self.encoder_id) + 1:]
        elif self.encoder_id != "libx264":
            chain = [e for e in available if e != self.encoder_id]
        if "libx264" not in chain and self.encoder_id != "libx264":
            chain.append("libx264")

        try:
            proc = self._launch(self.encoder_id)
        except OSError as exc:
            raise ExportSessionFailedError(f"Failed to create export session: {exc}") from exc

        time.sleep(0.1)
        if proc.poll() is not None and self.encoder_id != "libx264":
            early = proc.stderr.read().decode(errors="replace")[:500] if proc.stderr else ""
            logger.warning("Encoder %s failed immediately (%s)", self.encoder_id, early.strip())
            launched = False
            for fallback_id in chain:
                self._status(f"{encoder_display_name(self.encoder_id)} failed, "
                             f"trying {encoder_display_name(fallback_id)}…")
                logger.info("Trying fallback encoder: %s", fallback_id)
                self.encoder_id = fallback_id
                proc = self._launch(fallback_id)
                time.sleep(0.1)
                if proc.poll() is None:
                    launched = True
                    break
                logger.warning("Fallback encoder %s also failed immediately", fallback_id)
            if not launched:
                raise ExportSessionFailedError("All encoders failed to launch")
        self._proc = proc

    def _stderr_tail(self) -> str:
        if self._proc is None:
            return ""
        try:
            err = self._proc.communicate(timeout=60)[1]
        except subprocess.TimeoutExpired:
            self._proc.kill()
            err = self._proc.communicate()[1]
        return err.decode(errors="replace").strip()[-800:] if err else ""

    def write(self, frame: np.ndarray) -> None:
        try:
            self._proc.stdin.write(frame.tobytes())
        except (BrokenPipeError, OSError):
            tail = self._stderr_tail()
            logger.error("ffmpeg closed the pipe (encoder=%s): %s", self.encoder_id, tail)
            raise ExportFailedError(tail or "ffmpeg closed the pipe") from None

    def finish(self) -> None:
        # communicate() flushes and closes stdin itself
        tail = self._stderr_tail()
        if self._proc.returncode != 0:
            logger.error("Export failed (encoder=%s, rc=%s): %s",
                         self.encoder_id, self._proc.returncode, tail)
            raise ExportFailedError(f"ffmpeg error ({self.encoder_id}): {tail[:500]}"
                                    if tail else None)

    def abort(self) -> None:
        if self._proc is None:
            return
        try:
            self._proc.stdin.close()
        except OSError as exc:
            logger.debug("ffmpeg stdin already closed: %s", exc)
        self._proc.kill()
        self._proc.wait()


EncoderFactory = Callable[..., FfmpegEncoder]


# ── Export job ──────────────────────────────────────────────────────

class ExportJob:
    """One cancellable export.  Not restartable; a failed export needs a new job."""

    def __init__(self, request: CompositionParameters, cache: RegionCache,
                 output_path: str,
                 progress: Optional[ProgressSink] = None,
                 on_complete: Optional[Callable[["ExportJob"], None]] = None,
                 on_status: Optional[StatusSink] = None,
                 encoder_id: Optional[str] = None,
                 encoder_factory: Optional[EncoderFactory] = None) -> None:
        self.request = request
        self.cache = cache
        self.output_path = normalize_output_path(output_path)
        self.error: Optional[BezelFrameError] = None

        self._progress = progress
        self._on_complete = on_complete
        self._on_status = on_status
        self._encoder_id = encoder_id
        self._encoder_factory = encoder_factory or FfmpegEncoder

        self._state = ExportState.IDLE
        self._state_lock = threading.Lock()
        self._frames_done = 0
        self._frames_total = 0
        self._cancel = threading.Event()
        self._stop_polling = threading.Event()
        self._render_thread: Optional[threading.Thread] = None
        self._poll_thread: Optional[threading.Thread] = None

    # ── public API ──────────────────────────────────────────────────

    @property
    def state(self) -> ExportState:
        return self._state

    @property
    def fraction(self) -> float:
        if self._frames_total <= 0:
            return 0.0
        return min(1.0, self._frames_done / self._frames_total)

    def start(self) -> None:
        if self._state is not ExportState.IDLE:
            raise RuntimeError(f"Export already started ({self._state.value})")
        self._set_state(ExportState.PREPARING)
        self._poll_thread = threading.Thread(target=self._poll, daemon=True)
        self._render_thread = threading.Thread(target=self._run, daemon=True)
        self._poll_thread.start()
        self._render_thread.start()

    def cancel(self) -> None:
        """Stop progress reporting, then abort rendering."""
        self._stop_polling.set()
        self._cancel.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the job reaches a terminal state; ``True`` if it did."""
        if self._render_thread is not None:
            self._render_thread.join(timeout)
        return self._state.is_terminal

    # ── internal ────────────────────────────────────────────────────

    def _set_state(self, state: ExportState) -> None:
        with self._state_lock:
            logger.debug("Export %s: %s -> %s", self.output_path,
                         self._state.value, state.value)
            self._state = state

    def _emit(self, value: float) -> None:
        if self._progress is not None:
            self._progress(value)

    def _poll(self) -> None:
        last = 0.0
        while not self._stop_polling.wait(POLL_INTERVAL_S):
            last = max(last, self.fraction)
            self._emit(last)

    def _run(self) -> None:
        encoder = None
        outcome = ExportState.FAILED
        try:
            asset = self.request.source
            if not isinstance(asset, VideoAsset):
                raise ExportFailedError("Export source is not a video")
            composition = build_composition(asset)
            instruction = build_instruction(self.request, self.cache, asset.video_track)
            self._frames_total = composition.expected_frames

            self._set_state(ExportState.RENDERING)
            encoder = self._encoder_factory(
                self.output_path, instruction.canvas_size, composition, asset,
                encoder_id=self._encoder_id, on_status=self._on_status,
            )
            encoder.open()

            timed = asset.iter_timed_frames()
            try:
                for frame in sample_frames(timed, composition):
                    if self._cancel.is_set():
                        break
                    encoder.write(render_frame(frame, instruction))
                    self._frames_done += 1
            finally:
                timed.close()

            if self._cancel.is_set():
                encoder.abort()
                self._discard_output()
                outcome = ExportState.CANCELLED
                logger.info("Export cancelled after %d frames", self._frames_done)
            else:
                if self._frames_done == 0:
                    raise ExportFailedError("No video frames could be decoded.")
                encoder.finish()
                outcome = ExportState.COMPLETED
                logger.info("Exported %d frames to %s", self._frames_done, self.output_path)
        except BezelFrameError as exc:
            self.error = exc
            self._abort_quietly(encoder)
        except Exception as exc:
            logger.exception("Unexpected export failure")
            self.error = ExportFailedError(str(exc) or None)
            self._abort_quietly(encoder)
        finally:
            self._stop_polling.set()
            if self._poll_thread is not None:
                self._poll_thread.join()
            self._emit(1.0)
            self._set_state(outcome)
            if self.error is not None:
                logger.error("Export failed: %s", self.error)
            if self._on_complete is not None:
                self._on_complete(self)

    def _abort_quietly(self, encoder) -> None:
        """Stop a started encoder and remove whatever it wrote."""
        if encoder is None:
            return
        try:
            encoder.abort()
        except OSError as exc:
            logger.warning("Could not stop encoder: %s", exc)
        self._discard_output()

    def _discard_output(self) -> None:
        if os.path.exists(self.output_path):
            try:
                os.remove(self.output_path)
            except OSError as exc:
                logger.warning("Could not delete partial export %s: %s", self.output_path, exc)


# ── Qt bridge ───────────────────────────────────────────────────────

class VideoExporter(QObject):
    """Runs an :class:`ExportJob` and reports through Qt signals."""

    progress = Signal(float)  # 0.0–1.0
    finished = Signal(str)    # output path
    error = Signal(str)
    cancelled = Signal()
    status = Signal(str)      # status text updates (e.g. encoder fallback)

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._job: Optional[ExportJob] = None

    @property
    def is_running(self) -> bool:
        return self._job is not None and not self._job.state.is_terminal

    def export(self, request: CompositionParameters, cache: RegionCache,
               output_path: str, encoder_id: Optional[str] = None,
               encoder_factory: Optional[EncoderFactory] = None) -> ExportJob:
        """Start export in a background thread."""
        self._job = ExportJob(
            request, cache, output_path,
            progress=self.progress.emit,
            on_complete=self._on_complete,
            on_status=self.status.emit,
            encoder_id=encoder_id,
            encoder_factory=encoder_factory,
        )
        self._job.start()
        return self._job

    def cancel(self) -> None:
        if self._job is not None:
            self._job.cancel()

    def _on_complete(self, job: ExportJob) -> None:
        if job.state is ExportState.COMPLETED:
            self.finished.emit(job.output_path)
        elif job.state is ExportState.CANCELLED:
            self.cancelled.emit()
        else:
            self.error.emit(str(job.error or ExportFailedError()))


# ── Synchronous helper ──────────────────────────────────────────────

def export_video(request: CompositionParameters, cache: RegionCache, output_path: str,
                 progress: Optional[ProgressSink] = None,
                 cancel: Optional[threading.Event] = None,
                 encoder_id: Optional[str] = None,
                 encoder_factory: Optional[EncoderFactory] = None) -> str:
    """Run an export to completion.  Returns the written path.

    Raises the job's :class:`ExportError` / :class:`AssetError` on failure
    and :class:`ExportCancelledError` if *cancel* is set mid-export.
    """
    job = ExportJob(request, cache, output_path, progress=progress,
                    encoder_id=encoder_id, encoder_factory=encoder_factory)
    job.start()
    try:
        while not job.wait(POLL_INTERVAL_S):
            if cancel is not None and cancel.is_set():
                job.cancel()
    except KeyboardInterrupt:
        job.cancel()
        job.wait()
        raise

    if job.state is ExportState.CANCELLED:
        raise ExportCancelledError()
    if job.state is ExportState.FAILED:
        raise job.error or ExportFailedError()
    return job.output_path
