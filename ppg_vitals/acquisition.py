"""
Signal acquisition.

With a finger pressed over the lens (torch on), each frame is nearly
uniformly red and its brightness pulses with blood volume.  The recorder
reduces every frame to one number, the mean red intensity of the centre
crop, and stores it with a wall-clock timestamp.

:class:`VideoSource` feeds frames from a webcam index or a video file via
OpenCV.  :func:`simulate_ppg` produces a synthetic pulse waveform for demos
and tests.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Generator, List, Optional, Tuple

import cv2
import numpy as np

from ppg_vitals.config import DEFAULT_SAMPLE_RATE_HZ
from ppg_vitals.records import SignalSample

logger = logging.getLogger(__name__)


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


def frame_intensity(frame: np.ndarray, crop_fraction: float = 0.5, size: int = 40) -> float:
    """
    Mean red intensity of the centre crop of a BGR *frame*.

    The crop (``crop_fraction`` of width and height) is downscaled to
    ``size × size`` first; that is plenty for an average and keeps the
    per-frame cost flat regardless of resolution.
    """
    h, w = frame.shape[:2]
    if h == 0 or w == 0:
        return 0.0
    ch, cw = max(1, int(h * crop_fraction)), max(1, int(w * crop_fraction))
    y0, x0 = (h - ch) // 2, (w - cw) // 2
    crop = frame[y0:y0 + ch, x0:x0 + cw]
    thumb = cv2.resize(crop, (size, size), interpolation=cv2.INTER_AREA)
    if thumb.ndim == 2:
        return float(np.mean(thumb))
    return float(np.mean(thumb[:, :, 2]))    # channel 2 = Red in BGR


class SignalRecorder:
    """
    Accumulates :class:`SignalSample` values during a recording.

    Parameters
    ----------
    fs:
        Nominal sampling rate in Hz.  Frames are expected at this rate;
        the analysis ignores actual timestamps.
    crop_fraction:
        Fraction of each frame dimension used for the intensity average.
    clock:
        Callable returning the current time in ms (wall clock by default).
    """

    def __init__(
        self,
        fs: float = DEFAULT_SAMPLE_RATE_HZ,
        crop_fraction: float = 0.5,
        clock: Callable[[], int] = _wall_clock_ms,
    ) -> None:
        self.fs = fs
        self.crop_fraction = crop_fraction
        self._clock = clock
        self._samples: List[SignalSample] = []
        self._recording = False
        self._start_ms: Optional[int] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Clear the buffer and begin a new recording."""
        self._samples = []
        self._start_ms = self._clock()
        self._recording = True
        logger.info("Recording started.")

    def stop(self) -> List[SignalSample]:
        """End the recording and return its samples."""
        self._recording = False
        logger.info("Recording stopped: %d samples (%.1f s).", len(self._samples), self.duration_s)
        return list(self._samples)

    @property
    def is_recording(self) -> bool:
        return self._recording

    # ------------------------------------------------------------------
    # Sample input
    # ------------------------------------------------------------------

    def push_frame(self, frame: np.ndarray, timestamp_ms: Optional[int] = None) -> float:
        """Reduce *frame* to its intensity, append it and return the value."""
        value = frame_intensity(frame, self.crop_fraction)
        self.push_value(value, timestamp_ms)
        return value

    def push_value(self, value: float, timestamp_ms: Optional[int] = None) -> None:
        if not self._recording:
            raise RuntimeError("Recorder is not running.  Call start() first.")
        ts = self._clock() if timestamp_ms is None else int(timestamp_ms)
        self._samples.append(SignalSample(timestamp=ts, value=float(value)))

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def samples(self) -> List[SignalSample]:
        return list(self._samples)

    @property
    def start_ms(self) -> Optional[int]:
        return self._start_ms

    @property
    def duration_s(self) -> float:
        """Elapsed recording time from the timestamps (0 if < 2 samples)."""
        if len(self._samples) < 2:
            return 0.0
        return (self._samples[-1].timestamp - self._samples[0].timestamp) / 1000.0

    def values(self) -> np.ndarray:
        return np.array([s.value for s in self._samples], dtype=np.float64)


class VideoSource:
    """
    Frame source backed by ``cv2.VideoCapture``.

    Parameters
    ----------
    source:
        Camera index (live capture) or path to a video file.
    resolution:
        Requested (width, height) for live cameras.
    fps:
        Target frame rate.  Live capture is paced to it; file frames are
        stamped ``1000 / fps`` ms apart.
    """

    def __init__(
        self,
        source: int | str = 0,
        resolution: Tuple[int, int] = (640, 480),
        fps: float = DEFAULT_SAMPLE_RATE_HZ,
    ) -> None:
        self.source = source
        self.resolution = resolution
        self.fps = fps
        self._cap: "cv2.VideoCapture | None" = None

    @property
    def is_live(self) -> bool:
        return isinstance(self.source, int)

    def open(self) -> None:
        cap = cv2.VideoCapture(self.source)
        if not cap.isOpened():
            raise RuntimeError(f"Cannot open video source {self.source!r}")
        if self.is_live:
            w, h = self.resolution
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
            cap.set(cv2.CAP_PROP_FPS, self.fps)
        self._cap = cap
        logger.info("Video source opened – source=%r fps=%.1f", self.source, self.fps)

    def close(self) -> None:
        if self._cap is None:
            return
        self._cap.release()
        self._cap = None
        logger.info("Video source closed.")

    def __enter__(self) -> "VideoSource":
        self.open()
        return self

    def __exit__(self, *_) -> None:
        self.close()

    def frames(self) -> Generator[np.ndarray, None, None]:
        """
        Yield frames until the source ends.  A live camera is given up on
        after 10 consecutive failed reads; a file ends at its first.
        """
        if self._cap is None:
            raise RuntimeError("Video source is not open.  Call open() first.")
        null_streak = 0
        while self._cap is not None:
            ok, frame = self._cap.read()
            if not ok or frame is None:
                if not self.is_live:
                    break
                null_streak += 1
                if null_streak >= 10:
                    logger.error("Camera returned 10 consecutive empty frames – aborting.")
                    break
                continue
            null_streak = 0
            yield frame

    def record(self, recorder: SignalRecorder, duration_s: float) -> List[SignalSample]:
        """Record for *duration_s* seconds of signal and return the samples."""
        recorder.start()
        interval_s = 1.0 / self.fps
        start_ms = recorder.start_ms or _wall_clock_ms()
        n_target = int(round(duration_s * self.fps))
        next_tick = time.monotonic()
        for i, frame in enumerate(self.frames()):
            if i >= n_target:
                break
            if self.is_live:
                recorder.push_frame(frame)
                next_tick += interval_s
                delay = next_tick - time.monotonic()
                if delay > 0:
                    time.sleep(delay)
            else:
                recorder.push_frame(frame, timestamp_ms=start_ms + int(round(i * 1000 / self.fps)))
        return recorder.stop()


def simulate_ppg(
    heart_rate_bpm: float,
    fs: float = DEFAULT_SAMPLE_RATE_HZ,
    seconds: float = 30.0,
    noise: float = 0.1,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """
    Synthetic finger-PPG: systolic pulse, dicrotic wave, 0.25 Hz
    respiratory modulation and uniform noise around a DC level of 100.
    """
    rng = rng if rng is not None else np.random.default_rng()
    t = np.arange(int(fs * seconds)) / fs
    f = heart_rate_bpm / 60.0
    pulse = -np.cos(2 * np.pi * f * t)
    dicrotic = 0.5 * np.cos(2 * np.pi * f * 2 * t + 0.5)
    resp = 0.2 * np.sin(2 * np.pi * 0.25 * t)
    jitter = (rng.random(t.size) - 0.5) * noise
    return 100 + 10 * (pulse + dicrotic + resp + jitter)


def simulate_samples(
    heart_rate_bpm: float,
    fs: float = DEFAULT_SAMPLE_RATE_HZ,
    seconds: float = 30.0,
    start_ms: int = 0,
    rng: Optional[np.random.Generator] = None,
) -> List[SignalSample]:
    """:func:`simulate_ppg` stamped ``1000 / fs`` ms apart from *start_ms*."""
    values = simulate_ppg(heart_rate_bpm, fs, seconds, rng=rng)
    return [
        SignalSample(timestamp=start_ms + int(round(i * 1000 / fs)), value=float(v))
        for i, v in enumerate(values)
    ]
