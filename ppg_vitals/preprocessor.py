"""
PPG preprocessing.

Algorithm
---------
1. Sanitise: a sequence containing NaN has each NaN replaced by zero and is
   returned as-is (no filtering).
2. Zero-phase bandpass: run the fixed 8th-order IIR (0.5 – 5 Hz at 30 Hz)
   forward, reverse, forward again, reverse.  This cancels the phase delay
   so peak positions stay where they are.
3. Stability guard: a non-finite or exploding (> 1e9) output is discarded
   and the raw signal is used instead.
4. Gaussian smoothing (σ = 2 samples, edges clamped).
5. Trim 3 s from both ends, only when the recording is long enough
   (> 2.5 × trim width) to survive it.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
from scipy.ndimage import gaussian_filter1d
from scipy.signal import lfilter

from ppg_vitals.config import DEFAULT_SAMPLE_RATE_HZ

logger = logging.getLogger(__name__)

# Butterworth bandpass, 0.5 – 5.0 Hz at fs = 30 Hz (transfer-function form).
# As rounded, A has a pole at |z| ≈ 1.53: recordings longer than a few
# seconds diverge and take the raw-signal fallback below.
BANDPASS_B: tuple[float, ...] = (
    0.032623, 0.0, -0.130493, 0.0, 0.195740, 0.0, -0.130493, 0.0, 0.032623,
)
BANDPASS_A: tuple[float, ...] = (
    1.0, -4.8465, 10.6666, -14.1672, 12.0620, -6.6582, 2.3387, -0.4746, 0.0433,
)

INSTABILITY_LIMIT = 1e9


def gaussian_smooth(data: Sequence[float] | np.ndarray, sigma: float) -> np.ndarray:
    """
    Discrete Gaussian smoothing with a ⌈4σ⌉ radius, normalised kernel and
    nearest-sample edge handling.  Output length equals input length.
    """
    x = np.asarray(data, dtype=np.float64)
    if x.size == 0:
        return x.copy()
    # truncate=4 gives radius int(4σ + 0.5), equal to ⌈4σ⌉ whenever 4σ is
    # an integer (σ = 2 and σ = 5 in this package).
    return gaussian_filter1d(x, sigma, mode="nearest", truncate=4.0)


def zero_phase_filter(
    b: Sequence[float],
    a: Sequence[float],
    data: Sequence[float] | np.ndarray,
) -> np.ndarray:
    """Forward-backward IIR filtering with zero initial state and no padding."""
    x = np.asarray(data, dtype=np.float64)
    with np.errstate(over="ignore", invalid="ignore"):
        forward = lfilter(b, a, x)
        backward = lfilter(b, a, forward[::-1])
    return backward[::-1]


def is_unstable(filtered: np.ndarray, limit: float = INSTABILITY_LIMIT) -> bool:
    """True if *filtered* holds a non-finite value or a magnitude above *limit*."""
    if filtered.size == 0:
        return False
    if not np.all(np.isfinite(filtered)):
        return True
    return bool(np.max(np.abs(filtered)) > limit)


class Preprocessor:
    """
    Denoises a raw PPG recording.

    Parameters
    ----------
    fs:
        Nominal sampling rate in Hz.  Only used to convert
        ``trim_seconds`` to samples.
    trim_seconds:
        Seconds removed from each end after smoothing (default 3).
    sigma:
        Gaussian smoothing σ in samples (default 2).
    b, a:
        Recursive filter coefficients.  Defaults to the 0.5 – 5 Hz
        bandpass designed for 30 Hz.
    """

    def __init__(
        self,
        fs: float = DEFAULT_SAMPLE_RATE_HZ,
        trim_seconds: float = 3.0,
        sigma: float = 2.0,
        b: Sequence[float] = BANDPASS_B,
        a: Sequence[float] = BANDPASS_A,
    ) -> None:
        self.fs = fs
        self.trim_seconds = trim_seconds
        self.sigma = sigma
        self.b = np.asarray(b, dtype=np.float64)
        self.a = np.asarray(a, dtype=np.float64)

    @property
    def trim_samples(self) -> int:
        return int(round(self.trim_seconds * self.fs))

    def process(self, raw: Sequence[float] | np.ndarray) -> np.ndarray:
        """
        Return the processed signal (length ≤ ``len(raw)``).

        Never raises for empty or NaN-containing input: the former yields
        an empty array, the latter its zero-filled copy.
        """
        x = np.asarray(raw, dtype=np.float64)
        if x.size == 0:
            return np.array([], dtype=np.float64)

        nan_mask = np.isnan(x)
        if nan_mask.any():
            logger.warning(
                "Signal contains %d NaN samples; returning zero-filled raw signal.",
                int(nan_mask.sum()),
            )
            return np.where(nan_mask, 0.0, x)

        signal = zero_phase_filter(self.b, self.a, x)
        if is_unstable(signal):
            logger.warning("Filter unstable. Using raw signal.")
            signal = x.copy()

        signal = gaussian_smooth(signal, self.sigma)

        trim = self.trim_samples
        if trim > 0 and signal.size > 2.5 * trim:
            signal = signal[trim:signal.size - trim]
        return signal

    __call__ = process
