"""
Welch-style power spectral density and low-frequency band power.

Segments of up to 256 samples with 50 % overlap are Hann-windowed, their
periodograms averaged, scaled to a one-sided density and summed over the
LF band (0.01 – 0.15 Hz).
"""

from __future__ import annotations

from typing import Sequence, Tuple

import numpy as np

MAX_SEGMENT = 256
MIN_LENGTH = 32
LF_BAND: Tuple[float, float] = (0.01, 0.15)


def welch_psd(
    data: Sequence[float] | np.ndarray,
    fs: float,
    max_segment: int = MAX_SEGMENT,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Return ``(freqs, psd)`` for *data* sampled at *fs* Hz.

    Returns two empty arrays when the signal is shorter than 32 samples.
    No detrending is applied.  Every bin except the first and the last is
    doubled (one-sided correction).
    """
    x = np.asarray(data, dtype=np.float64)
    nperseg = min(max_segment, x.size)
    if nperseg < MIN_LENGTH:
        return np.array([]), np.array([])

    step = nperseg // 2
    n_windows = (x.size - nperseg) // step + 1
    if n_windows < 1:
        return np.array([]), np.array([])

    window = np.hanning(nperseg)                 # symmetric Hann
    n_bins = nperseg // 2 + 1
    accumulator = np.zeros(n_bins)
    for w in range(n_windows):
        start = w * step
        segment = x[start:start + nperseg] * window
        spectrum = np.fft.rfft(segment)[:n_bins]
        accumulator += spectrum.real ** 2 + spectrum.imag ** 2

    win_sum_sq = float(np.sum(window ** 2))
    scale = 1.0 / (fs * win_sum_sq or 1.0)
    psd = accumulator / n_windows * scale
    psd[1:-1] *= 2.0

    freqs = np.arange(n_bins) * (fs / nperseg)
    return freqs, psd


def band_power(
    data: Sequence[float] | np.ndarray,
    fs: float,
    band: Tuple[float, float] = LF_BAND,
) -> float:
    """Sum of Welch PSD bins whose frequency lies in ``[band[0], band[1]]``."""
    freqs, psd = welch_psd(data, fs)
    if freqs.size == 0:
        return 0.0
    low, high = band
    mask = (freqs >= low) & (freqs <= high)
    return float(psd[mask].sum())


def lf_power(data: Sequence[float] | np.ndarray, fs: float) -> float:
    """Low-frequency (0.01 – 0.15 Hz) band power."""
    return band_power(data, fs, LF_BAND)
