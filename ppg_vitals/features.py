"""
PPG feature extraction.

Turns a preprocessed PPG waveform into a fixed 18-value vector:

* pulse morphology from detected peaks / valleys (RI, AIx, slopes, pulse
  widths),
* rate and variability (HR, HRV),
* second-derivative (SDPPG) landmark ratios b/a … e/a and a stiffness
  index,
* amplitude statistics, baseline drift and LF spectral power.

The order of :data:`FEATURE_NAMES` is the input contract of the external
model.  Bump :data:`FEATURE_SCHEMA_VERSION` whenever it changes.

References
----------
- Elgendi M., "On the analysis of fingertip photoplethysmogram signals."
  Curr Cardiol Rev, 2012.
- Takazawa K. et al., "Assessment of vasoactive agents and vascular aging
  by the second derivative of photoplethysmogram waveform."
  Hypertension, 1998.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, Sequence

import numpy as np
from scipy.integrate import trapezoid

from ppg_vitals.config import DEFAULT_SAMPLE_RATE_HZ
from ppg_vitals.exceptions import (
    InsufficientPeaks,
    NoValleys,
    SignalFlatline,
    SignalTooShort,
)
from ppg_vitals.peaks import ClampedIndex, find_peaks, find_valleys
from ppg_vitals.preprocessor import gaussian_smooth
from ppg_vitals.spectral import lf_power

logger = logging.getLogger(__name__)

FEATURE_SCHEMA_VERSION = 1

FEATURE_NAMES: tuple[str, ...] = (
    "ri",
    "aix",
    "systolic_slope",
    "diastolic_slope",
    "pw50",
    "pw75",
    "hr",
    "hrv",
    "auc",
    "b_a",
    "c_a",
    "d_a",
    "e_a",
    "stiffness",
    "mean_amplitude",
    "std_amplitude",
    "baseline_trend",
    "lf_power",
)

N_FEATURES = len(FEATURE_NAMES)

MIN_SIGNAL_LENGTH = 30
FLATLINE_STD = 1e-4
EPS = 1e-6


@dataclass(frozen=True)
class FeatureVector:
    """Immutable, ordered 18-value feature vector."""

    values: tuple[float, ...]

    def __post_init__(self) -> None:
        if len(self.values) != N_FEATURES:
            raise ValueError(
                f"FeatureVector needs {N_FEATURES} values, got {len(self.values)}"
            )

    @classmethod
    def from_sequence(cls, values: Sequence[float]) -> "FeatureVector":
        return cls(tuple(float(v) for v in values))

    def __len__(self) -> int:
        return N_FEATURES

    def __iter__(self) -> Iterator[float]:
        return iter(self.values)

    def __getitem__(self, key: int | str) -> float:
        if isinstance(key, str):
            return self.values[FEATURE_NAMES.index(key)]
        return self.values[key]

    def as_array(self) -> np.ndarray:
        return np.asarray(self.values, dtype=np.float64)

    def as_dict(self) -> Dict[str, float]:
        return dict(zip(FEATURE_NAMES, self.values))


def signal_stats(data: Sequence[float] | np.ndarray) -> Dict[str, float]:
    """Return ``{mean, std, min, max}``; all zero for an empty signal."""
    x = np.asarray(data, dtype=np.float64)
    if x.size == 0:
        return {"mean": 0.0, "std": 0.0, "min": 0.0, "max": 0.0}
    return {
        "mean": float(np.mean(x)),
        "std": float(np.std(x)),
        "min": float(np.min(x)),
        "max": float(np.max(x)),
    }


def second_derivative(data: np.ndarray) -> np.ndarray:
    """Central-difference gradient applied twice (one-sided at the edges)."""
    return np.gradient(np.gradient(data))


class FeatureExtractor:
    """
    Computes :class:`FeatureVector` instances from preprocessed PPG.

    Parameters
    ----------
    fs:
        Sampling rate in Hz (default 30).
    peak_distance:
        Minimum separation of pulse peaks / valleys in samples.  The default
        of 10 (0.33 s at 30 Hz) caps detection at 180 BPM.
    landmark_distance:
        Minimum separation of SDPPG landmarks in samples (default 8).
    trend_sigma:
        σ of the heavy smoothing used for the baseline trend (default 5).
    """

    def __init__(
        self,
        fs: float = DEFAULT_SAMPLE_RATE_HZ,
        peak_distance: int = 10,
        landmark_distance: int = 8,
        trend_sigma: float = 5.0,
    ) -> None:
        self.fs = fs
        self.peak_distance = peak_distance
        self.landmark_distance = landmark_distance
        self.trend_sigma = trend_sigma

    def extract(self, ppg: Sequence[float] | np.ndarray) -> FeatureVector:
        """
        Return the feature vector of *ppg*.

        Raises
        ------
        SignalTooShort
            Fewer than 30 samples.
        SignalFlatline
            Population standard deviation below 1e-4.
        InsufficientPeaks
            Fewer than two pulse peaks.
        NoValleys
            No valley found.
        """
        x = np.asarray(ppg, dtype=np.float64)
        fs = self.fs

        if x.size < MIN_SIGNAL_LENGTH:
            raise SignalTooShort(
                f"Signal too short ({x.size} pts). Need at least {MIN_SIGNAL_LENGTH}.",
                details={"length": int(x.size)},
            )

        std_val = float(np.std(x))
        if std_val < FLATLINE_STD:
            raise SignalFlatline(
                f"Signal flatline (std={std_val:.5f}). Is the camera covered?",
                details={"std": std_val},
            )

        peaks = ClampedIndex(find_peaks(x, self.peak_distance), x)
        valleys = ClampedIndex(find_valleys(x, self.peak_distance), x)

        if len(peaks) < 2:
            raise InsufficientPeaks(
                f"Not enough peaks ({len(peaks)}). Hold finger still.",
                details={"peaks": len(peaks)},
            )
        if len(valleys) < 1:
            raise NoValleys("No valleys found.")

        peak_mean = float(np.mean(peaks.values()))

        # Morphology
        ri = valleys.value(0) / (peak_mean + EPS)
        aix = (float(np.max(x)) - float(np.min(x))) / (peak_mean + EPS)
        systolic_slope = (peaks.value(0) - valleys.value(0)) / (
            abs(peaks.index(0) - valleys.index(0)) + EPS
        )
        diastolic_slope = (peaks.value(1) - valleys.value(0)) / (
            abs(peaks.index(1) - valleys.index(0)) + EPS
        )
        pw50 = np.count_nonzero(x > 0.5 * peak_mean) / fs
        pw75 = np.count_nonzero(x > 0.75 * peak_mean) / fs

        # Rate and variability
        hr = len(peaks) * 60.0 / (x.size / fs)
        intervals = np.diff(peaks.indices) / fs
        hrv = float(np.std(intervals)) if intervals.size else 0.0

        auc = float(trapezoid(x))

        ba, ca, da, ea, stiffness = self._sdppg_features(x)

        mean_amp = float(np.mean(x))
        baseline_trend = float(np.mean(np.gradient(gaussian_smooth(x, self.trend_sigma))))
        lf = lf_power(x, fs)

        vector = FeatureVector.from_sequence([
            ri, aix, systolic_slope, diastolic_slope, pw50, pw75,
            hr, hrv, auc, ba, ca, da, ea, stiffness,
            mean_amp, std_val, baseline_trend, lf,
        ])
        logger.debug(
            "Extracted features: peaks=%d valleys=%d hr=%.1f", len(peaks), len(valleys), hr
        )
        return vector

    __call__ = extract

    def _sdppg_features(self, x: np.ndarray) -> tuple[float, float, float, float, float]:
        """b/a, c/a, d/a, e/a and |a - b| from the normalised second derivative."""
        d2 = second_derivative(x)
        d2_norm = (d2 - np.mean(d2)) / (np.std(d2) + EPS)
        landmarks = find_peaks(d2_norm, self.landmark_distance)
        if landmarks.size < 5:
            return 0.0, 0.0, 0.0, 0.0, 0.0

        a, b, c, d, e = (float(d2_norm[i]) for i in landmarks[:5])
        return (
            b / (a + EPS),
            c / (a + EPS),
            d / (a + EPS),
            e / (a + EPS),
            abs(a - b),
        )
