"""
Peak and valley detection.

A peak is a strict local maximum (plateaus yield nothing).  When two
candidates are closer than ``distance`` samples the taller one wins; the
survivors are returned in ascending index order.  Valleys are peaks of the
negated signal.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np


def find_peaks(data: Sequence[float] | np.ndarray, distance: int) -> np.ndarray:
    """
    Return indices of local maxima at least *distance* samples apart.

    Parameters
    ----------
    data:
        1-D real sequence.
    distance:
        Minimum index separation between two kept peaks.  Kept peaks
        always satisfy ``abs(i - j) >= distance``.
    """
    x = np.asarray(data, dtype=np.float64)
    if x.size < 3:
        return np.array([], dtype=np.intp)

    mid = x[1:-1]
    candidates = np.flatnonzero((mid > x[:-2]) & (mid > x[2:])) + 1
    if candidates.size == 0:
        return candidates

    # Tallest first; ties keep their positional order.
    order = np.argsort(-x[candidates], kind="stable")

    kept: list[int] = []
    for idx in candidates[order]:
        idx = int(idx)
        if all(abs(k - idx) >= distance for k in kept):
            kept.append(idx)

    return np.array(sorted(kept), dtype=np.intp)


def find_valleys(data: Sequence[float] | np.ndarray, distance: int) -> np.ndarray:
    """Indices of local minima (peaks of ``-data``)."""
    return find_peaks(-np.asarray(data, dtype=np.float64), distance)


class ClampedIndex:
    """
    Read-only view over detected peak / valley positions.

    Asking for the k-th entry past the end returns the last available one
    instead of raising, so the morphology formulas degrade gracefully when a
    recording holds fewer beats than they reference.

    Parameters
    ----------
    indices:
        Ascending sample indices (output of :func:`find_peaks`).
    signal:
        The sequence the indices point into.
    """

    def __init__(self, indices: Sequence[int] | np.ndarray, signal: Sequence[float] | np.ndarray) -> None:
        self._indices = np.asarray(indices, dtype=np.intp)
        self._signal = np.asarray(signal, dtype=np.float64)

    def __len__(self) -> int:
        return int(self._indices.size)

    def index(self, k: int) -> int:
        """Sample index of the k-th entry (clamped to the last one)."""
        if self._indices.size == 0:
            raise IndexError("no indices to select from")
        return int(self._indices[min(k, self._indices.size - 1)])

    def value(self, k: int) -> float:
        """Signal value at the k-th entry (clamped to the last one)."""
        return float(self._signal[self.index(k)])

    def values(self) -> np.ndarray:
        return self._signal[self._indices]

    @property
    def indices(self) -> np.ndarray:
        return self._indices
