"""
Unit tests for peak / valley detection and the clamped index accessor.
Run with:  pytest tests/test_peaks.py
"""

from __future__ import annotations

import numpy as np
import pytest

from ppg_vitals.peaks import ClampedIndex, find_peaks, find_valleys


class TestFindPeaks:

    def test_reference_sequence(self):
        peaks = find_peaks([0, 3, 1, 5, 1, 4, 0], 2)
        assert peaks.tolist() == [1, 3, 5]

    def test_tallest_peak_wins_suppression(self):
        peaks = find_peaks([0, 3, 1, 5, 1, 4, 0], 3)
        assert peaks.tolist() == [3]

    def test_distance_is_inclusive(self):
        # peaks at 1 and 3 are exactly 2 apart: allowed with d=2, not d=3
        assert find_peaks([0, 2, 0, 1, 0], 2).tolist() == [1, 3]
        assert find_peaks([0, 2, 0, 1, 0], 3).tolist() == [1]

    def test_plateau_yields_no_candidate(self):
        assert find_peaks([0, 2, 2, 0], 1).tolist() == []

    def test_endpoints_excluded(self):
        assert find_peaks([5, 1, 0, 1, 5], 1).tolist() == []

    def test_equal_heights_keep_earlier_index(self):
        assert find_peaks([0, 5, 0, 5, 0], 3).tolist() == [1]

    def test_short_input(self):
        assert find_peaks([], 1).size == 0
        assert find_peaks([1, 2], 1).size == 0

    def test_ascending_output(self):
        x = np.sin(np.linspace(0, 20 * np.pi, 500))
        peaks = find_peaks(x, 5)
        assert np.all(np.diff(peaks) > 0)


class TestFindValleys:

    def test_valleys_are_negated_peaks(self):
        assert find_valleys([3, 0, 3, 1, 3], 1).tolist() == [1, 3]


class TestClampedIndex:

    def setup_method(self):
        self.signal = np.array([0.0, 1.0, 7.0, 2.0, 3.0, 9.0, 1.0])
        self.idx = ClampedIndex([2, 5], self.signal)

    def test_in_range(self):
        assert self.idx.index(0) == 2
        assert self.idx.value(1) == 9.0

    def test_past_end_returns_last(self):
        assert self.idx.index(2) == 5
        assert self.idx.index(100) == 5
        assert self.idx.value(4) == 9.0

    def test_single_entry(self):
        one = ClampedIndex([4], self.signal)
        assert one.index(0) == one.index(1) == 4
        assert one.value(3) == 3.0

    def test_empty_raises(self):
        with pytest.raises(IndexError):
            ClampedIndex([], self.signal).index(0)

    def test_len_and_values(self):
        assert len(self.idx) == 2
        np.testing.assert_array_equal(self.idx.values(), [7.0, 9.0])
