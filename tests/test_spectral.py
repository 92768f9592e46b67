"""
Unit tests for the Welch LF power estimator.
Run with:  pytest tests/test_spectral.py
"""

from __future__ import annotations

import numpy as np
import pytest
from scipy.signal import welch

from ppg_vitals.spectral import band_power, lf_power, welch_psd

FS = 30.0


class TestWelchPsd:

    def test_too_short_returns_empty(self):
        freqs, psd = welch_psd(np.ones(31), FS)
        assert freqs.size == 0 and psd.size == 0
        assert lf_power(np.ones(31), FS) == 0.0

    @pytest.mark.parametrize("length", [64, 300, 1000])
    def test_matches_scipy_welch(self, length):
        x = np.random.default_rng(length).normal(size=length)
        nperseg = min(256, length)
        ref_f, ref_p = welch(
            x, fs=FS, window=np.hanning(nperseg), nperseg=nperseg,
            noverlap=nperseg // 2, detrend=False, scaling="density",
        )
        freqs, psd = welch_psd(x, FS)
        np.testing.assert_allclose(freqs, ref_f)
        np.testing.assert_allclose(psd, ref_p, rtol=1e-10, atol=1e-14)

    def test_frequency_resolution(self):
        freqs, _ = welch_psd(np.zeros(256), FS)
        assert freqs.size == 129
        assert freqs[1] == pytest.approx(FS / 256)


class TestBandPower:

    def test_lf_band_selects_expected_bins(self):
        x = np.random.default_rng(7).normal(size=300)
        freqs, psd = welch_psd(x, FS)
        # resolution 0.117 Hz: only bin 1 lies inside 0.01 – 0.15 Hz
        assert lf_power(x, FS) == pytest.approx(psd[1])

    def test_slow_drift_has_more_lf_power_than_pulse(self):
        t = np.arange(1024) / FS
        drift = np.sin(2 * np.pi * 0.12 * t)
        pulse = np.sin(2 * np.pi * 1.2 * t)
        assert lf_power(drift, FS) > 10 * lf_power(pulse, FS)

    def test_custom_band(self):
        t = np.arange(512) / FS
        x = np.sin(2 * np.pi * 1.2 * t)
        assert band_power(x, FS, (1.0, 1.5)) > band_power(x, FS, (3.0, 4.0))
