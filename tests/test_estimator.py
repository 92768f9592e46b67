"""
Unit tests for the heuristic vitals estimator.
Run with:  pytest tests/test_estimator.py
"""

from __future__ import annotations

import itertools
import math

import numpy as np
import pytest

from ppg_vitals.estimator import (
    DBP_RANGE,
    GLUCOSE_RANGE,
    SBP_RANGE,
    EstimationResult,
    body_mass_index,
    estimate_for,
    estimate_vitals,
)
from ppg_vitals.features import FeatureVector
from ppg_vitals.records import Demographics


def _features(ri=0.5, aix=0.2, hr=70.0, stiffness=0.2) -> list[float]:
    values = [0.0] * 18
    values[0], values[1], values[6], values[13] = ri, aix, hr, stiffness
    return values


def _in_range(result: EstimationResult) -> bool:
    return (
        SBP_RANGE[0] <= result.sbp <= SBP_RANGE[1]
        and DBP_RANGE[0] <= result.dbp <= DBP_RANGE[1]
        and GLUCOSE_RANGE[0] <= result.glucose <= GLUCOSE_RANGE[1]
    )


class TestFormulas:

    def test_reference_subject(self):
        # bmi = 70 / 1.75² = 22.857
        # sbp = 105 + 20 + 11.43 + 14 - 10       = 140.43
        # dbp = 65 + 8 + 6.86 + 10.5 - 5 + 2     = 87.36
        # glu = 85 + 18.29 + 8 + 20 - 35         = 96.29
        result = estimate_vitals(_features(), age=40, height_cm=175, weight_kg=70)
        assert result == EstimationResult(sbp=140, dbp=87, glucose=96)

    def test_results_are_integers(self):
        result = estimate_vitals(_features(), 33, 168, 61)
        assert all(isinstance(v, int) for v in (result.sbp, result.dbp, result.glucose))

    def test_accepts_feature_vector(self):
        values = _features()
        by_list = estimate_vitals(values, 40, 175, 70)
        by_vector = estimate_vitals(FeatureVector.from_sequence(values), 40, 175, 70)
        assert by_list == by_vector

    def test_estimate_for_demographics(self):
        demo = Demographics(age=40, height_cm=175, weight_kg=70)
        assert estimate_for(_features(), demo) == estimate_vitals(_features(), 40, 175, 70)

    def test_bmi(self):
        assert body_mass_index(200, 80) == pytest.approx(20.0)

    def test_zero_height_does_not_divide_by_zero(self):
        assert body_mass_index(0, 70) == 70.0
        assert _in_range(estimate_vitals(_features(), 30, 0, 70))


class TestClamping:

    def test_upper_clamps(self):
        result = estimate_vitals(_features(ri=-100, aix=100, hr=1000, stiffness=100), 90, 150, 200)
        assert result == EstimationResult(sbp=180, dbp=120, glucose=250)

    def test_lower_clamps(self):
        result = estimate_vitals(_features(ri=100, aix=-100, hr=1000, stiffness=-100), 1, 200, 30)
        assert result == EstimationResult(sbp=90, dbp=60, glucose=70)

    @pytest.mark.parametrize(
        "extreme",
        [-1e308, -1e12, -1.0, 0.0, 1e-12, 1.0, 1e12, 1e308],
    )
    def test_extreme_features_stay_in_range(self, extreme):
        for combo in itertools.product([extreme, -extreme], repeat=4):
            result = estimate_vitals(_features(*combo), 45, 170, 70)
            assert _in_range(result), combo

    def test_random_inputs_stay_in_range(self):
        rng = np.random.default_rng(11)
        for _ in range(500):
            feats = list(rng.normal(0, 1e4, 18))
            age, height, weight = rng.uniform(-1e3, 1e3, 3)
            assert _in_range(estimate_vitals(feats, age, height, weight))

    def test_non_finite_features_use_defaults(self):
        nan_feats = [math.nan] * 18
        defaults = _features(ri=0.3, aix=-0.5, hr=75.0, stiffness=0.1)
        assert estimate_vitals(nan_feats, 30, 170, 70) == estimate_vitals(defaults, 30, 170, 70)

    def test_zero_stiffness_uses_default(self):
        # fewer than five SDPPG landmarks leaves stiffness at exactly 0
        zero = estimate_vitals(_features(stiffness=0.0), 40, 175, 70)
        default = estimate_vitals(_features(stiffness=0.1), 40, 175, 70)
        assert zero == default
        assert zero.glucose == 86

    def test_zero_features_use_defaults(self):
        zeros = [0.0] * 18
        defaults = _features(ri=0.3, aix=-0.5, hr=75.0, stiffness=0.1)
        assert estimate_vitals(zeros, 30, 170, 70) == estimate_vitals(defaults, 30, 170, 70)

    def test_never_raises_on_non_finite_demographics(self):
        assert _in_range(estimate_vitals(_features(), math.nan, math.inf, -math.inf))
