"""
Heuristic vitals estimation.

Closed-form approximations that map a handful of PPG features plus
demographics to systolic / diastolic pressure and blood glucose.  The
numbers are indicative only and serve as a fallback display value before
(or instead of) the external model's prediction.  This path never raises.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Sequence

from ppg_vitals.features import FeatureVector
from ppg_vitals.records import Demographics

logger = logging.getLogger(__name__)

SBP_RANGE = (90.0, 180.0)
DBP_RANGE = (60.0, 120.0)
GLUCOSE_RANGE = (70.0, 250.0)

# Used when a feature is missing, zero or not finite.
_FEATURE_DEFAULTS = {
    "ri": 0.3,
    "aix": -0.5,
    "hr": 75.0,
    "stiffness": 0.1,
}


@dataclass(frozen=True)
class EstimationResult:
    sbp: int
    dbp: int
    glucose: int


def body_mass_index(height_cm: float, weight_kg: float) -> float:
    """BMI in kg/m²; a zero height divides by 1 instead of 0."""
    h_m = height_cm / 100.0
    return weight_kg / ((h_m * h_m) or 1.0)


def _feature(features: FeatureVector | Sequence[float], name: str, index: int) -> float:
    try:
        value = float(features[name] if isinstance(features, FeatureVector) else features[index])
    except (IndexError, TypeError, ValueError):
        return _FEATURE_DEFAULTS[name]
    # zero means "not measured", e.g. stiffness without five SDPPG landmarks
    if value == 0 or not math.isfinite(value):
        return _FEATURE_DEFAULTS[name]
    return value


def _clamp(value: float, bounds: tuple[float, float]) -> int:
    low, high = bounds
    if math.isnan(value):
        logger.debug("Estimate evaluated to NaN; using lower bound %.0f", low)
        return int(low)
    return int(round(min(max(value, low), high)))


def estimate_vitals(
    features: FeatureVector | Sequence[float],
    age: float,
    height_cm: float,
    weight_kg: float,
) -> EstimationResult:
    """
    Return rounded, clamped ``(sbp, dbp, glucose)``.

    SBP = 105 + 0.5·age + 0.5·BMI + 0.2·HR − 20·RI            ∈ [90, 180]
    DBP = 65 + 0.2·age + 0.3·BMI + 0.15·HR − 10·RI + 10·AIx   ∈ [60, 120]
    GLU = 85 + 0.8·BMI + 0.2·age + 100·STIFF − 0.5·HR          ∈ [70, 250]
    """
    ri = _feature(features, "ri", 0)
    aix = _feature(features, "aix", 1)
    hr = _feature(features, "hr", 6)
    stiff = _feature(features, "stiffness", 13)

    bmi = body_mass_index(height_cm, weight_kg)

    sbp = 105 + 0.5 * age + 0.5 * bmi + 0.2 * hr - 20 * ri
    dbp = 65 + 0.2 * age + 0.3 * bmi + 0.15 * hr - 10 * ri + 10 * aix
    glu = 85 + 0.8 * bmi + 0.2 * age + 100 * stiff - 0.5 * hr

    return EstimationResult(
        sbp=_clamp(sbp, SBP_RANGE),
        dbp=_clamp(dbp, DBP_RANGE),
        glucose=_clamp(glu, GLUCOSE_RANGE),
    )


def estimate_for(features: FeatureVector | Sequence[float], demographics: Demographics) -> EstimationResult:
    return estimate_vitals(
        features, demographics.age, demographics.height_cm, demographics.weight_kg
    )
