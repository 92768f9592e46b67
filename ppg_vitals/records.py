"""
Persisted record schemas.

Everything written to a :class:`~ppg_vitals.storage.KeyValueStore` goes
through one of these models.  Each carries a ``schema_version`` so a record
written by an incompatible release fails validation instead of being
half-read.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ppg_vitals.features import N_FEATURES, FeatureVector

RECORD_SCHEMA_VERSION = 1

DEFAULT_AGE = 30.0
DEFAULT_HEIGHT_CM = 170.0
DEFAULT_WEIGHT_KG = 70.0


class SignalSample(BaseModel):
    """One acquisition tick: wall-clock timestamp (ms) and intensity."""

    model_config = ConfigDict(frozen=True)

    timestamp: int
    value: float


class Demographics(BaseModel):
    """Subject details used by the estimator and as model inputs."""

    model_config = ConfigDict(frozen=True)

    age: float = DEFAULT_AGE
    height_cm: float = DEFAULT_HEIGHT_CM
    weight_kg: float = DEFAULT_WEIGHT_KG
    name: Optional[str] = None

    @field_validator("age", "height_cm", "weight_kg", mode="before")
    @classmethod
    def _fallback_when_missing(cls, value, info):
        defaults = {
            "age": DEFAULT_AGE,
            "height_cm": DEFAULT_HEIGHT_CM,
            "weight_kg": DEFAULT_WEIGHT_KG,
        }
        if value is None or value == "":
            return defaults[info.field_name]
        try:
            number = float(value)
        except (TypeError, ValueError):
            return defaults[info.field_name]
        if not math.isfinite(number) or number == 0:
            return defaults[info.field_name]
        return number


class CalibrationOffset(BaseModel):
    """Additive correction per vital channel."""

    model_config = ConfigDict(frozen=True)

    schema_version: Literal[1] = RECORD_SCHEMA_VERSION
    sbp: float = 0.0
    dbp: float = 0.0
    glu: float = 0.0


class SessionRecord(BaseModel):
    """
    One recording attempt.

    Created when recording stops, with features computed once.  Only the
    vitals fields change afterwards, through :meth:`with_vitals`.
    """

    model_config = ConfigDict(frozen=True)

    schema_version: Literal[1] = RECORD_SCHEMA_VERSION
    id: str = Field(pattern=r"^\d{4,}$")
    start_time: int
    end_time: Optional[int] = None
    sampling_rate: float = 30.0
    samples: List[SignalSample] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    patient_name: Optional[str] = None
    age: Optional[float] = None
    height: Optional[float] = None
    weight: Optional[float] = None

    features: Optional[List[float]] = None
    sbp: Optional[float] = None
    dbp: Optional[float] = None
    glucose: Optional[float] = None
    quality: Optional[str] = None

    @field_validator("features")
    @classmethod
    def _check_feature_count(cls, value: Optional[List[float]]) -> Optional[List[float]]:
        if value is not None and len(value) != N_FEATURES:
            raise ValueError(f"expected {N_FEATURES} features, got {len(value)}")
        return value

    @property
    def demographics(self) -> Demographics:
        return Demographics(
            age=self.age,
            height_cm=self.height,
            weight_kg=self.weight,
            name=self.patient_name,
        )

    @property
    def feature_vector(self) -> Optional[FeatureVector]:
        if self.features is None:
            return None
        return FeatureVector.from_sequence(self.features)

    @property
    def values(self) -> List[float]:
        return [s.value for s in self.samples]

    @property
    def has_vitals(self) -> bool:
        return self.sbp is not None

    def with_vitals(self, sbp: float, dbp: float, glucose: float) -> "SessionRecord":
        """Return a copy with the vitals fields back-filled."""
        return self.model_copy(update={"sbp": sbp, "dbp": dbp, "glucose": glucose})
