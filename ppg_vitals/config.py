"""Pipeline configuration and YAML helpers."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

DEFAULT_SAMPLE_RATE_HZ = 30.0


def _coerce(name: str, value: Any, kind: type) -> float | int:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name}: expected a number, got {value!r}") from exc
    if not math.isfinite(number):
        raise ValueError(f"{name}: expected a finite number, got {value!r}")
    if kind is int:
        if not number.is_integer():
            raise ValueError(f"{name}: expected an integer, got {value!r}")
        return int(number)
    return number


@dataclass
class PipelineConfig:
    """
    Tunables of the acquisition → features → vitals pipeline.

    sample_rate_hz: nominal rate the recorder samples at; every later stage
        treats the signal as equi-spaced at this rate.
    trim_seconds: edge trim applied after smoothing (filter transients).
    smoothing_sigma: Gaussian σ (samples) of the post-filter smoothing.
    trend_sigma: Gaussian σ (samples) of the baseline-trend copy.
    peak_distance: minimum separation (samples) between pulse peaks.
    landmark_distance: minimum separation (samples) of SDPPG landmarks.
    min_recording_seconds: shorter recordings are refused before analysis.
    max_sessions: number of sessions the repository retains.
    """

    sample_rate_hz: float = DEFAULT_SAMPLE_RATE_HZ
    trim_seconds: float = 3.0
    smoothing_sigma: float = 2.0
    trend_sigma: float = 5.0
    peak_distance: int = 10
    landmark_distance: int = 8
    min_recording_seconds: float = 10.0
    max_sessions: int = 50

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PipelineConfig":
        """
        Build from a mapping, ignoring unknown keys.

        Raises ``ValueError`` naming the field when a value is not a finite
        number, or when an integer field gets a non-integral value.
        """
        kwargs: Dict[str, Any] = {}
        for f in fields(cls):
            value = data.get(f.name)
            if value is not None:
                kwargs[f.name] = _coerce(f.name, value, type(f.default))
        return cls(**kwargs)

    def to_mapping(self) -> Dict[str, Any]:
        return asdict(self)


def load_config(path: Path | str) -> PipelineConfig:
    """
    Load a :class:`PipelineConfig` from a YAML file.

    A missing file yields the defaults.  Settings may live at the top level
    or under a ``pipeline:`` block.
    """
    path = Path(path)
    if not path.exists():
        return PipelineConfig()

    with path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}

    if not isinstance(raw, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")

    block = raw.get("pipeline", raw)
    if not isinstance(block, dict):
        raise ValueError(f"{path}: 'pipeline' must be a mapping")
    return PipelineConfig.from_mapping(block)


def save_config(path: Path | str, config: PipelineConfig) -> None:
    """Write *config* as a ``pipeline:`` block."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        yaml.safe_dump({"pipeline": config.to_mapping()}, fh, sort_keys=False)
