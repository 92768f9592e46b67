"""
External model inference.

The model is a black box: a ``(1, 21)`` float32 tensor of the 18 features
followed by ``[age, height_cm, weight_kg]`` goes in, ``(sbp, dbp, glucose)``
comes out before calibration.

:class:`InferenceRunner` is the only part of the pipeline that awaits.
Each request takes a new generation number; when a request finishes after
a newer one was issued, its result is dropped so a slow, stale inference
can never overwrite a fresh one.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Sequence

import numpy as np

from ppg_vitals.calibration import CalibrationStore, VitalsReading
from ppg_vitals.exceptions import InferenceError
from ppg_vitals.features import N_FEATURES, FeatureVector
from ppg_vitals.records import CalibrationOffset, Demographics

logger = logging.getLogger(__name__)

MODEL_INPUT_SIZE = N_FEATURES + 3


def build_model_input(features: FeatureVector | Sequence[float], demographics: Demographics) -> np.ndarray:
    """Concatenate features and demographics into a ``(1, 21)`` float32 array."""
    values = list(features)
    if len(values) != N_FEATURES:
        raise ValueError(f"expected {N_FEATURES} features, got {len(values)}")
    values += [demographics.age, demographics.height_cm, demographics.weight_kg]
    return np.asarray(values, dtype=np.float32).reshape(1, MODEL_INPUT_SIZE)


class VitalsModel(Protocol):
    def predict(self, inputs: np.ndarray) -> Sequence[float]: ...


class OnnxVitalsModel:
    """
    ONNX model run through onnxruntime on the CPU.

    The session is created lazily on the first :meth:`predict` (or an
    explicit :meth:`load`).  Feeds the first declared input and reads the
    first declared output.
    """

    def __init__(self, path: Path | str, providers: Sequence[str] = ("CPUExecutionProvider",)) -> None:
        self.path = Path(path)
        self.providers = list(providers)
        self._session = None

    @property
    def loaded(self) -> bool:
        return self._session is not None

    def load(self) -> None:
        try:
            import onnxruntime as ort
        except ImportError as exc:
            raise InferenceError(
                "onnxruntime is not installed (pip install 'ppg-vitals[onnx]')"
            ) from exc
        try:
            self._session = ort.InferenceSession(str(self.path), providers=self.providers)
        except Exception as exc:
            raise InferenceError(
                f"Model load failed: {exc}", details={"path": str(self.path)}
            ) from exc
        logger.info("Model loaded from %s", self.path)

    def predict(self, inputs: np.ndarray) -> np.ndarray:
        if self._session is None:
            self.load()
        input_name = self._session.get_inputs()[0].name
        output_name = self._session.get_outputs()[0].name
        (output,) = self._session.run([output_name], {input_name: inputs.astype(np.float32)})
        return np.asarray(output, dtype=np.float64).reshape(-1)


@dataclass(frozen=True)
class InferenceResult:
    generation: int
    raw: VitalsReading
    calibrated: VitalsReading


class InferenceRunner:
    """
    Runs a :class:`VitalsModel` off the event loop and applies calibration.

    Parameters
    ----------
    model:
        Any object with ``predict((1, 21) array) -> 3 values``.
    calibration:
        Offset store applied to raw outputs.  Without one, outputs pass
        through unchanged.
    """

    def __init__(self, model: VitalsModel, calibration: Optional[CalibrationStore] = None) -> None:
        self.model = model
        self.calibration = calibration
        self._generation = 0
        self._last_raw: Optional[VitalsReading] = None

    @property
    def generation(self) -> int:
        """Generation of the most recently issued request."""
        return self._generation

    @property
    def last_raw(self) -> Optional[VitalsReading]:
        """Raw output of the latest accepted inference."""
        return self._last_raw

    async def infer(
        self,
        features: FeatureVector | Sequence[float],
        demographics: Demographics,
    ) -> Optional[InferenceResult]:
        """
        Run the model.  Returns ``None`` if a newer request superseded this
        one while it was in flight.

        Raises
        ------
        InferenceError
            The model failed or returned fewer than three values.
        """
        self._generation += 1
        generation = self._generation
        inputs = build_model_input(features, demographics)

        try:
            output = await asyncio.to_thread(self.model.predict, inputs)
        except Exception as exc:
            if generation != self._generation:
                logger.info("Ignoring failure of stale inference %d: %s", generation, exc)
                return None
            if isinstance(exc, InferenceError):
                raise
            raise InferenceError(
                f"Model run failed: {exc}", details={"generation": generation}
            ) from exc

        if generation != self._generation:
            logger.info(
                "Discarding stale inference result (generation %d, latest %d)",
                generation, self._generation,
            )
            return None

        values = np.asarray(output, dtype=np.float64).reshape(-1)
        if values.size < 3:
            raise InferenceError(
                f"Model returned {values.size} values, expected 3",
                details={"generation": generation},
            )

        raw = VitalsReading.from_sequence(values)
        self._last_raw = raw
        calibrated = self.calibration.apply(raw) if self.calibration is not None else raw
        logger.info(
            "Inference %d: sbp=%.1f dbp=%.1f glu=%.1f",
            generation, calibrated.sbp, calibrated.dbp, calibrated.glucose,
        )
        return InferenceResult(generation=generation, raw=raw, calibrated=calibrated)

    def calibrate(self, reference: VitalsReading) -> CalibrationOffset:
        """Calibrate against the latest accepted raw output."""
        if self.calibration is None:
            raise InferenceError("No calibration store configured")
        if self._last_raw is None:
            raise InferenceError("Run the model before calibrating")
        return self.calibration.calibrate(reference, self._last_raw)
