"""
End-to-end vitals pipeline.

Stop-of-recording flow::

    samples ─► Preprocessor ─► FeatureExtractor ─► heuristic estimate
                                      │
                                      └─► external model ─► calibration ─► vitals

Everything up to the heuristic estimate runs synchronously once acquisition
has stopped.  Model inference is awaited separately and back-fills the
session's vitals when it completes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence

import numpy as np

from ppg_vitals.calibration import CalibrationStore, VitalsReading
from ppg_vitals.config import PipelineConfig
from ppg_vitals.estimator import EstimationResult, estimate_for
from ppg_vitals.exceptions import InferenceError, RecordingTooShort
from ppg_vitals.features import FeatureExtractor, FeatureVector, signal_stats
from ppg_vitals.inference import InferenceResult, InferenceRunner, VitalsModel
from ppg_vitals.preprocessor import Preprocessor
from ppg_vitals.records import CalibrationOffset, Demographics, SessionRecord, SignalSample
from ppg_vitals.storage import KeyValueStore, MemoryStore, SessionRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisResult:
    """Outcome of analysing one recording."""

    session: SessionRecord
    processed: np.ndarray = field(repr=False)
    features: FeatureVector
    estimate: EstimationResult
    stats: Dict[str, float]

    @property
    def heart_rate(self) -> int:
        return int(round(self.features["hr"]))

    @property
    def hrv(self) -> float:
        return round(self.features["hrv"], 2)


class VitalsPipeline:
    """
    Wires preprocessing, feature extraction, estimation, persistence and
    (optionally) model inference together.

    Parameters
    ----------
    config:
        Pipeline tunables (defaults if omitted).
    store:
        Key-value store for sessions and calibration.  An in-memory store
        is used when omitted.
    model:
        External vitals model.  Without one, only the heuristic path is
        available and :meth:`run_model` raises :class:`InferenceError`.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        store: Optional[KeyValueStore] = None,
        model: Optional[VitalsModel] = None,
    ) -> None:
        self.config = config or PipelineConfig()
        self.store = store if store is not None else MemoryStore()

        cfg = self.config
        self.preprocessor = Preprocessor(
            fs=cfg.sample_rate_hz,
            trim_seconds=cfg.trim_seconds,
            sigma=cfg.smoothing_sigma,
        )
        self.extractor = FeatureExtractor(
            fs=cfg.sample_rate_hz,
            peak_distance=cfg.peak_distance,
            landmark_distance=cfg.landmark_distance,
            trend_sigma=cfg.trend_sigma,
        )
        self.sessions = SessionRepository(self.store, max_sessions=cfg.max_sessions)
        self.calibration = CalibrationStore(self.store)
        self.runner = InferenceRunner(model, self.calibration) if model is not None else None

    # ------------------------------------------------------------------
    # Synchronous analysis
    # ------------------------------------------------------------------

    def process(self, values: Sequence[float] | np.ndarray) -> tuple[np.ndarray, FeatureVector]:
        """Preprocess raw values and extract features (raises on bad signal)."""
        processed = self.preprocessor.process(values)
        return processed, self.extractor.extract(processed)

    def stop_recording(
        self,
        samples: Sequence[SignalSample],
        demographics: Demographics,
        quality: str = "Good",
    ) -> AnalysisResult:
        """
        Analyse a finished recording and build its (unsaved) session.  The
        session id is reserved, so recordings analysed before either is
        saved never share an id.

        Raises
        ------
        RecordingTooShort
            Fewer than ``min_recording_seconds`` of samples.
        FeatureExtractionError
            The signal failed a feature-extraction precondition.
        """
        duration_s = len(samples) / self.config.sample_rate_hz
        if duration_s < self.config.min_recording_seconds:
            raise RecordingTooShort(duration_s, self.config.min_recording_seconds)

        values = np.array([s.value for s in samples], dtype=np.float64)
        processed, features = self.process(values)
        estimate = estimate_for(features, demographics)

        start = samples[0].timestamp
        session = SessionRecord(
            id=self.sessions.reserve_id(),
            start_time=start,
            end_time=samples[-1].timestamp,
            sampling_rate=self.config.sample_rate_hz,
            samples=list(samples),
            patient_name=demographics.name,
            age=demographics.age,
            height=demographics.height_cm,
            weight=demographics.weight_kg,
            features=list(features),
            quality=quality,
        )
        logger.info(
            "Session %s analysed: HR=%.0f est SBP/DBP=%d/%d GLU=%d",
            session.id, features["hr"], estimate.sbp, estimate.dbp, estimate.glucose,
        )
        return AnalysisResult(
            session=session,
            processed=processed,
            features=features,
            estimate=estimate,
            stats=signal_stats(values),
        )

    def reanalyze(self, session: SessionRecord, demographics: Optional[Demographics] = None) -> AnalysisResult:
        """Recompute features and the estimate of a stored session."""
        demographics = demographics or session.demographics
        values = np.array(session.values, dtype=np.float64)
        processed, features = self.process(values)
        return AnalysisResult(
            session=session,
            processed=processed,
            features=features,
            estimate=estimate_for(features, demographics),
            stats=signal_stats(values),
        )

    def heuristic_for(self, session: SessionRecord) -> Optional[EstimationResult]:
        """Estimate from stored features, or None if the session has none."""
        vector = session.feature_vector
        if vector is None:
            return None
        return estimate_for(vector, session.demographics)

    def save(self, session: SessionRecord, replace: bool = False) -> None:
        """Persist *session*; see :meth:`SessionRepository.save_session`."""
        self.sessions.save_session(session, replace=replace)

    # ------------------------------------------------------------------
    # Model path
    # ------------------------------------------------------------------

    async def run_model(
        self,
        analysis: AnalysisResult,
        demographics: Optional[Demographics] = None,
        save: bool = True,
    ) -> Optional[tuple[SessionRecord, InferenceResult]]:
        """
        Run the external model on *analysis* and back-fill the session's
        vitals with the calibrated output.

        Returns ``None`` if the result was superseded by a newer request.
        An :class:`InferenceError` leaves the analysis (and its heuristic
        estimate) untouched.
        """
        if self.runner is None:
            raise InferenceError("No model configured")
        demographics = demographics or analysis.session.demographics
        result = await self.runner.infer(analysis.features, demographics)
        if result is None:
            return None
        vitals = result.calibrated
        session = analysis.session.with_vitals(vitals.sbp, vitals.dbp, vitals.glucose)
        if save:
            self.save(session, replace=True)
        return session, result

    def calibrate(self, reference: VitalsReading) -> CalibrationOffset:
        """Calibrate against the latest model output."""
        if self.runner is None:
            raise InferenceError("No model configured")
        return self.runner.calibrate(reference)
