"""
End-to-end tests for VitalsPipeline.
Run with:  pytest tests/test_pipeline.py
"""

from __future__ import annotations

import asyncio

import numpy as np
import pytest

from ppg_vitals.acquisition import simulate_samples
from ppg_vitals.calibration import VitalsReading
from ppg_vitals.config import PipelineConfig
from ppg_vitals.estimator import DBP_RANGE, GLUCOSE_RANGE, SBP_RANGE
from ppg_vitals.exceptions import (
    DuplicateSessionError,
    FeatureExtractionError,
    InferenceError,
    RecordingTooShort,
)
from ppg_vitals.pipeline import VitalsPipeline
from ppg_vitals.records import Demographics, SignalSample
from ppg_vitals.storage import JsonFileStore

DEMO = Demographics(age=40, height_cm=175, weight_kg=70, name="Ada")


class FakeModel:
    def __init__(self, outputs=(130.0, 85.0, 90.0)):
        self.outputs = outputs

    def predict(self, inputs):
        assert inputs.shape == (1, 21)
        return list(self.outputs)


@pytest.fixture
def samples():
    return simulate_samples(72, seconds=30.0, rng=np.random.default_rng(1))


class TestStopRecording:

    def test_builds_unsaved_session(self, samples):
        pipeline = VitalsPipeline()
        analysis = pipeline.stop_recording(samples, DEMO)
        session = analysis.session

        assert session.id == "0001"
        assert session.start_time == samples[0].timestamp
        assert session.end_time == samples[-1].timestamp
        assert len(session.samples) == 900
        assert session.patient_name == "Ada"
        assert session.age == 40.0
        assert len(session.features) == 18
        assert not session.has_vitals
        assert session.quality == "Good"
        assert pipeline.sessions.list_sessions() == []

    def test_estimate_is_clamped(self, samples):
        estimate = VitalsPipeline().stop_recording(samples, DEMO).estimate
        assert SBP_RANGE[0] <= estimate.sbp <= SBP_RANGE[1]
        assert DBP_RANGE[0] <= estimate.dbp <= DBP_RANGE[1]
        assert GLUCOSE_RANGE[0] <= estimate.glucose <= GLUCOSE_RANGE[1]

    def test_processed_signal_is_trimmed(self, samples):
        analysis = VitalsPipeline().stop_recording(samples, DEMO)
        assert analysis.processed.shape == (900 - 2 * 90,)
        assert np.all(np.isfinite(analysis.features.as_array()))
        assert analysis.heart_rate > 0
        assert set(analysis.stats) == {"mean", "std", "min", "max"}

    def test_too_short(self):
        short = simulate_samples(72, seconds=5.0, rng=np.random.default_rng(0))
        with pytest.raises(RecordingTooShort) as info:
            VitalsPipeline().stop_recording(short, DEMO)
        assert info.value.code == "RECORDING_TOO_SHORT"

    def test_min_duration_follows_config(self):
        short = simulate_samples(72, seconds=8.0, rng=np.random.default_rng(0))
        pipeline = VitalsPipeline(PipelineConfig(min_recording_seconds=5.0))
        assert pipeline.stop_recording(short, DEMO).session.id == "0001"

    def test_nan_signal_fails_feature_extraction(self):
        nan_samples = [SignalSample(timestamp=i * 33, value=float("nan")) for i in range(400)]
        with pytest.raises(FeatureExtractionError):
            VitalsPipeline().stop_recording(nan_samples, DEMO)

    def test_ids_increase_after_save(self, samples):
        pipeline = VitalsPipeline()
        first = pipeline.stop_recording(samples, DEMO)
        pipeline.save(first.session)
        second = pipeline.stop_recording(samples, DEMO)
        assert second.session.id == "0002"

    def test_recordings_analysed_before_saving_keep_distinct_ids(self, samples):
        pipeline = VitalsPipeline()
        first = pipeline.stop_recording(samples, DEMO)
        second = pipeline.stop_recording(samples, DEMO)
        assert (first.session.id, second.session.id) == ("0001", "0002")
        pipeline.save(first.session)
        pipeline.save(second.session)
        assert [s.id for s in pipeline.sessions.list_sessions()] == ["0001", "0002"]

    def test_saving_twice_does_not_overwrite(self, samples):
        pipeline = VitalsPipeline()
        analysis = pipeline.stop_recording(samples, DEMO)
        pipeline.save(analysis.session)
        with pytest.raises(DuplicateSessionError):
            pipeline.save(analysis.session)
        assert len(pipeline.sessions.list_sessions()) == 1

    def test_reanalyze_and_heuristic_match(self, samples):
        pipeline = VitalsPipeline()
        analysis = pipeline.stop_recording(samples, DEMO)
        again = pipeline.reanalyze(analysis.session)
        np.testing.assert_allclose(again.features.as_array(), analysis.features.as_array())
        assert again.estimate == analysis.estimate
        assert pipeline.heuristic_for(analysis.session) == analysis.estimate


class TestModelPath:

    def test_without_model(self, samples):
        pipeline = VitalsPipeline()
        analysis = pipeline.stop_recording(samples, DEMO)
        with pytest.raises(InferenceError):
            asyncio.run(pipeline.run_model(analysis))
        with pytest.raises(InferenceError):
            pipeline.calibrate(VitalsReading(120, 80, 100))

    def test_back_fills_and_saves(self, samples):
        pipeline = VitalsPipeline(model=FakeModel())
        analysis = pipeline.stop_recording(samples, DEMO)
        session, result = asyncio.run(pipeline.run_model(analysis))

        assert (session.sbp, session.dbp, session.glucose) == (130.0, 85.0, 90.0)
        assert result.generation == 1
        stored = pipeline.sessions.get_session("0001")
        assert stored is not None and stored.has_vitals
        assert stored.features == analysis.session.features

    def test_back_fill_after_save_replaces_only_its_session(self, samples):
        pipeline = VitalsPipeline(model=FakeModel())
        first = pipeline.stop_recording(samples, DEMO)
        second = pipeline.stop_recording(samples, DEMO)
        pipeline.save(first.session)
        pipeline.save(second.session)
        asyncio.run(pipeline.run_model(first))

        stored = {s.id: s for s in pipeline.sessions.list_sessions()}
        assert list(stored) == ["0001", "0002"]
        assert stored["0001"].has_vitals
        assert not stored["0002"].has_vitals

    def test_save_false_leaves_store_untouched(self, samples):
        pipeline = VitalsPipeline(model=FakeModel())
        analysis = pipeline.stop_recording(samples, DEMO)
        asyncio.run(pipeline.run_model(analysis, save=False))
        assert pipeline.sessions.list_sessions() == []

    def test_calibration_persists_in_store(self, samples, tmp_path):
        store_path = tmp_path / "store.json"
        pipeline = VitalsPipeline(store=JsonFileStore(store_path), model=FakeModel())
        analysis = pipeline.stop_recording(samples, DEMO)
        asyncio.run(pipeline.run_model(analysis))
        pipeline.calibrate(VitalsReading(120, 80, 100))

        reopened = VitalsPipeline(
            store=JsonFileStore(store_path), model=FakeModel(outputs=(135.0, 85.0, 90.0))
        )
        again = reopened.stop_recording(samples, DEMO)
        assert again.session.id == "0002"
        session, _ = asyncio.run(reopened.run_model(again))
        assert (session.sbp, session.dbp, session.glucose) == (125.0, 80.0, 100.0)
