#!/usr/bin/env python3
"""
PPG Vitals – main entry point.

Usage
-----
    python main.py [SOURCE] [OPTIONS]

Signal source (pick one; default: --camera-index 0)
---------------------------------------------------
    --input PATH         Load samples from a Timestamp,PPG CSV
    --video PATH         Read frames from a video file
    --camera-index INT   Record from an OpenCV camera
    --simulate BPM       Synthesise a PPG waveform at BPM

Options
-------
    --duration FLOAT     Seconds to record / simulate (default: 30)
    --age/--height/--weight/--name
                         Subject demographics
    --model PATH         ONNX model for the AI prediction
    --calibrate S D G    Reference SBP, DBP and glucose; calibrates the
                         model against this recording's raw output
    --store PATH         JSON store for sessions and calibration
    --config PATH        YAML pipeline configuration
    --export PATH        Write the recording as CSV
    --list               List stored sessions and exit
    --no-save            Do not persist the session
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import numpy as np

from ppg_vitals.acquisition import SignalRecorder, VideoSource, simulate_samples
from ppg_vitals.calibration import VitalsReading
from ppg_vitals.config import PipelineConfig, load_config
from ppg_vitals.exceptions import PPGVitalsError
from ppg_vitals.export import read_samples_csv, write_session_csv
from ppg_vitals.inference import OnnxVitalsModel
from ppg_vitals.pipeline import VitalsPipeline
from ppg_vitals.records import Demographics
from ppg_vitals.storage import JsonFileStore

logger = logging.getLogger("ppg_vitals")

DEFAULT_STORE = Path("~/.ppg_vitals/store.json")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Blood pressure / glucose estimation from finger PPG",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--input", type=Path, default=None,
                        help="CSV file with Timestamp,PPG rows")
    source.add_argument("--video", type=Path, default=None,
                        help="Video file of a finger over the lens")
    source.add_argument("--camera-index", type=int, default=None,
                        help="OpenCV VideoCapture index")
    source.add_argument("--simulate", type=float, default=None, metavar="BPM",
                        help="Use a synthetic PPG at this heart rate")
    parser.add_argument("--duration", type=float, default=30.0,
                        help="Recording length in seconds")
    parser.add_argument("--age", type=float, default=30.0)
    parser.add_argument("--height", type=float, default=170.0, help="Height in cm")
    parser.add_argument("--weight", type=float, default=70.0, help="Weight in kg")
    parser.add_argument("--name", default=None, help="Subject name")
    parser.add_argument("--model", type=Path, default=None,
                        help="ONNX vitals model")
    parser.add_argument("--calibrate", type=float, nargs=3, default=None,
                        metavar=("SBP", "DBP", "GLU"),
                        help="Reference values to calibrate the model against")
    parser.add_argument("--store", type=Path, default=DEFAULT_STORE,
                        help="JSON store for sessions and calibration")
    parser.add_argument("--config", type=Path, default=None,
                        help="YAML pipeline configuration")
    parser.add_argument("--export", type=Path, default=None,
                        help="Write the recorded samples to this CSV file")
    parser.add_argument("--list", action="store_true",
                        help="List stored sessions and exit")
    parser.add_argument("--no-save", action="store_true",
                        help="Do not persist the session")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Debug logging")
    return parser.parse_args(argv)


def _acquire(args: argparse.Namespace, config: PipelineConfig):
    fs = config.sample_rate_hz
    if args.input is not None:
        logger.info("Loading samples from %s", args.input)
        return read_samples_csv(args.input)
    if args.simulate is not None:
        logger.info("Simulating %.0f BPM for %.0f s", args.simulate, args.duration)
        return simulate_samples(args.simulate, fs=fs, seconds=args.duration,
                                rng=np.random.default_rng(0))
    source = str(args.video) if args.video is not None else (args.camera_index or 0)
    with VideoSource(source, fps=fs) as video:
        logger.info("Recording %.0f s – keep your finger on the lens.", args.duration)
        return video.record(SignalRecorder(fs=fs), args.duration)


def _print_sessions(pipeline: VitalsPipeline) -> None:
    sessions = pipeline.sessions.newest_first()
    if not sessions:
        print("No stored sessions.")
        return
    for s in sessions:
        est = pipeline.heuristic_for(s)
        hr = f"{s.features[6]:.0f}" if s.features else "-"
        est_txt = f"{est.sbp}/{est.dbp}" if est else "-/-"
        model_txt = f"{s.sbp:.0f}/{s.dbp:.0f} glu={s.glucose:.1f}" if s.has_vitals else "-"
        print(f"{s.id}  {s.patient_name or 'anon':<12} {s.created_at:%Y-%m-%d %H:%M}  "
              f"HR={hr}  est={est_txt}  model={model_txt}")


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def run(args: argparse.Namespace | None = None) -> int:
    if args is None:
        args = parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s – %(message)s",
        datefmt="%H:%M:%S",
    )

    config = load_config(args.config) if args.config else PipelineConfig()
    store = JsonFileStore(args.store.expanduser())
    model = OnnxVitalsModel(args.model) if args.model else None
    pipeline = VitalsPipeline(config=config, store=store, model=model)

    if args.list:
        _print_sessions(pipeline)
        return 0

    demographics = Demographics(
        age=args.age, height_cm=args.height, weight_kg=args.weight, name=args.name,
    )

    try:
        samples = _acquire(args, config)
        analysis = pipeline.stop_recording(samples, demographics)
    except PPGVitalsError as exc:
        logger.error("%s", exc.message)
        return 2
    except RuntimeError as exc:
        logger.error("Acquisition failed: %s", exc)
        return 1

    est = analysis.estimate
    print(f"Session {analysis.session.id}: {len(samples)} samples")
    print(f"  HR   {analysis.heart_rate} BPM   HRV {analysis.hrv:.2f} s")
    print(f"  Estimated  SBP {est.sbp}  DBP {est.dbp}  Glucose {est.glucose}")

    session = analysis.session
    if model is not None:
        try:
            outcome = asyncio.run(pipeline.run_model(analysis, save=False))
        except PPGVitalsError as exc:
            logger.error("Model prediction unavailable: %s", exc.message)
            outcome = None
        if outcome is not None:
            session, result = outcome
            pred = result.calibrated
            print(f"  Predicted  SBP {pred.sbp:.0f}  DBP {pred.dbp:.0f}  Glucose {pred.glucose:.1f}")
            if args.calibrate:
                sbp, dbp, glu = args.calibrate
                offset = pipeline.calibrate(VitalsReading(sbp=sbp, dbp=dbp, glucose=glu))
                print(f"  Calibrated offsets  SBP {offset.sbp:+.1f}  DBP {offset.dbp:+.1f}  Glucose {offset.glu:+.1f}")
    elif args.calibrate:
        logger.warning("--calibrate needs --model; ignoring.")

    if not args.no_save:
        pipeline.save(session)
        logger.info("Saved session %s to %s", session.id, store.path)

    if args.export is not None:
        write_session_csv(args.export, session)
        logger.info("Exported CSV to %s", args.export)

    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    sys.exit(run(parse_args()))
