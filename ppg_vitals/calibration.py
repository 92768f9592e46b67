"""
Per-channel calibration of the external model's outputs.

Calibrating against a reference measurement stores
``offset = reference - raw`` for each of SBP, DBP and glucose; every later
raw model output is shifted by that offset until the next calibration.
Offsets never decay or expire.  The heuristic estimator is not affected.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ppg_vitals.records import CalibrationOffset
from ppg_vitals.storage import KeyValueStore, load_record, save_record

logger = logging.getLogger(__name__)

CALIBRATION_KEY = "calibration_offsets"


@dataclass(frozen=True)
class VitalsReading:
    """Unrounded SBP / DBP / glucose, e.g. a model output."""

    sbp: float
    dbp: float
    glucose: float

    @classmethod
    def from_sequence(cls, values) -> "VitalsReading":
        sbp, dbp, glucose = (float(v) for v in list(values)[:3])
        return cls(sbp=sbp, dbp=dbp, glucose=glucose)


class CalibrationStore:
    """
    Persisted calibration offset.

    Parameters
    ----------
    store:
        Backing key-value store.
    key:
        Store key of the offset record.
    """

    def __init__(self, store: KeyValueStore, key: str = CALIBRATION_KEY) -> None:
        self.store = store
        self.key = key

    @property
    def offset(self) -> CalibrationOffset:
        """Current offset; all zero if never calibrated."""
        return load_record(self.store, self.key, CalibrationOffset) or CalibrationOffset()

    def calibrate(self, reference: VitalsReading, raw: VitalsReading) -> CalibrationOffset:
        """Store ``reference - raw`` per channel and return it."""
        new_offset = CalibrationOffset(
            sbp=reference.sbp - raw.sbp,
            dbp=reference.dbp - raw.dbp,
            glu=reference.glucose - raw.glucose,
        )
        with self.store.locked():
            save_record(self.store, self.key, new_offset)
        logger.info(
            "Calibrated: offsets sbp=%+.1f dbp=%+.1f glu=%+.1f",
            new_offset.sbp, new_offset.dbp, new_offset.glu,
        )
        return new_offset

    def apply(self, raw: VitalsReading) -> VitalsReading:
        """Return *raw* shifted by the stored offset."""
        off = self.offset
        return VitalsReading(
            sbp=raw.sbp + off.sbp,
            dbp=raw.dbp + off.dbp,
            glucose=raw.glucose + off.glu,
        )

    def reset(self) -> None:
        """Forget the offset (back to zero)."""
        self.store.delete(self.key)
