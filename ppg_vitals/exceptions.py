"""
Error hierarchy.

Every error carries a machine-readable ``code`` plus a ``details`` dict so
callers can show a specific prompt (e.g. "hold your finger still") and log
structured context.  None of these are fatal; each is scoped to a single
recording attempt.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class PPGVitalsError(Exception):
    """Base exception for all ppg_vitals errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a plain dict (for logs / JSON output)."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


# ---------------------------------------------------------------------------
# Feature extraction
# ---------------------------------------------------------------------------

class FeatureExtractionError(PPGVitalsError):
    """A precondition of feature extraction failed.  Re-record the signal."""

    code = "FEATURE_EXTRACTION_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, code=type(self).code, details=details)


class SignalTooShort(FeatureExtractionError):
    code = "SIGNAL_TOO_SHORT"


class SignalFlatline(FeatureExtractionError):
    code = "SIGNAL_FLATLINE"


class InsufficientPeaks(FeatureExtractionError):
    code = "INSUFFICIENT_PEAKS"


class NoValleys(FeatureExtractionError):
    code = "NO_VALLEYS"


# ---------------------------------------------------------------------------
# Pipeline / collaborators
# ---------------------------------------------------------------------------

class RecordingTooShort(PPGVitalsError):
    """The recording is shorter than the minimum analysable duration."""

    def __init__(self, duration_s: float, minimum_s: float) -> None:
        super().__init__(
            f"Recording too short ({duration_s:.1f} s). Need at least {minimum_s:.0f} s.",
            code="RECORDING_TOO_SHORT",
            details={"duration_s": duration_s, "minimum_s": minimum_s},
        )
        self.duration_s = duration_s
        self.minimum_s = minimum_s


class InferenceError(PPGVitalsError):
    """The external model failed to load or run."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, code="INFERENCE_ERROR", details=details)


class DuplicateSessionError(PPGVitalsError):
    """A new session was saved under an id that is already stored."""

    def __init__(self, session_id: str) -> None:
        super().__init__(
            f"Session {session_id} already exists",
            code="DUPLICATE_SESSION",
            details={"session_id": session_id},
        )
        self.session_id = session_id


class RecordValidationError(PPGVitalsError):
    """A persisted record does not match its schema."""

    def __init__(self, key: str, message: str) -> None:
        super().__init__(
            f"Invalid record under {key!r}: {message}",
            code="RECORD_VALIDATION_ERROR",
            details={"key": key},
        )
        self.key = key
